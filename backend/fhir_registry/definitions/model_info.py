"""FHIR model information: resource type names and their inheritance.

The registry only needs the type hierarchy, so the provider is a plain mapping
of resource type to base type. The default hierarchy is FHIR R4, where every
concrete resource derives from DomainResource except Binary, Bundle and
Parameters, which derive from Resource directly.
"""

from collections.abc import Iterable, Mapping
from enum import Enum


class FhirSpecification(str, Enum):
    """Supported FHIR specification versions."""

    STU3 = "Stu3"
    R4 = "R4"
    R4B = "R4B"
    R5 = "R5"


class KnownResourceTypes:
    """Resource type names the registry treats specially."""

    RESOURCE = "Resource"
    DOMAIN_RESOURCE = "DomainResource"
    BINARY = "Binary"
    BUNDLE = "Bundle"
    PARAMETERS = "Parameters"
    SEARCH_PARAMETER = "SearchParameter"
    COMPARTMENT_DEFINITION = "CompartmentDefinition"


ABSTRACT_RESOURCE_TYPES = frozenset(
    {KnownResourceTypes.RESOURCE, KnownResourceTypes.DOMAIN_RESOURCE}
)

_RESOURCE_CHILDREN = (
    KnownResourceTypes.BINARY,
    KnownResourceTypes.BUNDLE,
    KnownResourceTypes.PARAMETERS,
)

_DOMAIN_RESOURCE_CHILDREN = (
    "Account", "ActivityDefinition", "AdverseEvent", "AllergyIntolerance",
    "Appointment", "AppointmentResponse", "AuditEvent", "Basic",
    "BiologicallyDerivedProduct", "BodyStructure", "CapabilityStatement",
    "CarePlan", "CareTeam", "CatalogEntry", "ChargeItem",
    "ChargeItemDefinition", "Claim", "ClaimResponse", "ClinicalImpression",
    "CodeSystem", "Communication", "CommunicationRequest",
    "CompartmentDefinition", "Composition", "ConceptMap", "Condition",
    "Consent", "Contract", "Coverage", "CoverageEligibilityRequest",
    "CoverageEligibilityResponse", "DetectedIssue", "Device",
    "DeviceDefinition", "DeviceMetric", "DeviceRequest", "DeviceUseStatement",
    "DiagnosticReport", "DocumentManifest", "DocumentReference",
    "EffectEvidenceSynthesis", "Encounter", "Endpoint", "EnrollmentRequest",
    "EnrollmentResponse", "EpisodeOfCare", "EventDefinition", "Evidence",
    "EvidenceVariable", "ExampleScenario", "ExplanationOfBenefit",
    "FamilyMemberHistory", "Flag", "Goal", "GraphDefinition", "Group",
    "GuidanceResponse", "HealthcareService", "ImagingStudy", "Immunization",
    "ImmunizationEvaluation", "ImmunizationRecommendation",
    "ImplementationGuide", "InsurancePlan", "Invoice", "Library", "Linkage",
    "List", "Location", "Measure", "MeasureReport", "Media", "Medication",
    "MedicationAdministration", "MedicationDispense", "MedicationKnowledge",
    "MedicationRequest", "MedicationStatement", "MedicinalProduct",
    "MedicinalProductAuthorization", "MedicinalProductContraindication",
    "MedicinalProductIndication", "MedicinalProductIngredient",
    "MedicinalProductInteraction", "MedicinalProductManufactured",
    "MedicinalProductPackaged", "MedicinalProductPharmaceutical",
    "MedicinalProductUndesirableEffect", "MessageDefinition", "MessageHeader",
    "MolecularSequence", "NamingSystem", "NutritionOrder", "Observation",
    "ObservationDefinition", "OperationDefinition", "OperationOutcome",
    "Organization", "OrganizationAffiliation", "Patient", "PaymentNotice",
    "PaymentReconciliation", "Person", "PlanDefinition", "Practitioner",
    "PractitionerRole", "Procedure", "Provenance", "Questionnaire",
    "QuestionnaireResponse", "RelatedPerson", "RequestGroup",
    "ResearchDefinition", "ResearchElementDefinition", "ResearchStudy",
    "ResearchSubject", "RiskAssessment", "RiskEvidenceSynthesis", "Schedule",
    "SearchParameter", "ServiceRequest", "Slot", "Specimen",
    "SpecimenDefinition", "StructureDefinition", "StructureMap",
    "Subscription", "Substance", "SubstanceNucleicAcid", "SubstancePolymer",
    "SubstanceProtein", "SubstanceReferenceInformation",
    "SubstanceSourceMaterial", "SubstanceSpecification", "SupplyDelivery",
    "SupplyRequest", "Task", "TerminologyCapabilities", "TestReport",
    "TestScript", "ValueSet", "VerificationResult", "VisionPrescription",
)


def default_type_hierarchy() -> dict[str, str | None]:
    """Build the R4 resource type -> base type mapping."""
    hierarchy: dict[str, str | None] = {
        KnownResourceTypes.RESOURCE: None,
        KnownResourceTypes.DOMAIN_RESOURCE: KnownResourceTypes.RESOURCE,
    }
    for name in _RESOURCE_CHILDREN:
        hierarchy[name] = KnownResourceTypes.RESOURCE
    for name in _DOMAIN_RESOURCE_CHILDREN:
        hierarchy[name] = KnownResourceTypes.DOMAIN_RESOURCE
    return hierarchy


class ModelInfoProvider:
    """Answers resource type and inheritance questions for one FHIR version."""

    def __init__(
        self,
        version: FhirSpecification = FhirSpecification.R4,
        type_hierarchy: Mapping[str, str | None] | None = None,
    ):
        """Initialize the provider.

        Args:
            version: FHIR specification version the bundles were published for.
            type_hierarchy: Resource type -> base type (None for the root).
                Defaults to the R4 hierarchy.
        """
        self._version = version
        self._hierarchy = dict(type_hierarchy or default_type_hierarchy())

    @property
    def version(self) -> FhirSpecification:
        return self._version

    def get_resource_type_names(self) -> list[str]:
        """Concrete resource type names, sorted."""
        return sorted(
            name for name in self._hierarchy if name not in ABSTRACT_RESOURCE_TYPES
        )

    def is_known_resource(self, resource_type: str) -> bool:
        return resource_type in self._hierarchy

    def get_base_type(self, resource_type: str) -> str | None:
        """Base type of a resource type, or None for the root or an unknown type."""
        return self._hierarchy.get(resource_type)

    def get_type_hierarchy(self, resource_type: str) -> list[str]:
        """The type followed by its ancestors up to the root."""
        chain = []
        current: str | None = resource_type
        while current is not None and current not in chain:
            chain.append(current)
            current = self._hierarchy.get(current)
        return chain

    def get_derived_resource_types(self, base_types: Iterable[str]) -> set[str]:
        """All known types whose inheritance chain includes one of base_types.

        The base types themselves are always part of the result.
        """
        bases = set(base_types)
        derived = set(bases)
        for name in self._hierarchy:
            if bases.intersection(self.get_type_hierarchy(name)):
                derived.add(name)
        return derived
