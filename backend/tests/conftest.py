"""Pytest configuration and shared fixtures.

This module provides centralized test fixtures for:
- Search parameter and compartment definition bundles
- Registry managers built from those bundles
- SQLite test database sessions for the custom search parameter store
"""

import copy

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from fhir_registry.compartments import CompartmentDefinitionManager, CompartmentIndexer
from fhir_registry.database import create_engine, create_session_maker, create_tables
from fhir_registry.definitions import ModelInfoProvider, SearchParameterDefinitionManager
from fhir_registry.services.notifications import NotificationMediator

SP = "http://hl7.org/fhir/SearchParameter"


def make_search_parameter(
    url: str,
    code: str,
    type_: str,
    base: list[str],
    expression: str | None = None,
    **extra,
) -> dict:
    """Build a SearchParameter resource dict."""
    resource = {
        "resourceType": "SearchParameter",
        "url": url,
        "name": code,
        "code": code,
        "type": type_,
        "base": base,
    }
    if expression is not None:
        resource["expression"] = expression
    resource.update(extra)
    return resource


# =============================================================================
# Search Parameter Fixtures
# =============================================================================


SEARCH_PARAMETER_ENTRIES = [
    make_search_parameter(f"{SP}/Resource-id", "_id", "token", ["Resource"], "Resource.id"),
    make_search_parameter(
        f"{SP}/Resource-lastUpdated", "_lastUpdated", "date", ["Resource"], "Resource.meta.lastUpdated"
    ),
    make_search_parameter(
        f"{SP}/Resource-profile", "_profile", "reference", ["Resource"], "Resource.meta.profile"
    ),
    # Published without an expression; allowed and not indexed
    make_search_parameter(f"{SP}/DomainResource-text", "_text", "string", ["DomainResource"]),
    make_search_parameter(
        f"{SP}/Patient-birthdate", "birthdate", "date", ["Patient"], "Patient.birthDate"
    ),
    make_search_parameter(f"{SP}/Patient-name", "name", "string", ["Patient"], "Patient.name"),
    make_search_parameter(
        f"{SP}/clinical-patient",
        "patient",
        "reference",
        ["Observation", "Condition"],
        "Observation.subject.where(resolve() is Patient) | Condition.subject.where(resolve() is Patient)",
        target=["Patient"],
    ),
    make_search_parameter(
        f"{SP}/Observation-subject",
        "subject",
        "reference",
        ["Observation"],
        "Observation.subject",
        target=["Patient", "Group", "Device", "Location"],
    ),
    make_search_parameter(f"{SP}/clinical-code", "code", "token", ["Observation", "Condition"], "Observation.code | Condition.code"),
    make_search_parameter(
        f"{SP}/Observation-value-quantity",
        "value-quantity",
        "quantity",
        ["Observation"],
        "(Observation.value as Quantity)",
    ),
    # Composite over two entries of the same bundle
    make_search_parameter(
        f"{SP}/Observation-code-value-quantity",
        "code-value-quantity",
        "composite",
        ["Observation"],
        "Observation",
        component=[
            {"definition": f"{SP}/clinical-code", "expression": "code"},
            {"definition": f"{SP}/Observation-value-quantity", "expression": "value.as(Quantity)"},
        ],
    ),
]


@pytest.fixture
def search_parameter_entries() -> list[dict]:
    """Fresh copy of the test search parameter bundle entries."""
    return copy.deepcopy(SEARCH_PARAMETER_ENTRIES)


@pytest.fixture
def custom_search_parameter() -> dict:
    """A custom search parameter as a client would POST it."""
    return make_search_parameter(
        "http://example.org/fhir/SearchParameter/Patient-favorite-color",
        "favorite-color",
        "token",
        ["Patient"],
        "Patient.extension('http://example.org/favorite-color').value",
    )


@pytest.fixture
def model_info_provider() -> ModelInfoProvider:
    return ModelInfoProvider()


@pytest.fixture
def mediator() -> NotificationMediator:
    return NotificationMediator()


@pytest.fixture
def manager(model_info_provider, search_parameter_entries) -> SearchParameterDefinitionManager:
    """Registry built from the test bundle, without a data store."""
    return SearchParameterDefinitionManager(model_info_provider, search_parameter_entries)


# =============================================================================
# Compartment Fixtures
# =============================================================================


COMPARTMENT_DEFINITION_ENTRIES = [
    {
        "resourceType": "CompartmentDefinition",
        "url": "http://hl7.org/fhir/CompartmentDefinition/patient",
        "code": "Patient",
        "resource": [
            {"code": "Observation", "param": ["subject", "performer"]},
            {"code": "Condition", "param": ["patient", "asserter"]},
            {"code": "Patient", "param": ["link"]},
            {"code": "Organization"},
        ],
    },
    {
        "resourceType": "CompartmentDefinition",
        "url": "http://hl7.org/fhir/CompartmentDefinition/encounter",
        "code": "Encounter",
        "resource": [
            {"code": "Observation", "param": ["encounter"]},
            {"code": "Encounter", "param": ["{def}"]},
        ],
    },
    {
        "resourceType": "CompartmentDefinition",
        "url": "http://hl7.org/fhir/CompartmentDefinition/device",
        "code": "Device",
        "resource": [
            {"code": "Observation", "param": ["subject", "device"]},
        ],
    },
]


@pytest.fixture
def compartment_definition_entries() -> list[dict]:
    return copy.deepcopy(COMPARTMENT_DEFINITION_ENTRIES)


@pytest.fixture
def compartment_manager(compartment_definition_entries) -> CompartmentDefinitionManager:
    return CompartmentDefinitionManager(compartment_definition_entries)


@pytest.fixture
def compartment_indexer(compartment_manager) -> CompartmentIndexer:
    return CompartmentIndexer(compartment_manager)


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """SQLite engine on a per-test database file with all tables created."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'registry.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(test_engine):
    return create_session_maker(test_engine)


@pytest_asyncio.fixture
async def test_db(session_maker) -> AsyncSession:
    """Database session for a single test."""
    async with session_maker() as session:
        yield session
