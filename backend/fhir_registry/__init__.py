"""FHIR search parameter and compartment registry."""

__version__ = "0.1.0"
