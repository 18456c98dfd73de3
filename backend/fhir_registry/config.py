"""Application configuration using pydantic-settings."""

import warnings
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from fhir_registry.definitions.model_info import FhirSpecification


# Find .env file: check backend dir first, then project root
_BACKEND_DIR = Path(__file__).parent.parent
_PROJECT_ROOT = _BACKEND_DIR.parent
_ENV_FILE = _BACKEND_DIR / ".env" if (_BACKEND_DIR / ".env").exists() else _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Registry settings loaded from environment variables.

    Bundle paths are optional. Without them the registry starts with only the
    synthetic _type parameter and no compartments, which is what unit tests use.
    """

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Store for custom (POSTed) SearchParameter resources
    database_url: str = "sqlite+aiosqlite:///./fhir_registry.db"

    # Specification bundles
    fhir_version: FhirSpecification = FhirSpecification.R4
    search_parameters_path: Path | None = None
    compartment_definitions_path: Path | None = None

    # Initialization and notification handling
    initialization_page_size: int = 10
    notification_retry_count: int = 3

    # Application
    log_level: str = "INFO"
    debug: bool = False

    def model_post_init(self, __context) -> None:
        """Warn about bundle paths that point nowhere."""
        for name in ("search_parameters_path", "compartment_definitions_path"):
            path = getattr(self, name)
            if path is not None and not path.exists():
                warnings.warn(
                    f"{name.upper()} is set to '{path}' but the file does not exist.",
                    UserWarning,
                    stacklevel=2,
                )


settings = Settings()
