"""
Settings for the scheduler, read from the environment and `.env`.

Everything the deployment varies lives here: the shared edit password,
whether new lessons are checked for double booking, how often the lesson
table is polled, and the Snowflake credentials. With SNOWFLAKE_MOCK_MODE
the whole API runs against an in-memory database.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Scheduler settings.

    Field names map to upper-case environment variables (EDIT_PASSWORD,
    SNOWFLAKE_ACCOUNT, ...). CORS origins are a comma-separated string.
    """

    # API Configuration
    api_title: str = "Skating Scheduler API"
    api_version: str = "v1"

    # Scheduling behavior
    edit_password: str = Field(
        default="letmein",
        description="Shared password that unlocks editing. A deterrent, not access control."
    )
    conflict_check_enabled: bool = Field(
        default=True,
        description="Reject new lessons that overlap an existing lesson for the same student or coach."
    )
    snapshot_poll_seconds: float = Field(
        default=5.0,
        description="How often to re-read the lesson table for changes made by other writers. 0 disables polling."
    )

    # Snowflake Configuration
    snowflake_account: str = Field(
        default="",
        description="Account identifier, e.g. xy12345.us-east-1"
    )
    snowflake_user: str = Field(
        default="",
        description="User the service connects as"
    )
    snowflake_password: str = Field(
        default="",
        description="Password for SNOWFLAKE_USER; leave empty with key-pair auth"
    )
    snowflake_private_key_path: Optional[str] = Field(
        default=None,
        description="PEM private key file for key-pair auth"
    )
    snowflake_private_key_base64: Optional[str] = Field(
        default=None,
        description="Base64 of the PEM private key, for hosts without a writable filesystem"
    )
    snowflake_database: str = Field(
        default="SKATING",
        description="Database holding the lessons and client_storage tables"
    )
    snowflake_schema: str = Field(
        default="SCHEDULE",
        description="Schema holding the lessons and client_storage tables"
    )
    snowflake_warehouse: str = Field(
        default="COMPUTE_WH",
        description="Warehouse that runs the queries"
    )
    snowflake_role: Optional[str] = Field(
        default=None,
        description="Role to assume; the user default when unset"
    )
    snowflake_mock_mode: bool = Field(
        default=False,
        description="Keep everything in memory instead of connecting. Data is lost on restart."
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Uvicorn log level when run as a script"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Origins allowed to call the API, comma-separated, or * to allow any"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """CORS origins as the middleware wants them."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def validate_required_fields(self) -> list[str]:
        """
        Names of settings that must be set but are not.

        Snowflake credentials are only needed outside mock mode, which is
        why this is not a pydantic validator. Startup logs the result and
        readiness reports it.
        """
        missing = []

        if not self.edit_password:
            missing.append("EDIT_PASSWORD")

        if not self.snowflake_mock_mode:
            if not self.snowflake_account:
                missing.append("SNOWFLAKE_ACCOUNT")
            if not self.snowflake_user:
                missing.append("SNOWFLAKE_USER")
            has_key = self.snowflake_private_key_path or self.snowflake_private_key_base64
            if not self.snowflake_password and not has_key:
                missing.append("SNOWFLAKE_PASSWORD or SNOWFLAKE_PRIVATE_KEY_PATH")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Settings from the environment, read once per process.

    Tests build Settings directly and pass them to create_app, or call
    get_settings.cache_clear().
    """
    return Settings()
