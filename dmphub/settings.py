from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    # Runtime
    environment: str = Field(default="development", validation_alias="APP_ENV")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    application_name: str = Field(default="dmphub", validation_alias="APPLICATION_NAME")
    # Host of the DMP landing pages; used to build the per-version URLs.
    api_host: str | None = Field(default=None, validation_alias="API_HOST")

    # AWS / NoSQL
    aws_region: str = Field(default="us-west-2", validation_alias="AWS_REGION")
    nosql_table: str = Field(default="dmsp-local", validation_alias="NOSQL_TABLE")
    nosql_typeahead_table: str = Field(
        default="typeaheads-local", validation_alias="NOSQL_TYPEAHEADS_TABLE"
    )
    # Local DynamoDB (docker / NoSQL Workbench) only.
    nosql_host: str = Field(default="localhost", validation_alias="NOSQL_HOST")
    nosql_port: int = Field(default=8000, validation_alias="NOSQL_PORT")
    nosql_access_key: str | None = Field(default=None, validation_alias="NOSQL_ACCESS_KEY")
    nosql_access_secret: str | None = Field(
        default=None, validation_alias="NOSQL_ACCESS_SECRET"
    )
    nosql_pool_size: int = Field(default=5, validation_alias="NOSQL_POOL_SIZE")
    nosql_timeout: float = Field(default=5.0, validation_alias="NOSQL_TIMEOUT")

    # DMP-ID minting
    # e.g. `doi.org`, `dmphub.uc3dev.cdlib.net` or `localhost:3001`
    doi_base_domain: str | None = Field(default=None, validation_alias="DOI_BASE_DOMAIN")
    # e.g. `10.48321/D1`
    doi_shoulder: str | None = Field(default=None, validation_alias="DOI_SHOULDER")

    # ---- helpers / derived flags ----
    @property
    def normalized_environment(self) -> str:
        v = (self.environment or "").strip().lower()
        if v in ("prod", "production"):
            return "production"
        if v in ("stage", "staging"):
            return "staging"
        if v in ("dev", "development"):
            return "development"
        return v or "development"

    @property
    def is_production(self) -> bool:
        return self.normalized_environment == "production"

    @property
    def is_local(self) -> bool:
        """True for environments that talk to a local DynamoDB endpoint."""
        return self.normalized_environment in ("development", "test", "docker")

    @property
    def nosql_endpoint(self) -> str | None:
        if not self.is_local:
            return None
        return f"http://{self.nosql_host}:{self.nosql_port}"

    def require_in_production(self) -> None:
        """
        Enforce required settings in production.

        Local environments may run with partial config; production must be able
        to mint DMP-IDs and build version URLs.
        """
        if not self.is_production:
            return

        missing: list[str] = []
        if not self.doi_base_domain:
            missing.append("DOI_BASE_DOMAIN")
        if not self.doi_shoulder:
            missing.append("DOI_SHOULDER")
        if not self.api_host:
            missing.append("API_HOST")

        if missing:
            raise RuntimeError(
                "Missing required production environment variables: "
                + ", ".join(missing)
            )

    def to_log_safe_dict(self) -> dict[str, object]:
        """
        A redacted representation safe for structured logs / diagnostics.
        """
        def _has(v: object) -> bool:
            return v is not None and str(v).strip() != ""

        return {
            "environment": self.normalized_environment,
            "application_name": self.application_name,
            "api_host": self.api_host,
            "aws": {
                "aws_region": self.aws_region,
                "nosql_table": self.nosql_table,
                "nosql_typeahead_table": self.nosql_typeahead_table,
                "nosql_endpoint": self.nosql_endpoint,
                "nosql_pool_size": self.nosql_pool_size,
                "nosql_timeout": self.nosql_timeout,
                "nosql_access_key_configured": _has(self.nosql_access_key),
                "nosql_access_secret_configured": _has(self.nosql_access_secret),
            },
            "doi": {
                "doi_base_domain": self.doi_base_domain,
                "doi_shoulder": self.doi_shoulder,
            },
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    s = Settings()
    s.require_in_production()
    return s
