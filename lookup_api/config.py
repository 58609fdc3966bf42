"""
Runtime configuration for the Lookup Portal API.
Psychology: One source of truth - every tunable lives on a single settings object.
Intention: Let tests build isolated settings instead of mutating process-wide state.
"""
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


ROLE_MODEL_OWNER_ADMIN = "owner_admin"
ROLE_MODEL_ADMIN_USER = "admin_user"


@dataclass(frozen=True)
class RoleModel:
    """Which pair of roles this deployment runs with."""
    privileged: str
    managed: str
    collection: str
    route_segment: str
    supports_features: bool
    superuser_name: str

    @property
    def roles(self) -> tuple:
        return (self.privileged, self.managed)

    @property
    def managed_label(self) -> str:
        return self.managed.capitalize()


ROLE_MODELS = {
    ROLE_MODEL_OWNER_ADMIN: RoleModel(
        privileged="owner",
        managed="admin",
        collection="admins",
        route_segment="admins",
        supports_features=False,
        superuser_name="System Owner",
    ),
    ROLE_MODEL_ADMIN_USER: RoleModel(
        privileged="admin",
        managed="user",
        collection="users",
        route_segment="users",
        supports_features=True,
        superuser_name="System Admin",
    ),
}


class Settings(BaseSettings):
    """Service configuration, read from the environment or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    app_name: str = "Lookup Portal API"
    role_model: str = Field(default=ROLE_MODEL_ADMIN_USER, validation_alias=AliasChoices("ROLE_MODEL", "role_model"))

    mongodb_url: str = Field(default="", validation_alias=AliasChoices("MONGODB_URL", "mongodb_url"))
    mongodb_db_name: str = Field(default="secure_portal", validation_alias=AliasChoices("MONGODB_DB_NAME", "mongodb_db_name"))
    history_collection: str = "searchhistories"

    superuser_username: str = Field(
        default="",
        validation_alias=AliasChoices("SUPERUSER_USERNAME", "ADMIN_USERNAME", "OWNER_USERNAME", "superuser_username"),
    )
    superuser_password: str = Field(
        default="",
        validation_alias=AliasChoices("SUPERUSER_PASSWORD", "ADMIN_PASSWORD", "OWNER_PASSWORD", "superuser_password"),
    )

    session_secret: str = Field(
        default="super-secret-session-key-change-in-production",
        validation_alias=AliasChoices("SESSION_SECRET", "session_secret"),
    )
    session_cookie_name: str = "sid"
    session_ttl_seconds: int = 30 * 60
    node_env: str = Field(default="development", validation_alias=AliasChoices("NODE_ENV", "node_env"))
    production_flag: bool = Field(default=False, validation_alias=AliasChoices("PRODUCTION", "production_flag"))

    redis_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("REDIS_URL", "redis_url"))
    vpnapi_key: Optional[str] = Field(default=None, validation_alias=AliasChoices("VPNAPI_KEY", "vpnapi_key"))
    vpnapi_base: str = "https://vpnapi.io/api"

    lookup_api_base: str = Field(
        default="https://numinfoapi.vercel.app",
        validation_alias=AliasChoices("LOOKUP_API_BASE", "lookup_api_base"),
    )
    vehicle_api_base: str = Field(
        default="https://osint-apis.zerovault.workers.dev",
        validation_alias=AliasChoices("VEHICLE_API_BASE", "vehicle_api_base"),
    )
    vehicle_api_key: str = Field(default="", validation_alias=AliasChoices("VEHICLE_API_KEY", "vehicle_api_key"))
    ip_api_base: str = Field(default="http://ip-api.com", validation_alias=AliasChoices("IP_API_BASE", "ip_api_base"))

    allowed_origins: List[str] = Field(
        default_factory=lambda: [
            "https://secure-access-portal.onrender.com",
            "http://localhost:5000",
            "http://0.0.0.0:5000",
            "https://localhost",
        ]
    )
    allowed_origin_domains: List[str] = Field(
        default_factory=lambda: ["replit.dev", "replit.app", "repl.co"]
    )

    bcrypt_rounds: int = 12
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL", "log_level"))
    log_json: bool = Field(default=False, validation_alias=AliasChoices("LOG_JSON", "log_json"))

    @field_validator("role_model")
    @classmethod
    def validate_role_model(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ROLE_MODELS:
            raise ValueError(f"role_model must be one of {sorted(ROLE_MODELS)}")
        return v

    @field_validator("bcrypt_rounds")
    @classmethod
    def validate_bcrypt_rounds(cls, v: int) -> int:
        if v < 12:
            raise ValueError("bcrypt_rounds must be at least 12")
        return v

    @property
    def production(self) -> bool:
        return self.production_flag or self.node_env.lower() == "production"

    @property
    def roles(self) -> RoleModel:
        return ROLE_MODELS[self.role_model]

    @property
    def superuser_configured(self) -> bool:
        return bool(self.superuser_username and self.superuser_password)


@lru_cache
def get_settings() -> Settings:
    """Return the cached process-wide settings."""
    return Settings()
