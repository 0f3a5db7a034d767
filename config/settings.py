"""
Environment-driven settings for the gateway.

Loaded once at startup from the process environment and ``.env``. Missing
required variables are fatal: the app refuses to boot rather than failing
on the first request.
"""
from typing import Annotated, Any, Tuple

from pydantic import Field, ValidationError, ValidationInfo, field_validator
from pydantic_core import PydanticCustomError
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

PLAID_ENVIRONMENTS = ("sandbox", "development", "production")

CsvTuple = Annotated[Tuple[str, ...], NoDecode]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    plaid_client_id: str
    plaid_secret: str
    jwt_secret: str
    database_url: str
    plaid_env: str = "sandbox"
    plaid_country_codes: CsvTuple = ("US",)
    plaid_redirect_uri: str = "tradelog://plaid-success"
    jwt_expires_in: str = "7d"
    allowed_origins: CsvTuple = ("tradelog://",)
    rate_limit_window_ms: int = 15 * 60 * 1000
    rate_limit_max_requests: int = Field(default=100, ge=1)
    apple_app_ids: CsvTuple = ()
    app_env: str = "development"

    @field_validator("plaid_client_id", "plaid_secret", "database_url", mode="before")
    @classmethod
    def strip_required(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("plaid_client_id", "plaid_secret", "jwt_secret", "database_url")
    @classmethod
    def reject_blank(cls, v: str) -> str:
        if not v.strip():
            raise PydanticCustomError("blank", "Field is blank")
        return v

    @field_validator("plaid_env", "app_env", mode="before")
    @classmethod
    def normalize_name(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("plaid_env")
    @classmethod
    def validate_plaid_env(cls, v: str) -> str:
        if v not in PLAID_ENVIRONMENTS:
            raise ValueError(f"must be one of {', '.join(PLAID_ENVIRONMENTS)} (got {v!r})")
        return v

    @field_validator("plaid_country_codes", "allowed_origins", "apple_app_ids", mode="before")
    @classmethod
    def split_csv(cls, v: Any) -> Any:
        """Accept ``a, b,`` style comma lists from the environment."""
        if isinstance(v, str):
            return tuple(s.strip() for s in v.split(",") if s.strip())
        return v

    @field_validator("plaid_country_codes", "allowed_origins")
    @classmethod
    def fall_back_when_empty(cls, v: Tuple[str, ...], info: ValidationInfo) -> Tuple[str, ...]:
        return v or cls.model_fields[info.field_name].default

    @property
    def rate_limit(self) -> str:
        """slowapi limit string, e.g. ``100/900 seconds``."""
        window_s = max(1, self.rate_limit_window_ms // 1000)
        return f"{self.rate_limit_max_requests}/{window_s} seconds"


def load_settings(**overrides: Any) -> Settings:
    """Build Settings from the environment. Raises RuntimeError listing every missing var."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        missing = []
        invalid = []
        for err in e.errors():
            name = str(err["loc"][0]).upper() if err["loc"] else "?"
            if err["type"] in ("missing", "blank"):
                missing.append(name)
            else:
                invalid.append(f"{name}: {err['msg']}")
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            ) from e
        raise RuntimeError(f"Invalid configuration: {'; '.join(invalid)}") from e
