"""Settings for the campus ledger backend."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEV_SECRET_KEY = "dev-secret-change-me"


def _env_field(default, *env_names: str):
	if env_names:
		alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
		return Field(default=default, validation_alias=alias)
	return Field(default=default)


class Settings(BaseSettings):
	redis_url: str = _env_field("redis://localhost:6379/0", "REDIS_URL")
	secret_key: str = _env_field(DEV_SECRET_KEY, "SECRET_KEY")
	jwt_issuer: str = _env_field("campus-auth", "JWT_ISSUER")
	jwt_audience: str = _env_field("campus-ledger", "JWT_AUDIENCE")

	environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
	obs_enabled: bool = _env_field(True, "OBS_ENABLED")
	obs_metrics_public: bool = _env_field(False, "OBS_METRICS_PUBLIC")
	obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
	obs_admin_token: Optional[str] = _env_field(None, "OBS_ADMIN_TOKEN")
	service_name: str = _env_field("campus-ledger-api", "SERVICE_NAME")
	git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")

	cors_allow_origins: Any = _env_field((), "CORS_ALLOW_ORIGINS")

	# Optimistic transactions re-run from scratch after a WATCH conflict
	store_max_attempts: int = _env_field(5, "STORE_MAX_ATTEMPTS")
	store_backoff_base_seconds: float = _env_field(0.01, "STORE_BACKOFF_BASE_SECONDS")
	# Idle wait between pub/sub polls for live subscriptions
	subscription_poll_seconds: float = _env_field(0.5, "SUBSCRIPTION_POLL_SECONDS")

	club_max_admins: int = _env_field(3, "CLUB_MAX_ADMINS")
	ledger_page_size: int = _env_field(20, "LEDGER_PAGE_SIZE")

	def is_prod(self) -> bool:
		return self.environment.lower() in ("prod", "production", "live")

	def is_dev(self) -> bool:
		return self.environment.lower() in ("dev", "development")

	model_config = SettingsConfigDict(
		env_prefix="",
		env_file=".env",
		case_sensitive=False,
		extra="ignore",
	)

	@field_validator("cors_allow_origins", mode="before")
	@classmethod
	def _split_cors(cls, value):
		if value in (None, ""):
			return ()
		if isinstance(value, str):
			return tuple(part.strip() for part in value.split(",") if part.strip())
		if isinstance(value, (list, tuple, set)):
			return tuple(str(item).strip() for item in value if str(item).strip())
		return ()

	@field_validator("store_max_attempts", "club_max_admins", "ledger_page_size")
	@classmethod
	def _at_least_one(cls, value: int) -> int:
		if value < 1:
			raise ValueError("must be >= 1")
		return value


def _normalise_level(level: str) -> str:
	return level.upper()


settings = Settings()
settings.obs_log_level = _normalise_level(settings.obs_log_level)
