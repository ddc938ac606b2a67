from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = ".linguascope"
LLM_TRANSPORTS: frozenset[str] = frozenset({"direct", "proxy"})
MODEL_TIERS: frozenset[str] = frozenset({"fast", "quality"})
_DATA_DIR_RELATIVE_DEFAULTS: tuple[tuple[str, Path], ...] = (("log_dir", Path("logs")),)
_PATH_FIELDS: tuple[str, ...] = (
    "data_dir",
    *(field_name for field_name, _ in _DATA_DIR_RELATIVE_DEFAULTS),
)
_BOOLEAN_COERCION_FIELDS: tuple[str, ...] = ("telemetry_enabled",)


def _default_in_data_dir(relative_path: Path) -> Path:
    return Path(DEFAULT_DATA_DIR) / relative_path


def _data_dir_default_note(relative_path: Path) -> str:
    return f"Defaults to `${{LINGUASCOPE_DATA_DIR}}/{relative_path}` when not explicitly set."


def _resolve_path(value: str | Path) -> Path:
    return Path(value).expanduser().resolve()


def _parse_bool_with_default(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value == 1:
            return True
        if value == 0:
            return False
        return default
    if not isinstance(value, str):
        return default

    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _normalize_optional_text(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    if normalized:
        return normalized
    return None


class AppSettings(BaseSettings):
    """
    Canonical runtime configuration.

    Every option is read from a `LINGUASCOPE_*` environment variable (or `.env`).
    The provider credential lives here and nowhere else; pipeline code only ever
    sees an already-built gateway.
    """

    model_config = SettingsConfigDict(
        env_prefix="LINGUASCOPE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Core paths.
    data_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR),
        description="Root runtime directory for logs.",
    )

    # LLM provider and transport.
    gemini_api_key: str | None = Field(
        default=None,
        description="Google Gemini API key. Required when llm_transport=direct.",
    )
    llm_transport: Literal["direct", "proxy"] = Field(
        default="direct",
        description=(
            "How the job pipeline reaches the model. `direct` calls Gemini in-process; "
            "`proxy` posts every operation to a remote `/api/proxy` endpoint."
        ),
    )
    proxy_url: str | None = Field(
        default=None,
        description="Full URL of the remote proxy endpoint. Required when llm_transport=proxy.",
    )
    proxy_timeout_seconds: float = Field(
        default=120.0,
        description="HTTP timeout for calls to the remote proxy endpoint.",
    )
    analysis_model: str = Field(
        default="gemini-2.5-flash",
        description="Model used for analysis and both translation calls.",
    )
    detection_model: str = Field(
        default="gemini-2.5-flash",
        description="Model used for language detection (always with thinking disabled).",
    )
    enhance_model: str = Field(
        default="gemini-2.5-flash",
        description="Model used by the readability enhancer.",
    )
    default_model_tier: Literal["fast", "quality"] = Field(
        default="fast",
        description="Model tier used when a job submission does not pick one.",
    )

    # Language policy.
    target_language: str = Field(
        default="ko",
        description="Target display language; content already in it is not translated.",
    )
    detection_fallback_language: str = Field(
        default="en",
        description="Code used when the detector reply is not a two-letter code.",
    )
    detection_sample_chars: int = Field(
        default=1000,
        ge=1,
        description="Number of text characters sent to the language detector.",
    )

    # Content fetching and extraction.
    cors_relay_prefix: str = Field(
        default="https://corsproxy.io/?",
        description="Relay prefix; the URL-encoded target URL is appended to it.",
    )
    fetch_timeout_seconds: float = Field(
        default=30.0,
        description="HTTP timeout for content fetches through the relay.",
    )
    fetch_user_agent: str = Field(
        default="linguascope/0.1",
        description="User-Agent sent with content fetches.",
    )
    readability_min_chars: int = Field(
        default=100,
        ge=0,
        description=(
            "Minimum text length accepted from the readability stage before falling "
            "back to manual boilerplate removal."
        ),
    )

    # Logging.
    log_dir: Path = Field(
        default=_default_in_data_dir(Path("logs")),
        description=f"Directory for backend log files. {_data_dir_default_note(Path('logs'))}",
    )
    log_level: str = Field(
        default="INFO",
        description="Console log level (stdout).",
    )

    # Telemetry.
    telemetry_enabled: bool = Field(
        default=True,
        description="Enable lightweight internal telemetry events.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="log",
        description=(
            "Telemetry sink backend. `log` emits structured telemetry locally; "
            "`none` disables sink output."
        ),
    )

    @field_validator("llm_transport", mode="before")
    @classmethod
    def _normalize_transport(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("LINGUASCOPE_LLM_TRANSPORT must be a string.")
        normalized = value.strip().lower()
        if normalized in LLM_TRANSPORTS:
            return normalized
        raise ValueError("LINGUASCOPE_LLM_TRANSPORT must be set to: direct, proxy.")

    @field_validator("default_model_tier", mode="before")
    @classmethod
    def _normalize_model_tier(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("LINGUASCOPE_DEFAULT_MODEL_TIER must be a string.")
        normalized = value.strip().lower()
        if normalized in MODEL_TIERS:
            return normalized
        raise ValueError("LINGUASCOPE_DEFAULT_MODEL_TIER must be set to: fast, quality.")

    @field_validator("telemetry_sink", mode="before")
    @classmethod
    def _normalize_telemetry_sink(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("LINGUASCOPE_TELEMETRY_SINK must be a string.")
        normalized = value.strip().lower()
        if normalized in {"none", "log"}:
            return normalized
        raise ValueError("LINGUASCOPE_TELEMETRY_SINK must be set to: none, log.")

    @field_validator("target_language", "detection_fallback_language", mode="before")
    @classmethod
    def _normalize_language_code(cls, value: Any, info: ValidationInfo) -> str:
        env_name = f"LINGUASCOPE_{str(info.field_name).upper()}"
        if not isinstance(value, str):
            raise ValueError(f"{env_name} must be a string.")
        normalized = value.strip().lower()
        if len(normalized) != 2 or not normalized.isascii() or not normalized.isalpha():
            raise ValueError(f"{env_name} must be a two-letter ISO 639-1 code.")
        return normalized

    @field_validator("cors_relay_prefix", mode="before")
    @classmethod
    def _normalize_relay_prefix(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("LINGUASCOPE_CORS_RELAY_PREFIX must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("LINGUASCOPE_CORS_RELAY_PREFIX must not be empty.")
        return normalized

    @field_validator(*_PATH_FIELDS, mode="before")
    @classmethod
    def _normalize_paths(cls, value: Any) -> Any:
        if value is None:
            return None
        return _resolve_path(value)

    @field_validator(*_BOOLEAN_COERCION_FIELDS, mode="before")
    @classmethod
    def _normalize_booleans(cls, value: Any, info: ValidationInfo) -> bool:
        field_name = info.field_name
        assert field_name is not None
        default_value = cls.model_fields[field_name].default
        assert isinstance(default_value, bool)
        return _parse_bool_with_default(value, default=default_value)

    @field_validator("gemini_api_key", "proxy_url", mode="before")
    @classmethod
    def _normalize_optional_strings(cls, value: Any) -> str | None:
        return _normalize_optional_text(value)


def _validate_transport_configuration(
    *,
    llm_transport: str,
    gemini_api_key: str | None,
    proxy_url: str | None,
) -> None:
    errors: list[str] = []

    if llm_transport == "direct" and gemini_api_key is None:
        errors.append("LINGUASCOPE_GEMINI_API_KEY is required when LLM transport is direct.")
    if llm_transport == "proxy" and proxy_url is None:
        errors.append("LINGUASCOPE_PROXY_URL is required when LLM transport is proxy.")

    if errors:
        bullets = "\n".join(f"- {message}" for message in errors)
        raise ValueError(f"Invalid LLM transport configuration:\n{bullets}")


def _apply_path_defaults(settings: AppSettings) -> AppSettings:
    updates: dict[str, Path] = {}
    for field_name, relative_default in _DATA_DIR_RELATIVE_DEFAULTS:
        if field_name in settings.model_fields_set:
            continue
        updates[field_name] = settings.data_dir / relative_default
    if not updates:
        return settings
    return settings.model_copy(update=updates)


def _resolve_path_fields(settings: AppSettings) -> AppSettings:
    resolved_updates = {
        field_name: _resolve_path(getattr(settings, field_name)) for field_name in _PATH_FIELDS
    }
    return settings.model_copy(update=resolved_updates)


def load_settings(*, validate_transport: bool = True) -> AppSettings:
    settings = AppSettings()
    settings = _apply_path_defaults(settings)
    settings = _resolve_path_fields(settings)

    if validate_transport:
        _validate_transport_configuration(
            llm_transport=settings.llm_transport,
            gemini_api_key=settings.gemini_api_key,
            proxy_url=settings.proxy_url,
        )

    return settings
