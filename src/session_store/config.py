from __future__ import annotations

from typing import Any, Callable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.config.loader import get_bool_env, get_float_env, get_str_env

from .errors import ConfigurationError
from .quoting import DEFAULT_TABLE_NAME

DEFAULT_PRUNE_INTERVAL = 15 * 60

PruneInterval = Union[Literal[False], float]
Jitter = Callable[[float], float]


class SessionStoreConfig(BaseModel):
    """Options recognised by :class:`~src.session_store.store.PGSessionStore`."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    schema_name: Optional[str] = None
    table_name: str = DEFAULT_TABLE_NAME
    ttl: Optional[float] = Field(default=None, ge=0, description="Session lifetime in seconds.")
    create_table_if_missing: bool = False
    cache_provisioning_failure: bool = Field(
        default=False,
        description="Keep failing with the first provisioning error instead of retrying on the next query.",
    )
    disable_touch: bool = False
    error_log: Optional[Callable[..., Any]] = None
    prune_session_interval: PruneInterval = Field(
        default=DEFAULT_PRUNE_INTERVAL,
        description="Seconds between automatic prunes, or False to disable them.",
    )
    prune_session_randomized_interval: Union[Literal[False], Jitter, None] = None
    pool: Optional[Any] = None
    query_client: Optional[Any] = None
    con_string: Optional[str] = None
    con_object: Optional[dict[str, Any]] = None
    use_legacy_upsert: bool = False
    legacy_max_age_expiry: bool = Field(
        default=False,
        description="Derive expiry from cookie.maxAge milliseconds instead of cookie.expires.",
    )

    @field_validator("table_name")
    @classmethod
    def validate_table_name(cls, value: str) -> str:
        if not value:
            raise ValueError("table_name must not be empty")
        return value

    @field_validator("prune_session_interval", mode="before")
    @classmethod
    def validate_prune_interval(cls, value: Any) -> Any:
        if value is None:
            return DEFAULT_PRUNE_INTERVAL
        if value is False:
            return value
        if value is True or not isinstance(value, (int, float)):
            raise ValueError("prune_session_interval must be a number of seconds or False")
        if value <= 0:
            raise ValueError("prune_session_interval must be positive")
        return float(value)

    @classmethod
    def from_env(cls, **overrides: Any) -> "SessionStoreConfig":
        """Build a config from ``SESSION_*`` environment variables."""
        values: dict[str, Any] = {
            "con_string": get_str_env("SESSION_DB_URL") or get_str_env("DATABASE_URL") or None,
            "schema_name": get_str_env("SESSION_SCHEMA_NAME") or None,
            "table_name": get_str_env("SESSION_TABLE_NAME", DEFAULT_TABLE_NAME),
            "ttl": get_float_env("SESSION_TTL"),
            "create_table_if_missing": get_bool_env("SESSION_CREATE_TABLE", False),
            "disable_touch": get_bool_env("SESSION_DISABLE_TOUCH", False),
        }
        interval = get_str_env("SESSION_PRUNE_INTERVAL").lower()
        if interval in {"0", "false", "off"}:
            values["prune_session_interval"] = False
        elif interval:
            values["prune_session_interval"] = get_float_env("SESSION_PRUNE_INTERVAL")
        values.update(overrides)
        return build_config(values)


def build_config(options: Union[SessionStoreConfig, dict[str, Any], None] = None) -> SessionStoreConfig:
    if isinstance(options, SessionStoreConfig):
        return options
    try:
        return SessionStoreConfig(**(options or {}))
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc
