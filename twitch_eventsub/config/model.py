from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from ..constants import (
    DEFAULT_EXTERNAL_PORT,
    DEFAULT_LISTENER_PORT,
    EVENTSUB_DEDUP_CACHE_SIZE,
    EVENTSUB_HANDLER_TIMEOUT,
    EVENTSUB_LEGACY_REJECTION_STATUS,
    EVENTSUB_MAX_MESSAGE_AGE_SECONDS,
)

_TRUTHY = ("true", "1", "yes", "on")


def normalize_path_prefix(value: Any) -> str | None:
    """Normalize a path prefix to ``/a/b`` form.

    Leading and trailing slashes are stripped and a single leading slash is
    re-added. Empty prefixes (``""``, ``"/"``) become ``None``.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("path_prefix must be a string")
    stripped = value.strip().strip("/")
    if not stripped:
        return None
    return f"/{stripped}"


PathPrefix = Annotated[str | None, BeforeValidator(normalize_path_prefix)]


class ListenerConfig(BaseModel):
    """Settings of an EventSub listener.

    Attributes:
        secret: Shared secret used to sign callbacks (10 to 100 characters).
        strict_host_check: Reject requests whose Host header does not match the adapter host.
        handler_timeout: Seconds a user callback may run before it is abandoned.
        dedup_cache_size: Number of recent message ids remembered.
        max_message_age: Seconds after which a message is rejected as a replay; None disables.
        legacy_rejection_status: Status returned on the legacy single-segment callback path.
    """

    model_config = ConfigDict(frozen=True)

    secret: str = Field(min_length=10, max_length=100)
    strict_host_check: bool = True
    handler_timeout: float = Field(default=EVENTSUB_HANDLER_TIMEOUT, gt=0)
    dedup_cache_size: int = Field(default=EVENTSUB_DEDUP_CACHE_SIZE, ge=1)
    max_message_age: int | None = Field(default=EVENTSUB_MAX_MESSAGE_AGE_SECONDS, gt=0)
    legacy_rejection_status: int = EVENTSUB_LEGACY_REJECTION_STATUS

    @field_validator("secret")
    @classmethod
    def validate_secret(cls, v: str) -> str:
        if not v.isascii():
            raise ValueError("secret must be ASCII")
        return v

    @field_validator("legacy_rejection_status")
    @classmethod
    def validate_legacy_status(cls, v: int) -> int:
        if not 400 <= v < 500:
            raise ValueError("legacy_rejection_status must be a 4xx status")
        return v

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> ListenerConfig:
        """Build a config from ``TWITCH_EVENTSUB_*`` environment variables.

        Args:
            env: Mapping to read from, defaults to ``os.environ``.

        Returns:
            ListenerConfig instance.

        Raises:
            pydantic.ValidationError: If the secret is missing or a value is invalid.
        """
        source = os.environ if env is None else env
        data: dict[str, Any] = {"secret": source.get("TWITCH_EVENTSUB_SECRET", "")}
        if "TWITCH_EVENTSUB_STRICT_HOST_CHECK" in source:
            data["strict_host_check"] = (
                source["TWITCH_EVENTSUB_STRICT_HOST_CHECK"].lower() in _TRUTHY
            )
        if "TWITCH_EVENTSUB_HANDLER_TIMEOUT" in source:
            data["handler_timeout"] = source["TWITCH_EVENTSUB_HANDLER_TIMEOUT"]
        if "TWITCH_EVENTSUB_DEDUP_CACHE_SIZE" in source:
            data["dedup_cache_size"] = source["TWITCH_EVENTSUB_DEDUP_CACHE_SIZE"]
        if "TWITCH_EVENTSUB_MAX_MESSAGE_AGE" in source:
            raw_age = source["TWITCH_EVENTSUB_MAX_MESSAGE_AGE"].strip().lower()
            data["max_message_age"] = None if raw_age in ("", "0", "none") else raw_age
        return cls.model_validate(data)


class ReverseProxyAdapterConfig(BaseModel):
    """Configuration of the reverse proxy connection adapter.

    Attributes:
        host_name: The host name the reverse proxy is available under.
        port: The local port the listener binds to (the proxy forwards here).
        external_port: The port on which the reverse proxy is available.
        path_prefix: The path prefix the reverse proxy forwards to the listener.
        use_path_prefix_in_handlers: Whether requests still carry the prefix when they reach the listener.
        bind_host: Local interface to bind.
    """

    model_config = ConfigDict(frozen=True)

    host_name: str = Field(min_length=1)
    port: int = Field(default=8080, ge=0, le=65535)
    external_port: int = Field(default=DEFAULT_EXTERNAL_PORT, ge=1, le=65535)
    path_prefix: PathPrefix = None
    use_path_prefix_in_handlers: bool = False
    bind_host: str = "0.0.0.0"


class DirectConnectionAdapterConfig(BaseModel):
    """Configuration of the direct connection adapter.

    Attributes:
        host_name: Externally visible host name; resolved from the local FQDN when omitted.
        listener_port: Port to bind and advertise.
        bind_host: Local interface to bind.
        path_prefix: Optional path prefix for all routes.
        ssl_cert_file: Full certificate chain (PEM), including intermediates.
        ssl_key_file: Private key of the certificate (PEM).
    """

    model_config = ConfigDict(frozen=True)

    host_name: str | None = None
    listener_port: int = Field(default=DEFAULT_LISTENER_PORT, ge=0, le=65535)
    bind_host: str = "0.0.0.0"
    path_prefix: PathPrefix = None
    ssl_cert_file: str | None = None
    ssl_key_file: str | None = None

    @model_validator(mode="after")
    def validate_ssl_pair(self) -> DirectConnectionAdapterConfig:
        """Certificate and key must be supplied together."""
        if bool(self.ssl_cert_file) != bool(self.ssl_key_file):
            raise ValueError("ssl_cert_file and ssl_key_file must be given together")
        return self


class ServiceSettings(BaseModel):
    """Settings of the bundled listener service.

    Attributes:
        client_id: Twitch application client id.
        client_secret: Twitch application client secret (app access tokens).
        host_name: Public host name the reverse proxy is reachable under.
        port: Local port the listener binds.
        external_port: Public port of the reverse proxy.
        path_prefix: Path prefix the reverse proxy forwards.
        state_file: JSON file for resumable subscription state; in-memory when None.
        stream_offline_users: Broadcaster ids to watch for stream.offline.
    """

    model_config = ConfigDict(frozen=True)

    client_id: str = Field(min_length=1)
    client_secret: str = Field(min_length=1)
    host_name: str = Field(min_length=1)
    port: int = Field(default=8080, ge=0, le=65535)
    external_port: int = Field(default=DEFAULT_EXTERNAL_PORT, ge=1, le=65535)
    path_prefix: PathPrefix = None
    state_file: str | None = None
    stream_offline_users: tuple[str, ...] = ()

    @field_validator("stream_offline_users", mode="before")
    @classmethod
    def split_user_ids(cls, v: Any) -> Any:
        if isinstance(v, str):
            return tuple(part.strip() for part in v.split(",") if part.strip())
        return v

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> ServiceSettings:
        """Build settings from ``TWITCH_*`` environment variables.

        Raises:
            pydantic.ValidationError: If a required variable is missing or invalid.
        """
        source = os.environ if env is None else env
        data: dict[str, Any] = {
            "client_id": source.get("TWITCH_CLIENT_ID", ""),
            "client_secret": source.get("TWITCH_CLIENT_SECRET", ""),
            "host_name": source.get("TWITCH_EVENTSUB_HOST", ""),
            "path_prefix": source.get("TWITCH_EVENTSUB_PATH_PREFIX"),
            "state_file": source.get("TWITCH_EVENTSUB_STATE_FILE") or None,
            "stream_offline_users": source.get("TWITCH_EVENTSUB_STREAM_OFFLINE_USERS", ""),
        }
        if source.get("TWITCH_EVENTSUB_PORT"):
            data["port"] = source["TWITCH_EVENTSUB_PORT"]
        if source.get("TWITCH_EVENTSUB_EXTERNAL_PORT"):
            data["external_port"] = source["TWITCH_EVENTSUB_EXTERNAL_PORT"]
        return cls.model_validate(data)
