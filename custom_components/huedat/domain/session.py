"""Bridge connection session."""

from __future__ import annotations

from dataclasses import dataclass, field
import time

from ..const import LOOPBACK_HOSTS


@dataclass(frozen=True, slots=True)
class ConnectionSession:
    """Address and credentials of the bridge the engine talks to.

    Sessions are immutable; connecting to another bridge replaces the whole
    object.
    """

    host: str
    app_key: str = field(repr=False)
    created_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        """Normalise the host and reject loopback addresses."""

        host = str(self.host).strip().rstrip("/")
        if host.startswith("https://"):
            host = host[len("https://") :]
        elif host.startswith("http://"):
            host = host[len("http://") :]
        if not host:
            raise ValueError("host must not be empty")
        if host.lower() in LOOPBACK_HOSTS:
            raise ValueError(f"Refusing loopback bridge address: {host}")
        object.__setattr__(self, "host", host)

    @property
    def base_url(self) -> str:
        """Return the HTTPS base URL for the bridge."""

        return f"https://{self.host}"
