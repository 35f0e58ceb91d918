"""
SearchSync Connection — Backend Client Construction
===================================================

Builds the Elasticsearch client that a SearchIndex acquires on start().

Settings can be passed explicitly or read from the environment:

    SEARCHSYNC_HOSTS            comma-separated node URLs (default http://localhost:9200)
    SEARCHSYNC_API_KEY          API key (takes precedence over basic auth)
    SEARCHSYNC_USERNAME         basic auth user
    SEARCHSYNC_PASSWORD         basic auth password
    SEARCHSYNC_VERIFY_CERTS     verify SSL certificates (default true)
    SEARCHSYNC_REQUEST_TIMEOUT  request timeout in seconds (default 30)
"""

import os
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Mapping, Tuple
from elasticsearch import Elasticsearch


DEFAULT_HOSTS = ["http://localhost:9200"]

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


@dataclass(frozen=True)
class ConnectionSettings:
    """Connection parameters for the search backend."""

    hosts: List[str] = field(default_factory=lambda: list(DEFAULT_HOSTS))
    api_key: Optional[str] = None
    basic_auth: Optional[Tuple[str, str]] = None
    verify_certs: bool = True
    request_timeout: float = 30.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ConnectionSettings":
        """Read settings from SEARCHSYNC_* environment variables."""
        env = os.environ if environ is None else environ

        hosts_value = env.get("SEARCHSYNC_HOSTS", "")
        hosts = [h.strip() for h in hosts_value.split(",") if h.strip()] or list(DEFAULT_HOSTS)

        username = env.get("SEARCHSYNC_USERNAME")
        password = env.get("SEARCHSYNC_PASSWORD")
        basic_auth = (username, password) if username and password else None

        verify_certs = True
        if "SEARCHSYNC_VERIFY_CERTS" in env:
            verify_certs = _parse_bool("SEARCHSYNC_VERIFY_CERTS", env["SEARCHSYNC_VERIFY_CERTS"])

        timeout_value = env.get("SEARCHSYNC_REQUEST_TIMEOUT", "30")
        try:
            request_timeout = float(timeout_value)
        except ValueError:
            raise ValueError(
                f"SEARCHSYNC_REQUEST_TIMEOUT must be a number, got {timeout_value!r}"
            ) from None

        return cls(
            hosts=hosts,
            api_key=env.get("SEARCHSYNC_API_KEY") or None,
            basic_auth=basic_auth,
            verify_certs=verify_certs,
            request_timeout=request_timeout,
        )

    def client_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for the Elasticsearch constructor."""
        conn_kwargs: Dict[str, Any] = {
            "hosts": list(self.hosts),
            "verify_certs": self.verify_certs,
            "request_timeout": self.request_timeout,
        }

        if self.api_key:
            conn_kwargs["api_key"] = self.api_key
        elif self.basic_auth:
            conn_kwargs["basic_auth"] = self.basic_auth

        return conn_kwargs


def connect(settings: Optional[ConnectionSettings] = None) -> Elasticsearch:
    """
    Open an Elasticsearch client.

    Args:
        settings: Connection parameters (default: read from the environment)

    Returns:
        A client; the caller owns it and must close() it
    """
    settings = settings or ConnectionSettings.from_env()
    return Elasticsearch(**settings.client_kwargs())
