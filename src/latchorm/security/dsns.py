"""DSN parsing for connection configuration and integration-test gating."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import parse_qs, urlencode, urlparse

from .redaction import REDACTED_VALUE, redact_query_params

KNOWN_SCHEMES = ("sqlite", "postgres", "postgresql", "mysql")


@dataclass
class DSNConfig:
    driver: str
    username: Optional[str]
    password: Optional[str]
    host: Optional[str]
    port: Optional[int]
    database: Optional[str]
    path: str
    query: dict[str, str] = field(default_factory=dict)

    @property
    def backend(self) -> str:
        """Normalised backend name: ``sqlite``, ``postgres`` or ``mysql``."""
        scheme = self.driver.split("+", 1)[0]
        return "postgres" if scheme == "postgresql" else scheme

    def redacted(self) -> str:
        """
        Return the DSN with credentials and sensitive query values masked.
        """
        netloc = ""
        if self.username:
            netloc += self.username
            if self.password:
                netloc += f":{REDACTED_VALUE}"
            netloc += "@"
        if self.host:
            netloc += self.host
        if self.port:
            netloc += f":{self.port}"

        query = redact_query_params(self.query) if self.query else {}
        query_string = urlencode(query, safe="*") if query else ""

        # Keep the double slash even when netloc is empty (sqlite:///path).
        result = f"{self.driver}://{netloc}{self.path or ''}"
        if query_string:
            result += f"?{query_string}"
        return result


def parse_dsn(dsn: str) -> DSNConfig:
    parsed = urlparse(dsn)
    if not parsed.scheme:
        raise ValueError("DSN is missing a scheme (expected e.g. postgres://...)")
    scheme = parsed.scheme.split("+", 1)[0]
    if scheme not in KNOWN_SCHEMES:
        raise ValueError(f"Unsupported DSN scheme '{parsed.scheme}'")
    query = {k: v[0] for k, v in parse_qs(parsed.query).items()}
    return DSNConfig(
        driver=parsed.scheme,
        username=parsed.username,
        password=parsed.password,
        host=parsed.hostname,
        port=parsed.port,
        database=parsed.path.lstrip("/") or None,
        path=parsed.path or "",
        query=query,
    )


def dsn_from_env(env_var: str, *, required: bool = True) -> DSNConfig | None:
    """
    Parse the DSN held in ``env_var``. Returns ``None`` for an unset variable
    unless ``required`` is true.
    """
    value = os.getenv(env_var)
    if not value:
        if required:
            raise ValueError(f"Environment variable {env_var} is not set")
        return None
    return parse_dsn(value)
