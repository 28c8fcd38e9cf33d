from __future__ import annotations

"""Client credential helpers for authenticated web service sessions.

The web service authenticates robot clients with a key/secret pair; the pair
is validated here and then handed to the remote API client, which signs each
request with it.
"""

import os
from dataclasses import dataclass

from .errors import AuthenticationError


@dataclass(frozen=True)
class ClientCredentials:
    """Key/secret pair identifying this client to the web service."""

    client_key: str = ""
    client_secret: str = ""

    @property
    def empty(self) -> bool:
        """True when neither key nor secret is set."""
        return not self.client_key and not self.client_secret


def validate_credential_pair(client_key: str, client_secret: str) -> ClientCredentials:
    """Return credentials for the pair, rejecting a half-empty one."""
    if bool(client_key) != bool(client_secret):
        missing = "client_secret" if client_key else "client_key"
        raise AuthenticationError(
            f"incomplete client credentials: {missing} is empty"
        )
    return ClientCredentials(client_key=client_key, client_secret=client_secret)


def load_client_credentials(
    *,
    client_key: str | None = None,
    client_secret: str | None = None,
) -> ClientCredentials:
    """Resolve credentials from explicit values, falling back to env vars."""
    resolved_key = client_key or os.environ.get("DP2_CLIENT_KEY") or ""
    resolved_secret = client_secret or os.environ.get("DP2_CLIENT_SECRET") or ""
    return validate_credential_pair(resolved_key, resolved_secret)
