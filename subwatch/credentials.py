"""Credential exchange: whatever turns a login into a token + cookie bundle.

The portal itself signs in through a browser; that flow lives outside this
package. Anything implementing ``CredentialExchange`` can be plugged into the
session manager. ``EnvCredentialExchange`` takes an already-issued token from
the environment.
"""
from __future__ import annotations

import base64
import binascii
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from subwatch.config import get_env
from subwatch.errors import AuthError
from subwatch.log import get_logger, mask_token

log = get_logger(__name__)


@dataclass(frozen=True)
class Credentials:
    token: str
    cookie_string: str
    identity: str


class CredentialExchange(ABC):
    @abstractmethod
    def login(self) -> Credentials:
        """Authenticate and return fresh credentials, or raise AuthError."""


def identity_from_token(token: str) -> str | None:
    """User id carried in a JWT payload (``userId``, ``sub`` or ``preferred_username``)."""
    parts = token.split(".")
    if len(parts) != 3:
        return None
    segment = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(segment.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError):
        return None
    if not isinstance(payload, dict):
        return None

    if payload.get("userId"):
        return str(payload["userId"])
    sub = payload.get("sub")
    if sub:
        # Composite subjects look like "f:<realm>:<id>"
        return str(sub).split(":")[-1]
    if payload.get("preferred_username"):
        return str(payload["preferred_username"])
    return None


class EnvCredentialExchange(CredentialExchange):
    def __init__(self, env_getter: Callable[..., str] = get_env) -> None:
        self._env = env_getter

    def login(self) -> Credentials:
        token = self._env("PORTAL_TOKEN").strip('"')
        if not token:
            raise AuthError("PORTAL_TOKEN is not set")
        identity = self._env("PORTAL_USER_ID") or identity_from_token(token)
        if not identity:
            raise AuthError("Could not determine the portal user id (set PORTAL_USER_ID)")
        log.info("Using portal token from environment %s for user %s", mask_token(token), identity)
        return Credentials(token=token, cookie_string=self._env("PORTAL_COOKIES"), identity=identity)
