"""Credential seam for outbound calls.

Credential discovery belongs to process bootstrap. This module only offers
the small interface the gateway needs (a bearer token on demand) plus a
gcloud-backed implementation used by the CLI.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import subprocess
import time
from dataclasses import dataclass
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

TOKEN_ENV_VARS = ("CLOUDPANE_ACCESS_TOKEN", "GOOGLE_OAUTH_ACCESS_TOKEN")

# gcloud access tokens live for an hour; refresh well before that.
TOKEN_LIFETIME_SECONDS = 50 * 60


class CredentialProvider(Protocol):
    """Anything that can produce a bearer token."""

    async def token(self) -> Optional[str]:
        ...


@dataclass
class AuthState:
    """Result of the startup credential check."""

    authenticated: bool = False
    project_id: Optional[str] = None
    user_email: str = "unknown"
    error: Optional[str] = None


class StaticCredentials:
    """Fixed token, or no token at all (tests, public endpoints)."""

    def __init__(self, token: Optional[str] = None):
        self._token = token

    async def token(self) -> Optional[str]:
        return self._token


class GcloudCredentials:
    """Token from the environment, falling back to ``gcloud``."""

    def __init__(self, gcloud: str = "gcloud"):
        self._gcloud = gcloud
        self._token: Optional[str] = None
        self._fetched_at = 0.0
        self._lock = asyncio.Lock()

    async def token(self) -> Optional[str]:
        for var in TOKEN_ENV_VARS:
            value = os.environ.get(var)
            if value:
                return value

        async with self._lock:
            if self._token and time.monotonic() - self._fetched_at < TOKEN_LIFETIME_SECONDS:
                return self._token
            self._token = await self._print_access_token()
            self._fetched_at = time.monotonic()
            return self._token

    async def _print_access_token(self) -> Optional[str]:
        if shutil.which(self._gcloud) is None:
            logger.warning("gcloud not found on PATH; requests will be unauthenticated")
            return None
        proc = await asyncio.create_subprocess_exec(
            self._gcloud,
            "auth",
            "print-access-token",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            logger.error(f"gcloud auth print-access-token failed: {stderr.decode().strip()}")
            return None
        return stdout.decode().strip() or None


def _gcloud_value(gcloud: str, *args: str) -> Optional[str]:
    try:
        completed = subprocess.run(
            [gcloud, *args],
            capture_output=True,
            text=True,
            timeout=10,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"gcloud {' '.join(args)} failed: {e}")
        return None
    value = completed.stdout.strip()
    if completed.returncode != 0 or not value or value == "(unset)":
        return None
    return value


def authenticate(project_override: Optional[str] = None, gcloud: str = "gcloud") -> AuthState:
    """Check for usable credentials and work out the project.

    Project priority: explicit override, then the gcloud default project.

    Args:
        project_override: Project ID from the CLI, environment or config.
        gcloud: gcloud executable name.

    Returns:
        AuthState describing what was found.
    """
    state = AuthState(project_id=project_override or None)

    if any(os.environ.get(var) for var in TOKEN_ENV_VARS):
        state.authenticated = True
    elif shutil.which(gcloud) is not None:
        account = _gcloud_value(gcloud, "config", "get-value", "account")
        state.authenticated = account is not None
        state.user_email = account or "unknown"
    else:
        state.error = "no access token in environment and gcloud is not installed"

    if state.project_id is None and shutil.which(gcloud) is not None:
        state.project_id = _gcloud_value(gcloud, "config", "get-value", "project")

    logger.info(
        f"Auth: authenticated={state.authenticated} project={state.project_id} "
        f"account={state.user_email}"
    )
    return state
