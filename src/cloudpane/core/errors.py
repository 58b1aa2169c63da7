"""Exception hierarchy for cloudpane.

Errors fall into the categories the orchestrator cares about:
- Module lifecycle errors (construction, initialization, bad transitions)
- Registry contract violations (duplicate keys), raised at startup
- Remote errors surfaced by the gateway after admission and retry
- Configuration errors
"""

from __future__ import annotations

from typing import Optional


class CloudpaneError(Exception):
    """Base class for all cloudpane errors."""


class ConfigError(CloudpaneError):
    """Configuration file could not be read or validated."""


# ============================================================================
# Module errors
# ============================================================================


class ModuleError(CloudpaneError):
    """Base class for module lifecycle errors."""

    def __init__(self, key: str, message: str) -> None:
        self.key = key
        super().__init__(f"{key}: {message}")


class UnknownModuleError(ModuleError):
    """Requested module key was never registered."""

    def __init__(self, key: str) -> None:
        super().__init__(key, "module is not registered")


class DuplicateModuleError(ModuleError):
    """A module key was registered twice."""

    def __init__(self, key: str) -> None:
        super().__init__(key, "module key is already registered")


class ModuleConstructionError(ModuleError):
    """The module factory raised; no instance was cached."""

    def __init__(self, key: str, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(key, f"construction failed: {cause}")


class ModuleInitError(ModuleError):
    """initialize/reinitialize raised; the instance is left in Error state."""

    def __init__(self, key: str, cause: BaseException, module: object = None) -> None:
        self.cause = cause
        self.module = module
        super().__init__(key, f"initialization failed: {cause}")


class InvalidTransition(ModuleError):
    """A module was asked for a state change its lifecycle does not allow."""

    def __init__(self, key: str, source: str, target: str) -> None:
        self.source = source
        self.target = target
        super().__init__(key, f"cannot move from {source} to {target}")


# ============================================================================
# Remote errors
# ============================================================================


class RemoteError(CloudpaneError):
    """An outbound call failed.

    Attributes:
        status: HTTP-style status code, if the failure carried one.
    """

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        self.status = status
        super().__init__(message)


class RemoteStatusError(RemoteError):
    """The remote answered with a non-success status."""

    def __init__(self, status: int, message: str = "") -> None:
        text = message or f"remote returned HTTP {status}"
        super().__init__(text, status=status)


class TransientRemoteError(RemoteError):
    """Retries were exhausted on a transient failure."""

    def __init__(self, message: str, attempts: int, status: Optional[int] = None) -> None:
        self.attempts = attempts
        super().__init__(message, status=status)
