"""Module registry with lazy construction and hot re-initialization.

Modules are registered by key with a factory and constructed on first
access. Construction hands the factory the shared cache; initialization
binds the instance to the current parameter (the active project).

Example:
    registry = ModuleRegistry(cache)
    registry.register("redis", lambda cache: ResourceListModule(cache, gateway, REDIS))

    module = registry.get_or_initialize("redis", "my-project")

    # Project switch: only already-constructed modules are touched
    failures = registry.reinitialize_all("other-project")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from cloudpane.core.cache import TTLCache
from cloudpane.core.errors import (
    DuplicateModuleError,
    ModuleConstructionError,
    ModuleInitError,
    UnknownModuleError,
)

if TYPE_CHECKING:
    from cloudpane.modules.base import Module

logger = logging.getLogger(__name__)

ModuleFactory = Callable[[TTLCache], "Module"]


@dataclass(frozen=True)
class ModuleDescriptor:
    """Registration record for one module type."""

    key: str
    factory: ModuleFactory
    name: str = ""
    category: str = ""
    description: str = ""

    @property
    def display_name(self) -> str:
        return self.name or self.key


class ModuleRegistry:
    """Owns every module instance for the lifetime of the process.

    Registration happens once at startup. After that the registry is only
    touched from the event loop, so it does no locking of its own.
    """

    def __init__(self, cache: TTLCache):
        self._cache = cache
        self._descriptors: Dict[str, ModuleDescriptor] = {}
        self._instances: Dict[str, "Module"] = {}
        # key -> parameter the instance was last successfully initialized with
        self._initialized: Dict[str, str] = {}
        self._param: Optional[str] = None

    @property
    def cache(self) -> TTLCache:
        return self._cache

    @property
    def param(self) -> Optional[str]:
        """Parameter new modules are initialized with."""
        return self._param

    def register(
        self,
        key: str,
        factory: ModuleFactory,
        *,
        name: str = "",
        category: str = "",
        description: str = "",
    ) -> ModuleDescriptor:
        """Register a module factory.

        Args:
            key: Unique module key (also its palette/sidebar identifier).
            factory: Called with the shared cache to build the module.
            name: Display name.
            category: Grouping label for menus.
            description: One-line palette description.

        Returns:
            The stored descriptor.

        Raises:
            DuplicateModuleError: If the key is already registered.
        """
        if key in self._descriptors:
            raise DuplicateModuleError(key)
        descriptor = ModuleDescriptor(
            key=key, factory=factory, name=name, category=category, description=description
        )
        self._descriptors[key] = descriptor
        logger.debug(f"Registry: registered module '{key}'")
        return descriptor

    def keys(self) -> List[str]:
        """Registered keys in registration order."""
        return list(self._descriptors)

    def descriptors(self) -> List[ModuleDescriptor]:
        return list(self._descriptors.values())

    def descriptor(self, key: str) -> ModuleDescriptor:
        try:
            return self._descriptors[key]
        except KeyError:
            raise UnknownModuleError(key) from None

    def is_registered(self, key: str) -> bool:
        return key in self._descriptors

    def instance(self, key: str) -> Optional["Module"]:
        """Constructed instance for a key, or None (never constructs)."""
        return self._instances.get(key)

    def constructed(self) -> List[str]:
        """Keys of modules constructed so far."""
        return list(self._instances)

    def set_param(self, param: Optional[str]) -> None:
        self._param = param

    def get_or_initialize(self, key: str, param: Optional[str] = None) -> "Module":
        """Return the module for ``key``, constructing and initializing lazily.

        Args:
            key: Registered module key.
            param: Parameter to initialize with; defaults to the registry's
                current parameter.

        Returns:
            The initialized module instance (the same object on every call).

        Raises:
            UnknownModuleError: The key was never registered.
            ModuleConstructionError: The factory raised; nothing was cached.
            ModuleInitError: initialize/reinitialize raised; the instance is
                cached in its Error state and available as ``error.module``.
        """
        descriptor = self.descriptor(key)
        if param is None:
            param = self._param
        else:
            self._param = param

        module = self._instances.get(key)
        if module is None:
            try:
                module = descriptor.factory(self._cache)
            except Exception as e:
                logger.error(f"Registry: constructing '{key}' failed: {e}")
                raise ModuleConstructionError(key, e) from e
            self._instances[key] = module
            logger.info(f"Registry: constructed module '{key}'")

        previous = self._initialized.get(key)
        if previous is not None and previous == param:
            return module

        try:
            if previous is None:
                module.initialize(param)
            else:
                module.reinitialize(param)
        except Exception as e:
            self._initialized.pop(key, None)
            logger.error(f"Registry: initializing '{key}' for {param!r} failed: {e}")
            raise ModuleInitError(key, e, module=module) from e

        self._initialized[key] = param
        return module

    def reinitialize_all(self, param: str) -> Dict[str, Exception]:
        """Rebind every constructed module to a new parameter.

        Never-constructed modules are left alone; they pick up ``param`` on
        their first ``get_or_initialize``.

        Args:
            param: The new parameter (e.g. project ID).

        Returns:
            Failures keyed by module key. A failing module is left in its
            Error state and does not stop the others.
        """
        self._param = param
        failures: Dict[str, Exception] = {}

        for key, module in list(self._instances.items()):
            try:
                module.reinitialize(param)
            except Exception as e:
                self._initialized.pop(key, None)
                failures[key] = e
                logger.error(f"Registry: reinitializing '{key}' for {param!r} failed: {e}")
                continue
            self._initialized[key] = param

        if failures:
            logger.warning(f"Registry: {len(failures)} module(s) failed to reinitialize: {list(failures)}")
        return failures
