"""Dashboard modules: the lifecycle base, resource lists and the overview."""

from cloudpane.modules.base import BaseModule, Module, ModuleState
from cloudpane.modules.resource import ResourceListModule, ResourceSpec

__all__ = ["BaseModule", "Module", "ModuleState", "ResourceListModule", "ResourceSpec"]
