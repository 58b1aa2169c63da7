"""Configuration schema and loader."""

from cloudpane.config.loader import load_config
from cloudpane.config.schema import CloudpaneConfig

__all__ = ["CloudpaneConfig", "load_config"]
