"""cloudpane - a terminal dashboard for Google Cloud resources."""

__version__ = "0.1.0"
