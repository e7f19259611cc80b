"""Bootstrap configuration models and loaders."""

from .config_data import ConfigData, IdpSettings

__all__ = ["ConfigData", "IdpSettings"]
