"""Storage backends: transient anti-forgery values, secrets and IdP settings."""

from .config_storage import (
    ConfigStorage,
    InMemoryConfigStorage,
    YamlConfigStorage,
    get_config_storage,
)
from .secret_storage import (
    EnvironmentSecretRepository,
    FileSecretRepository,
    InMemorySecretRepository,
    SecretRepository,
    get_secret_repository,
)
from .transient_storage import SessionTransientStore, TransientStore

__all__ = [
    "ConfigStorage",
    "EnvironmentSecretRepository",
    "FileSecretRepository",
    "InMemoryConfigStorage",
    "InMemorySecretRepository",
    "SecretRepository",
    "SessionTransientStore",
    "TransientStore",
    "YamlConfigStorage",
    "get_config_storage",
    "get_secret_repository",
]
