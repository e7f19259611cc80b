"""Shared pytest fixtures and helpers for IdP bridge tests."""

from .app import *  # noqa: F401,F403
from .core import *  # noqa: F401,F403
from .idp import *  # noqa: F401,F403
