"""Application package: core infrastructure, domain models and services."""

from .core import db
from .domain import models

__all__ = ["db", "models"]
