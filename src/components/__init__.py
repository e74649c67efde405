"""
Platform components.

Each module defines one component; the registry assembles them in
dependency order.
"""

from components.base import Component, ComponentContext
from components.manifest import ManifestComponent

__all__ = ["Component", "ComponentContext", "ManifestComponent"]
