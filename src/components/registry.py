"""
Component Registry - ordered registration of platform components.

Components are processed in registration order. Registration enforces that
every declared dependency is already registered, so the order is always
consistent with the dependency graph and no cycle can be expressed.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from components.base import Component
from errors import ConfigurationError
from validation import check_component_schema

logger = logging.getLogger(__name__)


class ComponentRegistry:
    """
    Holds the full set of components in a fixed processing order.

    The registry is read-only once built and safe to share between
    concurrent reconcile passes.
    """

    def __init__(self, components: Optional[Iterable[Component]] = None):
        self._components: List[Component] = []
        self._by_name: Dict[str, Component] = {}
        for component in components or []:
            self.register(component)

    def register(self, component: Component) -> None:
        """
        Append a component to the processing order.

        Raises:
            ConfigurationError: If the name is already registered, a
                dependency is not registered yet, or the configuration
                schema is not a valid JSON Schema.
        """
        name = component.name
        if name in self._by_name:
            raise ConfigurationError(f"Component '{name}' is already registered")

        for dep in component.get_dependencies():
            if dep == name:
                raise ConfigurationError(f"Component '{name}' depends on itself")
            if dep not in self._by_name:
                raise ConfigurationError(
                    f"Component '{name}' depends on '{dep}', which must be "
                    f"registered before it"
                )

        check_component_schema(component)

        self._components.append(component)
        self._by_name[name] = component
        logger.debug(
            f"Registered component: {name} "
            f"(dependencies: {', '.join(component.get_dependencies()) or 'none'})"
        )

    def get_components(self) -> Tuple[Component, ...]:
        """Return all components in processing order."""
        return tuple(self._components)

    def get_component(self, name: str) -> Component:
        """
        Look up a component by name.

        Raises:
            KeyError: If no component has that name.
        """
        if name not in self._by_name:
            available = ", ".join(self._by_name) or "none"
            raise KeyError(f"Unknown component: {name}. Available components: {available}")
        return self._by_name[name]

    def has_component(self, name: str) -> bool:
        return name in self._by_name

    def list_components(self) -> List[str]:
        """List component names in processing order."""
        return [c.name for c in self._components]

    def __len__(self) -> int:
        return len(self._components)


def default_registry() -> ComponentRegistry:
    """Build the registry of components shipped with the operator."""
    from components.ingress import IngressComponent
    from components.mysql import MySQLComponent
    from components.mysql_operator import MySQLOperatorComponent
    from components.thanos import ThanosComponent
    from components.velero import VeleroComponent

    return ComponentRegistry(
        [
            IngressComponent(),
            MySQLOperatorComponent(),
            MySQLComponent(),
            ThanosComponent(),
            VeleroComponent(),
        ]
    )
