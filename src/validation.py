"""
Schema Validation - JSON Schema checks for component configuration.

A component may publish a JSON Schema (Draft 7) for its configuration
block in the managed resource spec. The schema itself is checked once,
when the component is registered; the blocks of a managed resource are
checked at the start of every reconcile pass.
"""

import logging
from typing import Any, Dict, Iterable, List

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

from errors import ConfigurationError
from resources import ManagedResource

logger = logging.getLogger(__name__)


def check_component_schema(component: Any) -> None:
    """
    Check that a component's configuration schema is valid Draft 7.

    Raises:
        ConfigurationError: If the schema is malformed.
    """
    schema = component.config_schema
    if schema is None:
        return
    try:
        Draft7Validator.check_schema(schema)
    except SchemaError as e:
        raise ConfigurationError(
            f"Component '{component.name}' has an invalid configuration schema: "
            f"{e.message}"
        ) from e


def config_errors(config: Dict[str, Any], schema: Dict[str, Any]) -> List[str]:
    """Return every violation of ``schema`` in ``config`` as ``path: message``."""
    validator = Draft7Validator(schema, format_checker=Draft7Validator.FORMAT_CHECKER)
    return [
        f"{error.json_path}: {error.message}"
        for error in sorted(validator.iter_errors(config), key=lambda e: e.json_path)
    ]


def validate_resource(resource: ManagedResource, components: Iterable[Any]) -> None:
    """
    Validate every component configuration block of a managed resource.

    Raises:
        ConfigurationError: Listing the violations of the first component
            whose block does not match its schema.
    """
    for component in components:
        schema = component.config_schema
        if schema is None:
            continue
        errors = config_errors(resource.component_config(component.json_name), schema)
        if errors:
            logger.debug(
                f"{resource.key}: {len(errors)} configuration error(s) "
                f"for component {component.name}"
            )
            raise ConfigurationError(
                f"Invalid configuration for component {component.name} "
                f"in {resource.key}: {'; '.join(errors)}"
            )
