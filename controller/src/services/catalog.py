"""
Service catalog parser and validator.
"""

import yaml
from typing import List, Dict, Any, Optional
from pydantic import ValidationError

from controller.src.errors import CatalogError
from controller.src.models.domain import ServiceSpec

DEFAULT_CATALOG: Dict[str, Any] = {
    "services": [
        {
            "name": "backend-api",
            "context": "backend",
            "port": 5000,
            "health_path": "/api/health",
            "exposed": True,
        },
        {
            "name": "frontend",
            "context": "frontend",
            "port": 80,
            "health_path": "/",
            "exposed": True,
            "depends_on": ["backend-api"],
            "address_build_args": {"backend-api": "REACT_APP_API_URL"},
        },
    ]
}

def parse_catalog_config(yaml_content: str) -> Dict[str, ServiceSpec]:
    """Parse service catalog YAML from string."""
    try:
        config = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        raise CatalogError(f"Invalid YAML: {e}")

    return validate_catalog(config)

def parse_catalog_dict(config: Dict[str, Any]) -> Dict[str, ServiceSpec]:
    """Validate service catalog from dict."""
    return validate_catalog(config)

def load_catalog(path: Optional[str] = None) -> Dict[str, ServiceSpec]:
    """Load the catalog from a YAML file, or the built-in default."""
    if not path:
        return validate_catalog(DEFAULT_CATALOG)

    try:
        with open(path, "r") as f:
            return parse_catalog_config(f.read())
    except OSError as e:
        raise CatalogError(f"Cannot read catalog {path}: {e}")

def validate_catalog(config: Optional[Dict[str, Any]]) -> Dict[str, ServiceSpec]:
    """Validate catalog structure. Returns services keyed by name, in declaration order."""
    if not config:
        raise CatalogError("Empty service catalog")

    if not isinstance(config, dict):
        raise CatalogError("Service catalog must be a dictionary")

    if "services" not in config:
        raise CatalogError("Catalog must have 'services' defined")

    entries = config["services"]
    if not isinstance(entries, list):
        raise CatalogError("Catalog 'services' must be a list")

    if len(entries) == 0:
        raise CatalogError("Catalog must have at least one service")

    services: Dict[str, ServiceSpec] = {}
    for i, entry in enumerate(entries):
        spec = validate_service(entry, i)
        if spec.name in services:
            raise CatalogError(f"Duplicate service '{spec.name}'")
        services[spec.name] = spec

    for spec in services.values():
        for dep in spec.depends_on:
            if dep not in services:
                raise CatalogError(f"Service '{spec.name}' depends on unknown service '{dep}'")
        for dep in spec.address_build_args:
            if dep not in spec.depends_on:
                raise CatalogError(
                    f"Service '{spec.name}' injects address of '{dep}' without depending on it"
                )

    # Raises on cycles
    deployment_order(services)
    return services

def validate_service(entry: Dict[str, Any], index: int) -> ServiceSpec:
    """Validate a single service entry."""
    if not isinstance(entry, dict):
        raise CatalogError(f"Service {index} must be a dictionary")

    # Required fields
    if "name" not in entry:
        raise CatalogError(f"Service {index} missing 'name'")

    if "context" not in entry:
        raise CatalogError(f"Service {index} missing 'context'")

    # Validate types
    if not isinstance(entry["name"], str):
        raise CatalogError(f"Service {index} 'name' must be a string")

    depends_on = entry.get("depends_on", [])
    if not isinstance(depends_on, list) or not all(isinstance(d, str) for d in depends_on):
        raise CatalogError(f"Service {index} 'depends_on' must be a list of strings")

    build_args = entry.get("address_build_args", {})
    if not isinstance(build_args, dict):
        raise CatalogError(f"Service {index} 'address_build_args' must be a mapping")

    try:
        return ServiceSpec(
            name=entry["name"],
            context=entry["context"],
            dockerfile=entry.get("dockerfile", "Dockerfile"),
            port=entry.get("port", 80),
            health_path=entry.get("health_path", "/health"),
            exposed=entry.get("exposed", False),
            depends_on=depends_on,
            address_build_args=build_args,
        )
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise CatalogError(f"Service {index} has invalid fields: {fields}")

def deployment_order(services: Dict[str, ServiceSpec]) -> List[ServiceSpec]:
    """
    Topological order of the dependency graph, dependencies first.
    Ties keep declaration order.
    """
    remaining = {name: set(spec.depends_on) for name, spec in services.items()}
    ordered: List[ServiceSpec] = []

    while remaining:
        ready = [name for name, deps in remaining.items() if not deps]
        if not ready:
            raise CatalogError(
                f"Dependency cycle between services: {', '.join(sorted(remaining))}"
            )
        for name in ready:
            ordered.append(services[name])
            del remaining[name]
        for deps in remaining.values():
            deps.difference_update(ready)

    return ordered

def dependents_of(services: Dict[str, ServiceSpec], name: str) -> List[str]:
    """Services that declare a dependency on `name`."""
    return [spec.name for spec in services.values() if name in spec.depends_on]
