"""Tests for the service catalog parser."""

import pytest
from controller.src.errors import CatalogError
from controller.src.services.catalog import (
    deployment_order,
    dependents_of,
    load_catalog,
    parse_catalog_config,
    parse_catalog_dict,
)

def test_valid_catalog():
    config = """
services:
  - name: api
    context: backend
    port: 5000
    health_path: /api/health
    exposed: true
  - name: web
    context: frontend
    depends_on: [api]
    address_build_args:
      api: API_URL
"""
    services = parse_catalog_config(config)
    assert list(services) == ["api", "web"]
    assert services["api"].port == 5000
    assert services["api"].exposed is True
    assert services["web"].dockerfile == "Dockerfile"
    assert services["web"].health_path == "/health"
    assert services["web"].address_build_args == {"api": "API_URL"}

def test_missing_services():
    with pytest.raises(CatalogError, match="must have 'services'"):
        parse_catalog_config("name: shop\n")

def test_missing_service_name():
    config = """
services:
  - context: backend
"""
    with pytest.raises(CatalogError, match="missing 'name'"):
        parse_catalog_config(config)

def test_missing_service_context():
    config = """
services:
  - name: api
"""
    with pytest.raises(CatalogError, match="missing 'context'"):
        parse_catalog_config(config)

def test_invalid_field_type():
    config = """
services:
  - name: api
    context: backend
    port: abc
"""
    with pytest.raises(CatalogError, match="Service 0 has invalid fields: port"):
        parse_catalog_config(config)

def test_empty_config():
    with pytest.raises(CatalogError, match="Empty"):
        parse_catalog_config("")

def test_invalid_yaml():
    with pytest.raises(CatalogError, match="Invalid YAML"):
        parse_catalog_config("services: [unclosed")

def test_duplicate_service():
    config = {
        "services": [
            {"name": "api", "context": "a"},
            {"name": "api", "context": "b"},
        ]
    }
    with pytest.raises(CatalogError, match="Duplicate service"):
        parse_catalog_dict(config)

def test_unknown_dependency():
    config = {"services": [{"name": "web", "context": "frontend", "depends_on": ["api"]}]}
    with pytest.raises(CatalogError, match="depends on unknown service"):
        parse_catalog_dict(config)

def test_build_arg_requires_dependency():
    config = {
        "services": [
            {"name": "api", "context": "backend"},
            {"name": "web", "context": "frontend", "address_build_args": {"api": "API_URL"}},
        ]
    }
    with pytest.raises(CatalogError, match="without depending on it"):
        parse_catalog_dict(config)

def test_dependency_cycle():
    config = {
        "services": [
            {"name": "a", "context": "a", "depends_on": ["b"]},
            {"name": "b", "context": "b", "depends_on": ["a"]},
        ]
    }
    with pytest.raises(CatalogError, match="Dependency cycle"):
        parse_catalog_dict(config)

def test_deployment_order_puts_dependencies_first():
    services = parse_catalog_dict({
        "services": [
            {"name": "web", "context": "frontend", "depends_on": ["api", "auth"]},
            {"name": "api", "context": "backend", "depends_on": ["db-migrations"]},
            {"name": "auth", "context": "auth"},
            {"name": "db-migrations", "context": "migrations"},
        ]
    })
    order = [spec.name for spec in deployment_order(services)]
    assert order == ["auth", "db-migrations", "api", "web"]

def test_default_catalog():
    services = load_catalog()
    assert [spec.name for spec in deployment_order(services)] == ["backend-api", "frontend"]
    assert services["backend-api"].health_path == "/api/health"
    assert dependents_of(services, "backend-api") == ["frontend"]
    assert dependents_of(services, "frontend") == []

def test_load_catalog_from_file(tmp_path):
    path = tmp_path / "catalog.yaml"
    path.write_text("services:\n  - name: worker\n    context: worker\n")
    services = load_catalog(str(path))
    assert list(services) == ["worker"]

def test_load_missing_catalog_file(tmp_path):
    with pytest.raises(CatalogError, match="Cannot read catalog"):
        load_catalog(str(tmp_path / "missing.yaml"))
