"""Pytest configuration and fixtures."""

from pathlib import Path
from typing import Any

import pytest

from docrules.constraints import RulesetDef, load_ruleset


@pytest.fixture
def fixtures_path() -> Path:
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def api_style_ruleset(fixtures_path: Path) -> RulesetDef:
    """The HTTP API style guide used as an end-to-end ruleset."""
    return load_ruleset(fixtures_path / "api_style.yaml")


@pytest.fixture
def oas3_bad() -> dict[str, Any]:
    """An OpenAPI 3 description that breaks most of the style guide."""
    return {
        "openapi": "3.0.3",
        "servers": [{"url": "http://api.example.com/v2"}],
        "paths": {
            "/Users": {
                "get": {
                    "parameters": [
                        {"name": "X-Request-Id", "in": "header", "schema": {"type": "string"}},
                        {"name": "user_id", "in": "query", "schema": {"type": "integer"}},
                    ],
                    "requestBody": {"content": {"application/json": {}}},
                    "responses": {
                        "200": {
                            "description": "ok",
                            "headers": {"X-Rate-Limit": {"schema": {"type": "integer"}}},
                        },
                        "404": {"description": "not found", "content": {"text/html": {}}},
                    },
                },
                "post": {
                    "requestBody": {"content": {"application/xml": {}}},
                    "responses": {"201": {"description": "created"}},
                },
            }
        },
        "components": {
            "securitySchemes": {
                "basicAuth": {"type": "http", "scheme": "basic"},
            }
        },
    }


@pytest.fixture
def oas3_good() -> dict[str, Any]:
    """An OpenAPI 3.1 description that satisfies the style guide."""
    return {
        "openapi": "3.1.0",
        "servers": [{"url": "https://api.example.com"}],
        "paths": {
            "/": {"get": {"responses": {"200": {"description": "home"}}}},
            "/health": {
                "get": {
                    "responses": {
                        "200": {
                            "description": "ok",
                            "content": {"application/vnd.health+json": {}},
                        }
                    }
                }
            },
            "/users/{user_id}": {
                "get": {
                    "parameters": [
                        {"name": "user_id", "in": "path", "schema": {"type": "string", "format": "uuid"}},
                        {"name": "Accept-Language", "in": "header", "schema": {"type": "string"}},
                    ],
                    "responses": {
                        "200": {
                            "description": "ok",
                            "headers": {"Rate-Limit": {"schema": {"type": "integer"}}},
                        },
                        "404": {
                            "description": "not found",
                            "content": {"application/problem+json": {}},
                        },
                    },
                }
            },
        },
        "components": {
            "securitySchemes": {
                "bearer": {"type": "http", "scheme": "bearer"},
            }
        },
    }


@pytest.fixture
def oas2_doc() -> dict[str, Any]:
    """A Swagger 2.0 description served over plain http and https."""
    return {
        "swagger": "2.0",
        "schemes": ["http", "https"],
        "paths": {
            "/": {"get": {"responses": {"200": {"description": "home"}}}},
            "/health": {"get": {"responses": {"200": {"description": "ok"}}}},
        },
    }
