"""OpenAPI metadata and customization utilities.

Enriches the generated schema with:
- Tags metadata
- API Key security scheme (``X-API-Key``) applied to the rate limit
  administration endpoints only
- A shared 429 response description on guarded operations
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_TAGS = [
    {"name": "Invitations", "description": "Invitation creation and acceptance (rate limited)."},
    {"name": "Tenants", "description": "Tenant creation and joining (rate limited)."},
    {"name": "Rate Limits", "description": "Operator status and reset of rate limit counters."},
    {"name": "Health", "description": "Liveness and readiness checks."},
]

_TOO_MANY_REQUESTS = {
    "description": "Rate limit exceeded. See Retry-After and X-RateLimit-* headers.",
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata and security."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Operator API key for rate limit administration.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in _TAGS:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                if "/rate-limits" in path:
                    method_obj["security"] = [{"ApiKeyAuth": []}]
                elif path.startswith("/v1/"):
                    method_obj.setdefault("responses", {}).setdefault("429", _TOO_MANY_REQUESTS)

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
