"""Operator API key check for the rate limit administration endpoints.

Status and reset endpoints read and clear counters for arbitrary tenants and
users, so they sit behind ``X-API-Key``. The guarded business endpoints rely
on upstream authentication instead (see ``core.identity``).
"""

from __future__ import annotations

import hmac
import logging
from typing import Annotated, NoReturn

from fastapi import Header, Request

from tenant_ratelimit.core.config import AppSettings, settings
from tenant_ratelimit.core.errors import AuthenticationAppError
from tenant_ratelimit.core.logging import hash_identifier

logger = logging.getLogger(__name__)


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Split a comma-separated key list, ignoring blanks and surrounding spaces.

    Examples:
        >>> sorted(parse_api_keys("key1, key2 ,key3 "))
        ['key1', 'key2', 'key3']
        >>> parse_api_keys(None)
        set()
    """
    return {key.strip() for key in (keys_string or "").split(",") if key.strip()}


def _reject(code: str, message: str, **context) -> NoReturn:
    logger.warning("operator_auth.rejected", extra={"reason": code, **context})
    raise AuthenticationAppError(code=code, message=message)


def _matches_any(provided_key: str, valid_keys: set[str]) -> bool:
    # No early exit: every configured key is compared.
    matched = False
    for key in valid_keys:
        matched |= hmac.compare_digest(provided_key.encode(), key.encode())
    return matched


def validate_api_key(provided_key: str | None, app_settings: AppSettings | None = None) -> None:
    """Validate an operator API key against the configured keys.

    Args:
        provided_key: Value of the ``X-API-Key`` header, if any.
        app_settings: Settings of the serving app; the process settings
            (``APP_API_KEYS``) when omitted.

    Raises:
        AuthenticationAppError: ``api_keys_not_configured`` when auth is on
            but no keys exist, ``missing_api_key`` when none was sent,
            ``invalid_api_key`` when it matches no configured key.
    """
    cfg = app_settings or settings.app
    if not cfg.api_key_required:
        return

    valid_keys = parse_api_keys(cfg.api_keys)
    if not valid_keys:
        logger.error("operator_auth.misconfigured", extra={"reason": "api_keys_not_configured"})
        raise AuthenticationAppError(
            code="api_keys_not_configured",
            message="API key authentication is enabled but no valid keys are configured",
            details={"hint": "Set APP_API_KEYS or disable auth with APP_API_KEY_REQUIRED=false"},
        )

    if not provided_key:
        _reject("missing_api_key", "Missing API key. Provide X-API-Key header.")

    if not _matches_any(provided_key, valid_keys):
        _reject(
            "invalid_api_key",
            "Invalid or missing API key",
            api_key_hash=hash_identifier(provided_key),
        )


async def verify_api_key(
    request: Request,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency guarding the operator router.

    Checks against the settings the app was created with.

    Raises:
        AuthenticationAppError: Rendered as 403 by the global handlers.
    """
    app_settings = getattr(request.app.state, "settings", None)
    validate_api_key(x_api_key, app_settings.app if app_settings else None)
