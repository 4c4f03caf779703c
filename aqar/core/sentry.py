"""Centralised Sentry initialisation for the API and the Celery worker."""

import structlog
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.celery import CeleryIntegration
from sentry_sdk.integrations.httpx import HttpxIntegration

logger = structlog.get_logger()

_SENSITIVE_HEADERS = {"authorization", "cookie"}
_SENSITIVE_KEYS = {"seed", "secret", "ledger_secret", "wallet_seed", "password", "password_hash"}


def _scrub_mapping(data: dict) -> None:
    for key in list(data):
        if key.lower() in _SENSITIVE_KEYS:
            data[key] = "[REDACTED]"
        elif isinstance(data[key], dict):
            _scrub_mapping(data[key])


def _scrub_sensitive_data(event: dict, hint: dict) -> dict:
    """Remove auth headers and custodial secrets before sending to Sentry."""
    request = event.get("request", {})
    headers = request.get("headers", {})
    for header in list(headers):
        if header.lower() in _SENSITIVE_HEADERS:
            headers[header] = "[REDACTED]"
    if isinstance(request.get("data"), dict):
        _scrub_mapping(request["data"])
    _scrub_mapping(event.get("extra", {}))
    for frame_vars in _iter_frame_vars(event):
        _scrub_mapping(frame_vars)
    return event


def _iter_frame_vars(event: dict):
    for exc in event.get("exception", {}).get("values", []):
        for frame in (exc.get("stacktrace") or {}).get("frames", []):
            frame_vars = frame.get("vars")
            if isinstance(frame_vars, dict):
                yield frame_vars


def init_sentry(
    dsn: str | None,
    environment: str = "development",
    release: str | None = None,
) -> None:
    """Initialise Sentry with all relevant integrations.

    Call this BEFORE creating the FastAPI app or Celery instance so that
    auto-instrumentation can hook in at import time.

    No-op when dsn is None or empty, so safe to call unconditionally.
    """
    if not dsn:
        logger.warning("sentry_disabled", reason="SENTRY_DSN not set")
        return

    is_prod = environment == "production"

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=release,
        traces_sample_rate=0.1 if is_prod else 1.0,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            CeleryIntegration(),
            HttpxIntegration(),
        ],
        send_default_pii=False,
        before_send=_scrub_sensitive_data,
    )
    logger.info(
        "sentry_initialized",
        environment=environment,
        traces_sample_rate=0.1 if is_prod else 1.0,
    )
