"""Sentry integration for error tracking and performance monitoring.

Disabled unless DBCORE_SENTRY_DSN is set. Initialized by the CLI
after logging setup; library callers may initialize Sentry themselves.
"""

import os

import sentry_sdk

from dbcore.__about__ import __version__

SENTRY_DSN_ENV = "DBCORE_SENTRY_DSN"


def setup_sentry(environment: str = "local") -> bool:
    """Initialize Sentry when a DSN is configured. Returns True if enabled."""
    dsn = os.environ.get(SENTRY_DSN_ENV)
    if not dsn:
        return False
    sentry_sdk.init(
        dsn=dsn,
        traces_sample_rate=0.03,
        environment=environment,
        release=__version__,
        attach_stacktrace=True,
        send_default_pii=False,
    )
    return True
