# coding: utf-8
"""
Sentry configuration for error monitoring and tracking
"""
import sentry_sdk
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from loguru import logger

from config.config import SENTRY_DSN, ENVIRONMENT


def init_sentry() -> None:
    """
    Initialize Sentry SDK for error monitoring

    Features:
    - Automatic error capture and reporting
    - Performance monitoring (transactions)
    - Environment separation (dev/prod)
    """
    if not SENTRY_DSN:
        logger.warning("SENTRY_DSN not configured - error monitoring disabled")
        return

    try:
        sentry_sdk.init(
            dsn=SENTRY_DSN,

            # Environment
            environment=ENVIRONMENT,

            # Integrations
            integrations=[
                AsyncioIntegration(),  # Async support
                SqlalchemyIntegration(),  # Database queries tracking
                RedisIntegration(),  # Cache, locks, queues
            ],

            # Performance Monitoring
            traces_sample_rate=0.1 if ENVIRONMENT == "production" else 1.0,

            # Error Sampling
            sample_rate=1.0,

            attach_stacktrace=True,
            send_default_pii=False,  # Don't send user emails
            max_breadcrumbs=50,

            before_send=before_send_hook,
        )

        logger.info(f"Sentry initialized successfully (Environment: {ENVIRONMENT})")

    except Exception as e:
        logger.error(f"Failed to initialize Sentry: {e}")


def before_send_hook(event, hint):
    """
    Filter/modify events before sending to Sentry

    Removes provider API keys from captured HTTP request headers.
    """
    if 'exc_info' in hint:
        exc_type, exc_value, tb = hint['exc_info']

        if isinstance(exc_value, KeyboardInterrupt):
            return None

    if event.get('request'):
        headers = event['request'].get('headers', {})
        if 'X-CMC_PRO_API_KEY' in headers:
            headers['X-CMC_PRO_API_KEY'] = '[Filtered]'
        if 'Authorization' in headers:
            headers['Authorization'] = '[Filtered]'

    return event


def capture_exception(error: Exception, **extra_context):
    """
    Manually capture an exception with extra context

    Args:
        error: Exception to capture
        extra_context: Additional context data
    """
    with sentry_sdk.new_scope() as scope:
        for key, value in extra_context.items():
            scope.set_extra(key, value)

        sentry_sdk.capture_exception(error)
