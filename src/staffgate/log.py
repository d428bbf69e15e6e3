"""
Logging setup.

Application logs go to stderr. Records bound with the audit diagnostic
channel additionally go to their own sink so failed audit writes can be
collected separately from request logs.
"""

import sys

from loguru import logger

from .config import Settings


AUDIT_DIAGNOSTIC_CHANNEL = "audit.diagnostics"

# Logger for the audit diagnostic channel
audit_diagnostics = logger.bind(channel=AUDIT_DIAGNOSTIC_CHANNEL)


def _is_audit_diagnostic(record) -> bool:
    return record["extra"].get("channel") == AUDIT_DIAGNOSTIC_CHANNEL


def configure_logging(settings: Settings) -> None:
    """
    Replace loguru's default sink with the configured ones.

    Args:
        settings: Process settings (LOG_LEVEL, LOG_FORMAT, AUDIT_DIAGNOSTIC_LOG)
    """
    logger.remove()

    serialize = settings.log_format == "json"
    logger.add(sys.stderr, level=settings.log_level.upper(), serialize=serialize)

    if settings.audit_diagnostic_log:
        settings.audit_diagnostic_log.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(settings.audit_diagnostic_log),
            level="WARNING",
            filter=_is_audit_diagnostic,
            serialize=True,
            enqueue=True,
        )

    logger.debug(f"Logging configured (level={settings.log_level}, format={settings.log_format})")
