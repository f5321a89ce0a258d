"""Logging setup and Logfire cloud observability."""

import logging

import logfire

from mongorepo import __version__
from mongorepo.config import Settings

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    """Configure root logging from the ``logging`` settings section."""
    logging.basicConfig(
        level=settings.logging.level.upper(),
        format=settings.logging.format,
        datefmt=settings.logging.datefmt,
    )


def initialize_logfire(settings: Settings) -> None:
    """
    Initialize Logfire with MongoDB instrumentation.

    Must be called ONCE at application startup, before the first manager is
    connected, so that the driver's command listeners are registered.

    This function configures Logfire cloud tracking and instruments:
    - PyMongo commands issued through Motor (every repository call)
    - Python logging (bridges to Logfire)

    Args:
        settings: Application settings containing Logfire token

    Returns:
        None. Logs success or warning messages.
    """
    if not settings.logfire_token:
        logger.warning("Logfire token not set - observability disabled")
        return

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name="mongorepo",
            service_version=__version__,
            environment=settings.environment,
        )

        logfire.instrument_pymongo()

        # Bridge Python logging to Logfire
        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        logger.info("Logfire cloud tracking initialized")

    except Exception as e:
        # Observability is optional
        logger.warning(f"Failed to initialize Logfire: {e}")
