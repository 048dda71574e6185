"""
Logging setup for the API process and maintenance scripts.
"""
import logging

from ispecia.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger. basicConfig is a no-op once handlers exist."""
    level_name = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(level=level_name, format=LOG_FORMAT)
    logging.getLogger().setLevel(level_name)


def warn_on_local_urls() -> None:
    """Log warnings for public URLs that still point at localhost."""
    logger = logging.getLogger("ispecia.startup")
    if "localhost" in settings.API_URL or "127.0.0.1" in settings.API_URL:
        logger.warning(
            "API_URL is set to %s. Email tracking and Twilio callbacks will not work in production.",
            settings.API_URL,
        )
    if "localhost" in settings.FRONTEND_URL or "127.0.0.1" in settings.FRONTEND_URL:
        logger.info("FRONTEND_URL not set or is localhost. Using %s", settings.FRONTEND_URL)
