"""Universal logfire for the application."""

import logfire
from logging import getLogger

# Create a universal logger instance that can be imported anywhere
logger = getLogger("ChatUploads")


def instrument_libraries():
    """Instrument the outgoing HTTP client used for Cloudinary uploads."""
    logfire.instrument_httpx()
