"""
Error taxonomy for the scraping API.

Failure sites raise one of the typed errors below. `classify` turns anything
else into a `ScrapingError`, falling back to matching on the message text.
"""

import asyncio
import time
from enum import Enum
from typing import Any, Dict, Optional

import httpx
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError


class ErrorKind(str, Enum):
    VALIDATION = "VALIDATION_ERROR"
    RATE_LIMIT = "RATE_LIMIT_ERROR"
    TIMEOUT = "TIMEOUT_ERROR"
    SCRAPING = "SCRAPING_ERROR"
    NETWORK = "NETWORK_ERROR"
    BROWSER = "BROWSER_ERROR"
    INTERNAL = "INTERNAL_ERROR"
    NOT_FOUND = "NOT_FOUND_ERROR"


STATUS_CODES: Dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.RATE_LIMIT: 429,
    ErrorKind.TIMEOUT: 408,
    ErrorKind.SCRAPING: 500,
    ErrorKind.NETWORK: 503,
    ErrorKind.BROWSER: 500,
    ErrorKind.INTERNAL: 500,
    ErrorKind.NOT_FOUND: 404,
}


class ScrapingError(Exception):
    kind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        *,
        kind: Optional[ErrorKind] = None,
        public_message: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        # Shown instead of `message` outside debug mode.
        self.public_message = public_message
        if kind is not None:
            self.kind = kind

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]

    def to_envelope(self, *, debug: bool = False, processing_time: Optional[int] = None) -> Dict[str, Any]:
        """Build the JSON failure body. Kind and details are only exposed in debug mode."""
        envelope: Dict[str, Any] = {
            "success": False,
            "error": self.message if debug or self.public_message is None else self.public_message,
            "timestamp": int(time.time() * 1000),
        }
        if processing_time is not None:
            envelope["processingTime"] = processing_time
        if debug:
            envelope["type"] = self.kind.value
            if self.details:
                envelope["details"] = self.details
        return envelope


class InvalidRequestError(ScrapingError):
    kind = ErrorKind.VALIDATION


class RateLimitError(ScrapingError):
    kind = ErrorKind.RATE_LIMIT


class ScrapeTimeoutError(ScrapingError):
    kind = ErrorKind.TIMEOUT


class ExtractionError(ScrapingError):
    kind = ErrorKind.SCRAPING


class NetworkError(ScrapingError):
    kind = ErrorKind.NETWORK


class BrowserError(ScrapingError):
    kind = ErrorKind.BROWSER


class NotFoundError(ScrapingError):
    kind = ErrorKind.NOT_FOUND


class InternalError(ScrapingError):
    kind = ErrorKind.INTERNAL


INTERNAL_ERROR_MESSAGE = "An internal error occurred"


def classify(error: BaseException) -> ScrapingError:
    """Map an arbitrary failure onto the closed error taxonomy."""
    if isinstance(error, ScrapingError):
        return error

    message = str(error)

    if isinstance(error, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException, PlaywrightTimeoutError)):
        return ScrapeTimeoutError(f"Operation timed out: {message}")
    if isinstance(error, httpx.HTTPStatusError):
        if error.response.status_code == 404:
            return NotFoundError(f"Resource not found: {error.request.url}")
        return NetworkError(
            f"Network error: {message}",
            {"statusCode": error.response.status_code},
        )
    if isinstance(error, httpx.TransportError):
        return NetworkError(f"Network error: {message}")
    if isinstance(error, PlaywrightError):
        if "net::" in message:
            return NetworkError(f"Network error: {message}")
        return BrowserError(f"Browser error: {message}")

    # Last resort: guess from the message text.
    lowered = message.lower()
    if "timeout" in lowered or "timed out" in lowered:
        return ScrapeTimeoutError(f"Operation timed out: {message}")
    if "net::" in lowered or "network" in lowered:
        return NetworkError(f"Network error: {message}")
    if "browser" in lowered or "playwright" in lowered or "puppeteer" in lowered:
        return BrowserError(f"Browser error: {message}")

    if message:
        return InternalError(f"Internal error: {message}", public_message=INTERNAL_ERROR_MESSAGE)
    return InternalError("An unknown error occurred")
