"""
Request validation for scrape calls.
"""

from typing import Any, Dict, Optional
from urllib.parse import urlparse

from pydantic import ValidationError

from errors import InvalidRequestError
from models import ContentType, ScrapeRequest, build_options
from settings import Settings


def extract_domain(url: str) -> str:
    """Hostname of `url`, or `url` itself when it cannot be parsed."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return url
    return hostname or url


def _matches(domain: str, suffixes) -> bool:
    return any(domain == suffix or domain.endswith(f".{suffix}") for suffix in suffixes)


def validate_url(url: str, settings: Settings) -> None:
    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
    except ValueError as exc:
        raise InvalidRequestError("Invalid URL format", {"url": url}) from exc
    if not parsed.scheme or not hostname:
        raise InvalidRequestError("Invalid URL format", {"url": url})

    protocol = parsed.scheme.lower()
    if settings.allowed_protocols and protocol not in settings.allowed_protocols:
        raise InvalidRequestError(
            f'Protocol "{protocol}" is not allowed. '
            f"Allowed protocols: {', '.join(settings.allowed_protocols)}"
        )
    if settings.require_https and protocol != "https":
        raise InvalidRequestError("HTTPS is required")

    if settings.allowed_domains and not _matches(hostname, settings.allowed_domains):
        raise InvalidRequestError(f'Domain "{hostname}" is not allowed')
    if settings.blocked_domains and _matches(hostname, settings.blocked_domains):
        raise InvalidRequestError(f'Domain "{hostname}" is blocked')


def validate_content_type(value: str) -> ContentType:
    try:
        return ContentType(value)
    except ValueError:
        allowed = ", ".join(item.value for item in ContentType)
        raise InvalidRequestError(
            f"Unsupported scraper type: {value}. Supported types are: {allowed}"
        ) from None


def build_request(
    url: Any,
    content_type: str,
    options: Optional[Dict[str, Any]],
    settings: Settings,
) -> ScrapeRequest:
    """Validate raw request input and build an immutable ScrapeRequest."""
    if not url or not isinstance(url, str):
        raise InvalidRequestError("Invalid or missing URL parameter")

    validate_url(url, settings)
    kind = validate_content_type(content_type)

    try:
        scrape_options = build_options(kind, options)
    except ValidationError as exc:
        problems = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        ]
        raise InvalidRequestError("Invalid options: " + "; ".join(problems)) from exc

    if scrape_options.timeout and scrape_options.timeout > settings.max_timeout_ms:
        raise InvalidRequestError(
            f"Timeout value {scrape_options.timeout} exceeds maximum allowed "
            f"timeout of {settings.max_timeout_ms}"
        )

    return ScrapeRequest(url=url, contentType=kind, options=scrape_options)
