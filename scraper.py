import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from browser import PageSession, SessionFactory
from cache import cached_compute, delete_cached, generate_cache_key
from errors import RateLimitError
from logging_utils import log_event
from markdown_converter import RuleSet, clean_html_to_markdown
from models import ScrapeOptions, ScrapeRequest, ScraperResult
from profiles import PROFILES, ContentProfile, ExtractionContext
from rate_limiter import DomainRateLimiter
from resolver import resolve_field
from settings import Settings
from store import KeyValueStore
from timeouts import with_retry, with_timeout
from validation import extract_domain

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


# --- Extraction ---

def markdown_rules_for(profile: ContentProfile, options: ScrapeOptions) -> RuleSet:
    overrides = {
        rule: getattr(options, option)
        for rule, option in profile.rule_options
        if hasattr(options, option)
    }
    return replace(profile.markdown_rules, **overrides) if overrides else profile.markdown_rules


async def extract_result(session: PageSession, profile: ContentProfile, request: ScrapeRequest) -> ScraperResult:
    """Resolve every field of `profile` against the loaded page."""
    title = await resolve_field(session, profile.title, default="")
    content = await resolve_field(session, profile.content, default="")
    html = await resolve_field(session, profile.html, default="")

    context = ExtractionContext(
        session=session,
        page_url=request.url,
        options=request.options,
        fields={},
    )
    for field in profile.fields:
        if field.option and not getattr(request.options, field.option, False):
            context.fields[field.name] = field.default
            continue
        if field.spec is not None:
            value = await resolve_field(session, field.spec, default=field.default)
        else:
            value = await field.compute(context)
            if value is None:
                value = field.default
        context.fields[field.name] = value

    markdown = clean_html_to_markdown(html, markdown_rules_for(profile, request.options)) if html else ""

    return profile.result_model(
        url=request.url,
        title=title,
        content=content,
        html=html,
        markdown=markdown,
        metadata=profile.metadata(context.fields),
        timestamp=now_ms(),
        **{name: value for name, value in context.fields.items() if value is not None},
    )


# --- Orchestration ---

@dataclass(frozen=True)
class ScrapeOutcome:
    data: Dict[str, Any]
    cached: bool


class ScrapeService:
    """
    Runs one scrape request: rate limit, then cache-or-scrape under a deadline.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        store: KeyValueStore,
        open_session: SessionFactory,
        rate_limiter: Optional[DomainRateLimiter] = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.open_session = open_session
        self.rate_limiter = rate_limiter or DomainRateLimiter(
            store,
            max_requests=settings.rate_limit_max_requests,
            window_ms=settings.rate_limit_window_ms,
        )

    async def scrape(self, request: ScrapeRequest) -> ScrapeOutcome:
        options = request.options
        domain = extract_domain(request.url)

        if options.rateLimit:
            decision = await self.rate_limiter.admit(domain)
            if not decision.allowed:
                raise RateLimitError(
                    f"Rate limit exceeded for domain: {domain}. "
                    f"Try again in {decision.reset_in_seconds} seconds.",
                    {"domain": domain, "resetInSeconds": decision.reset_in_seconds},
                )

        timeout = options.timeout or self.settings.default_timeout_ms
        started = time.monotonic()
        outcome = await with_timeout(
            lambda: self._cached_scrape(request),
            timeout,
            f"Scraping operation timed out after {timeout}ms",
        )
        log_event(
            logger,
            logging.INFO,
            "scrape_completed",
            url=request.url,
            content_type=request.contentType.value,
            cached=outcome.cached,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return outcome

    async def _cached_scrape(self, request: ScrapeRequest) -> ScrapeOutcome:
        options = request.options
        if not options.cacheEnabled:
            return ScrapeOutcome(data=await self._produce(request), cached=False)

        result = await cached_compute(
            self.store,
            request.url,
            request.cache_params(),
            lambda: self._produce(request),
            namespace=self.settings.cache_namespace,
            ttl=options.cacheTtl or self.settings.cache_ttl_seconds,
        )
        return ScrapeOutcome(data=result.value, cached=result.hit)

    async def invalidate(self, request: ScrapeRequest) -> bool:
        """Drop the cached result for `request`, if any."""
        key = generate_cache_key(request.url, request.cache_params(), self.settings.cache_namespace)
        return await delete_cached(self.store, key)

    async def _produce(self, request: ScrapeRequest) -> Dict[str, Any]:
        options = request.options
        profile = PROFILES[request.contentType]
        timeout = options.timeout or self.settings.default_timeout_ms

        async with self.open_session(options) as session:
            await with_retry(
                lambda: session.navigate(request.url, wait_until=options.waitUntil, timeout_ms=timeout),
                options.maxRetries,
                backoff_seconds=self.settings.retry_backoff_seconds,
            )
            result = await extract_result(session, profile, request)

        return result.model_dump(mode="json", exclude_none=True)
