import logging
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from browser import session_factory
from errors import InvalidRequestError, ScrapingError, classify
from logging_utils import configure_logging, log_event
from models import ScrapeBody, ScrapeResponse
from scraper import ScrapeService, now_ms
from settings import Settings, get_settings
from store import create_store
from validation import build_request

logger = logging.getLogger(__name__)

def build_service(settings: Settings) -> ScrapeService:
    return ScrapeService(
        settings=settings,
        store=create_store(settings),
        open_session=session_factory(settings),
    )

@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings)
    app.state.service = build_service(settings)
    log_event(
        logger,
        logging.INFO,
        "service_started",
        store_backend=settings.store_backend,
        browser_backend=settings.browser_backend,
    )
    yield

app = FastAPI(title="Content Scraper", lifespan=lifespan)

def get_service(request: Request) -> ScrapeService:
    return request.app.state.service

def elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)

def error_response(error: ScrapingError, debug: bool, processing_time=None) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_envelope(debug=debug, processing_time=processing_time),
    )

@app.exception_handler(ScrapingError)
async def scraping_error_handler(request: Request, exc: ScrapingError):
    return error_response(exc, get_settings().debug)

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    return error_response(InvalidRequestError(f"Invalid request body: {problems}"), get_settings().debug)

@app.get("/healthz")
def health_check():
    return {"status": "ok"}

@app.post("/scrape/{content_type}", response_model=ScrapeResponse)
async def scrape(content_type: str, body: ScrapeBody, service: ScrapeService = Depends(get_service)):
    started = time.monotonic()
    try:
        request = build_request(body.url, content_type, body.options, service.settings)
        outcome = await service.scrape(request)
    except Exception as exc:
        error = classify(exc)
        log_event(
            logger,
            logging.ERROR if error.status_code >= 500 else logging.WARNING,
            "scrape_failed",
            url=body.url,
            content_type=content_type,
            kind=error.kind.value,
            error=error.message,
        )
        return error_response(error, service.settings.debug, elapsed_ms(started))

    return ScrapeResponse(
        data=outcome.data,
        timestamp=now_ms(),
        processingTime=elapsed_ms(started),
        cached=outcome.cached,
    )

@app.delete("/cache/{content_type}")
async def invalidate_cache(content_type: str, body: ScrapeBody, service: ScrapeService = Depends(get_service)):
    request = build_request(body.url, content_type, body.options, service.settings)
    deleted = await service.invalidate(request)
    return {"success": deleted, "url": request.url, "contentType": request.contentType.value}

@app.delete("/ratelimit/{domain}")
async def reset_rate_limit(domain: str, service: ScrapeService = Depends(get_service)):
    reset = await service.rate_limiter.reset(domain)
    return {"success": reset, "domain": domain}
