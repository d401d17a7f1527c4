from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

import httpx
from fastapi import FastAPI, HTTPException, Path, Request
from fastapi.responses import JSONResponse

from app.config import ConfigurationError, Settings, configure_logging
from app.crawler import CrawlEngine, JobRunner
from app.fetcher import PageFetcher
from app.jobs import JobStore
from app.models import JOB_ID_LENGTH, CrawlCreated, CrawlRequest, CrawlView

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the API. Components live on app.state and are created/closed by the
    lifespan; `transport` lets tests serve pages without a network.
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        store = JobStore()
        fetcher = PageFetcher(
            timeout=settings.fetch_timeout,
            link_parser=settings.link_parser,
            transport=transport,
        )
        engine = CrawlEngine(store, fetcher, max_concurrency=settings.max_concurrency)
        runner = JobRunner(engine, workers=settings.job_workers)
        runner.start()
        if not settings.base_url:
            logger.warning("BASE_URL is not set; crawl requests will be rejected.")

        app.state.store = store
        app.state.runner = runner
        try:
            yield
        finally:
            await runner.aclose(grace=settings.shutdown_grace)
            await fetcher.aclose()

    app = FastAPI(title="keyword-crawler-api", lifespan=lifespan)
    app.state.settings = settings

    # -----------------------
    # Request logging / errors
    # -----------------------

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info("Received api call [%s %s]", request.method, request.url.path)
        response = await call_next(request)
        logger.info(
            "Responded to api call [%s %s] %d",
            request.method, request.url.path, response.status_code,
        )
        return response

    @app.exception_handler(ConfigurationError)
    async def configuration_error(request: Request, exc: ConfigurationError) -> JSONResponse:
        logger.error(
            "Server configuration error on request [%s %s]: %s",
            request.method, request.url.path, exc,
        )
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unexpected error processing request [%s %s]", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "An unexpected server error occurred."})

    # -----------------------
    # Endpoints
    # -----------------------

    @app.get("/")
    def home(request: Request) -> Dict[str, str]:
        workers = "running" if request.app.state.runner.running else "stopped"
        return {"status": "ok", "message": "Keyword crawler API running", "workers": workers}

    @app.post("/crawl", response_model=CrawlCreated)
    async def create_crawl(payload: CrawlRequest, request: Request) -> CrawlCreated:
        """
        Submit a keyword and return a job id immediately; the crawl of BASE_URL
        runs in the background. Poll GET /crawl/{id} for progress.
        """
        base_url = settings.require_base_url()
        logger.info("Received crawl request for keyword: '%s'", payload.keyword)

        job = request.app.state.store.create(payload.keyword)
        request.app.state.runner.submit(base_url, job.job_id)
        return CrawlCreated(id=job.job_id)

    @app.get("/crawl/{job_id}", response_model=CrawlView)
    async def get_crawl(
        request: Request,
        job_id: str = Path(..., min_length=JOB_ID_LENGTH, max_length=JOB_ID_LENGTH),
    ) -> CrawlView:
        job = request.app.state.store.find_by_id(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail=f"Crawl request with ID '{job_id}' not found.")
        return CrawlView.from_snapshot(job)

    @app.get("/crawl", response_model=List[CrawlView])
    async def list_crawls(request: Request) -> List[CrawlView]:
        return [CrawlView.from_snapshot(job) for job in request.app.state.store.find_all()]

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    configure_logging(app.state.settings.log_level)
    logger.info("Server starting on port %d", app.state.settings.port)
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
