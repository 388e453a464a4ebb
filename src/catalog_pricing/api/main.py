from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from catalog_pricing import __version__
from catalog_pricing.config.settings import Settings, get_settings
from catalog_pricing.engine import PricingEngine, build_context
from catalog_pricing.errors import (
    ConfigurationError,
    JobAlreadyRunningError,
    MalformedInputError,
    StoreError,
)
from catalog_pricing.jobs import RepriceOrchestrator
from catalog_pricing.store.table_store import TableStore, create_store
from catalog_pricing.utils.logger import setup_logging


class RepriceRequest(BaseModel):
    triggered_by: str = "manual"


class RepriceStarted(BaseModel):
    job_id: str


class PreviewRequest(BaseModel):
    row: Dict[str, Any] = Field(default_factory=dict)


def create_app(store: Optional[TableStore] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the API. The store and orchestrator are created when the app starts."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level)
        app.state.store = store or create_store(settings)
        app.state.orchestrator = RepriceOrchestrator(app.state.store, settings)
        try:
            yield
        finally:
            app.state.orchestrator.shutdown()

    app = FastAPI(
        title="Catalog Pricing API",
        description="Per-SKU pricing breakdowns and batch catalog repricing",
        version=__version__,
        lifespan=lifespan,
    )

    # Enable CORS for frontend development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def root():
        return {"status": "online", "message": "Catalog Pricing API Active"}

    @app.post("/api/reprice", status_code=202, response_model=RepriceStarted)
    async def start_reprice(request: Request, body: Optional[RepriceRequest] = None):
        body = body or RepriceRequest()
        try:
            job_id = request.app.state.orchestrator.start_job(body.triggered_by)
        except JobAlreadyRunningError as e:
            raise HTTPException(status_code=409, detail=str(e))
        return RepriceStarted(job_id=job_id)

    @app.get("/api/reprice/jobs")
    async def list_jobs(request: Request, limit: int = 10):
        jobs = request.app.state.orchestrator.list_jobs(limit)
        return [job.to_dict() for job in jobs]

    @app.get("/api/reprice/jobs/{job_id}")
    async def get_job(request: Request, job_id: str):
        job = request.app.state.orchestrator.get_job_status(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
        return job.to_dict()

    @app.post("/api/pricing/preview")
    def preview(request: Request, body: PreviewRequest):
        store: TableStore = request.app.state.store
        try:
            context = build_context(
                store.read_parameters(),
                store.read_partner_tiers(),
                store.read_channel_fee_tables(),
                settings=settings,
            )
            breakdown = PricingEngine(context).calculate_row(body.row)
        except (MalformedInputError, ConfigurationError) as e:
            raise HTTPException(status_code=422, detail=str(e))
        except StoreError as e:
            raise HTTPException(status_code=503, detail=str(e))
        result = breakdown.to_dict()
        result["trace"] = breakdown.get_trace_text()
        return result

    return app


app = create_app()
