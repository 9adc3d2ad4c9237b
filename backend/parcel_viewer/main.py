import asyncio
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse

from .arcgis import ArcGISClient
from .interactions import Click, Dispatcher, InteractionSource, ScaleChanged, SearchSelect
from .layers import OVERLAY_LAYERS
from .models import (
    ClickRequest,
    ErrorResponse,
    HealthResponse,
    IntersectionRound,
    LayerInfo,
    ScaleRequest,
    SearchSelectRequest,
    ViewState,
    VisibilityResponse,
)
from .orchestrator import IntersectionOrchestrator
from .settings import (
    APP_VERSION,
    ARCGIS_RETRY_ATTEMPTS,
    ARCGIS_TIMEOUT,
    FRONTEND_ORIGIN,
    LOG_LEVEL,
    PROBE_LAYERS_ON_STARTUP,
    VIEW_HEIGHT_PX,
    VIEW_WIDTH_PX,
    cache,
    rate_limiter,
)
from .ui import UI_PAGE
from .utils.logging import get_logger, setup_logging
from .view import MapView

setup_logging(LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the single orchestrator and run the interaction loop."""
    view = MapView(width_px=VIEW_WIDTH_PX, height_px=VIEW_HEIGHT_PX)
    source = InteractionSource()

    def on_scale_change(scale: float) -> None:
        if not source.closed:
            source.emit(ScaleChanged(scale))

    async with ArcGISClient(
        timeout=ARCGIS_TIMEOUT,
        retry_attempts=ARCGIS_RETRY_ATTEMPTS,
        cache=cache,
    ) as client:
        orchestrator = IntersectionOrchestrator(client, view)
        dispatcher = Dispatcher(orchestrator, source)
        view.watch_scale(on_scale_change)

        if PROBE_LAYERS_ON_STARTUP:
            await orchestrator.load()

        loop_task = asyncio.create_task(dispatcher.run())
        app.state.orchestrator = orchestrator
        app.state.dispatcher = dispatcher
        logger.info("Interaction loop started")
        try:
            yield
        finally:
            app.state.dispatcher = None
            app.state.orchestrator = None
            source.close()
            await loop_task
            logger.info("Interaction loop stopped")


app = FastAPI(
    title="Marin Parcel Viewer API",
    description="Point intersection lookup for Marin County parcels, zoning and general plan",
    version=APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

origins = [origin.strip() for origin in FRONTEND_ORIGIN.split(",") if origin.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    allow_origin_regex=r"https?://.*",
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """Log requests with timing and add request ID."""
    request_id = str(uuid.uuid4())[:8]
    start_time = datetime.utcnow()
    request.state.request_id = request_id

    logger.info(
        "Request started",
        extra={
            'request_id': request_id,
            'method': request.method,
            'url': str(request.url),
            'client_ip': request.client.host if request.client else None,
        },
    )

    try:
        response = await call_next(request)
    except Exception as e:
        duration = (datetime.utcnow() - start_time).total_seconds() * 1000
        logger.error(
            "Request failed",
            extra={
                'request_id': request_id,
                'method': request.method,
                'url': str(request.url),
                'duration_ms': round(duration, 2),
                'error': str(e),
            },
            exc_info=True,
        )
        raise

    duration = (datetime.utcnow() - start_time).total_seconds() * 1000
    logger.info(
        "Request completed",
        extra={
            'request_id': request_id,
            'method': request.method,
            'url': str(request.url),
            'status_code': response.status_code,
            'duration_ms': round(duration, 2),
        },
    )
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    request_id = getattr(request.state, 'request_id', 'unknown')
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.detail, request_id=request_id).model_dump(),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="Internal server error",
            detail=str(exc) if LOG_LEVEL == "DEBUG" else None,
            request_id=request_id,
        ).model_dump(),
    )


def _check_rate_limit(req: Request) -> None:
    client_ip = req.client.host if req.client else "unknown"
    if not rate_limiter.is_allowed(client_ip):
        raise HTTPException(status_code=429, detail="Rate limit exceeded")


def _dispatcher(req: Request) -> Dispatcher:
    dispatcher: Optional[Dispatcher] = getattr(req.app.state, 'dispatcher', None)
    if dispatcher is None:
        raise HTTPException(status_code=503, detail="Map view is not ready")
    return dispatcher


@app.get("/healthz", response_model=HealthResponse)
async def health_check():
    return HealthResponse(
        status="ok",
        timestamp=datetime.utcnow().isoformat(),
        version=APP_VERSION,
    )


@app.get("/api/layers", response_model=List[LayerInfo])
async def overlay_layers(req: Request) -> List[LayerInfo]:
    """Return the overlay layers with their current visibility."""
    orchestrator: Optional[IntersectionOrchestrator] = getattr(req.app.state, 'orchestrator', None)
    visibility = orchestrator.layer_visibility if orchestrator else {}
    return [LayerInfo(**layer.metadata(visibility.get(layer.id))) for layer in OVERLAY_LAYERS]


@app.post("/api/click", response_model=IntersectionRound)
async def map_click(request: ClickRequest, req: Request):
    """Run an intersection round for a point clicked on the map."""
    _check_rate_limit(req)
    return await _dispatcher(req).submit(Click(request.point))


@app.post("/api/search/select", response_model=IntersectionRound)
async def search_select(request: SearchSelectRequest, req: Request):
    """Run an intersection round for a location picked from search results."""
    _check_rate_limit(req)
    return await _dispatcher(req).submit(SearchSelect(request.geometry))


@app.post("/api/view/scale", response_model=VisibilityResponse)
async def view_scale(request: ScaleRequest, req: Request):
    """Report a scale change made in the browser (pan/zoom outside a round)."""
    _check_rate_limit(req)
    dispatcher = _dispatcher(req)
    dispatcher.orchestrator.view.apply_scale(request.scale)
    visibility = await dispatcher.submit(ScaleChanged(request.scale))
    return VisibilityResponse(scale=request.scale, layerVisibility=visibility)


@app.get("/api/view", response_model=ViewState)
async def view_state(req: Request):
    return _dispatcher(req).orchestrator.view_state()


@app.get("/ui", response_class=HTMLResponse)
async def ui_page():
    """Serve the map page that drives the API from a browser."""
    return UI_PAGE


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
