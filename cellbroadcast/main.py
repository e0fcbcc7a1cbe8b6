import logging
from contextlib import asynccontextmanager
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from cellbroadcast.config import Settings, get_settings
from cellbroadcast.exceptions import CellBroadcastError
from cellbroadcast.logging_utils import setup_logging, RequestLoggingMiddleware, log_provider_data
from cellbroadcast.metrics import get_metrics, get_metrics_content_type
from cellbroadcast.migrations import DATABASE_VERSION, SchemaManager
from cellbroadcast.models import CELL_BROADCASTS_TABLE_NAME
from cellbroadcast.notifications import ChangeNotifier
from cellbroadcast.permissions import PermissionChecker, PrincipalPermissionChecker
from cellbroadcast.provider import CONTENT_URI, CellBroadcastProvider, content_uri_for
from cellbroadcast.schemas import (
    CellBroadcastValues,
    CountResponse,
    ErrorResponse,
    HealthResponse,
    InsertResponse,
    QueryResponse,
    UpdateRequest,
)
from cellbroadcast.storage import Database
from cellbroadcast.utils import verify_caller_signature


logger = logging.getLogger(__name__)

health_router = APIRouter()
provider_router = APIRouter(prefix="/cellbroadcasts")


# =============================================================================
# Dependencies
# =============================================================================

def get_provider(request: Request) -> CellBroadcastProvider:
    return request.app.state.provider


def get_caller(
    request: Request,
    x_caller: Annotated[Optional[str], Header(alias="X-Caller")] = None,
    x_signature: Annotated[Optional[str], Header(alias="X-Signature")] = None,
) -> str:
    """
    Resolve the caller principal.

    The principal name travels in X-Caller and is trusted only when
    X-Signature carries its HMAC-SHA256 under CALLER_SECRET.
    """
    if not x_caller or not x_signature:
        logger.warning("Missing X-Caller or X-Signature header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="missing caller identity"
        )

    settings: Settings = request.app.state.settings
    if not verify_caller_signature(x_caller, x_signature, settings.CALLER_SECRET):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid caller signature"
        )
    return x_caller


def get_content_uri(request: Request) -> str:
    """Map /cellbroadcasts[/{view}] onto the provider's content uri."""
    view = request.path_params.get("view", "")
    if view:
        return f"{CONTENT_URI}/{view}"
    return CONTENT_URI


Caller = Annotated[str, Depends(get_caller)]
ContentUri = Annotated[str, Depends(get_content_uri)]
Provider = Annotated[CellBroadcastProvider, Depends(get_provider)]


# =============================================================================
# Health Check Routes
# =============================================================================

@health_router.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """
    Liveness probe - always returns 200 once the app is running.
    """
    return HealthResponse(status="ok")


@health_router.get("/health/ready", response_model=HealthResponse)
def health_ready(request: Request, response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if the DB is reachable and the
    cell broadcast table is at the current schema version.

    Otherwise returns 503 (Service Unavailable).
    """
    database: Database = request.app.state.database
    schema: SchemaManager = request.app.state.schema

    if not database.check_health(CELL_BROADCASTS_TABLE_NAME):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    version = schema.current_version()
    if version != DATABASE_VERSION:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason=f"Schema version {version}, expected {DATABASE_VERSION}"
        )

    return HealthResponse(status="ready")


@health_router.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics.
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )


# =============================================================================
# Provider Routes
# =============================================================================

@provider_router.get("", response_model=QueryResponse)
@provider_router.get("/{view:path}", response_model=QueryResponse)
def query_cell_broadcasts(
    request: Request,
    caller: Caller,
    uri: ContentUri,
    provider: Provider,
    projection: Annotated[Optional[list[str]], Query(description="Columns to return")] = None,
    selection: Annotated[Optional[str], Query(description="WHERE clause with ? placeholders")] = None,
    selection_args: Annotated[Optional[list[str]], Query(description="Bound selection values")] = None,
    sort_order: Annotated[Optional[str], Query(description="ORDER BY clause")] = None,
) -> QueryResponse:
    """
    Query the full collection (/cellbroadcasts) or a view such as
    /cellbroadcasts/history.

    The history view only ever returns broadcasted messages.
    """
    log_provider_data(request, caller, uri, "query")

    rows = provider.query(caller, uri, projection, selection, selection_args, sort_order)

    log_provider_data(request, caller, uri, "query", result="ok")
    return QueryResponse(data=rows, count=len(rows))


@provider_router.post("", response_model=InsertResponse)
@provider_router.post("/{view:path}", response_model=InsertResponse)
def insert_cell_broadcast(
    request: Request,
    response: Response,
    caller: Caller,
    uri: ContentUri,
    provider: Provider,
    values: CellBroadcastValues,
) -> InsertResponse:
    """
    Insert one message.

    Returns 201 with the new id, or 200 with null id and uri when storage
    reported no row without raising.
    """
    log_provider_data(request, caller, uri, "insert")

    row_id = provider.insert(caller, uri, values.to_values())

    if row_id is None:
        log_provider_data(request, caller, uri, "insert", result="soft_failure")
        return InsertResponse()

    log_provider_data(request, caller, uri, "insert", result="ok")
    response.status_code = status.HTTP_201_CREATED
    return InsertResponse(id=row_id, uri=content_uri_for(row_id))


@provider_router.patch("", response_model=CountResponse)
@provider_router.patch("/{view:path}", response_model=CountResponse)
def update_cell_broadcasts(
    request: Request,
    caller: Caller,
    uri: ContentUri,
    provider: Provider,
    body: UpdateRequest,
) -> CountResponse:
    """Apply values to every message matching the selection."""
    log_provider_data(request, caller, uri, "update")

    count = provider.update(
        caller, uri, body.values.to_values(), body.selection, body.selection_args
    )

    log_provider_data(request, caller, uri, "update", result="ok")
    return CountResponse(count=count)


@provider_router.delete("", response_model=CountResponse)
@provider_router.delete("/{view:path}", response_model=CountResponse)
def delete_cell_broadcasts(
    request: Request,
    caller: Caller,
    uri: ContentUri,
    provider: Provider,
    selection: Annotated[Optional[str], Query(description="WHERE clause with ? placeholders")] = None,
    selection_args: Annotated[Optional[list[str]], Query(description="Bound selection values")] = None,
) -> CountResponse:
    """Delete every message matching the selection."""
    log_provider_data(request, caller, uri, "delete")

    count = provider.delete(caller, uri, selection, selection_args)

    log_provider_data(request, caller, uri, "delete", result="ok")
    return CountResponse(count=count)


# =============================================================================
# Error Handling
# =============================================================================

def _error_response(request: Request, status_code: int, code: str, detail: str) -> JSONResponse:
    provider_data = getattr(request.state, "provider_log_data", None)
    if provider_data is not None:
        provider_data["result"] = code.lower()
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(code=code, detail=detail).model_dump(),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Map provider and storage errors onto HTTP responses."""

    @app.exception_handler(CellBroadcastError)
    async def cell_broadcast_error_handler(request: Request, exc: CellBroadcastError):
        return _error_response(request, exc.status_code, exc.code, exc.message)

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        logger.error(f"Constraint violation: {exc.orig}")
        return _error_response(request, status.HTTP_409_CONFLICT, "ERROR", str(exc.orig))

    @app.exception_handler(SQLAlchemyError)
    async def storage_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"Storage error: {exc}")
        return _error_response(
            request, status.HTTP_500_INTERNAL_SERVER_ERROR, "ERROR", "storage error"
        )


# =============================================================================
# Application Factory
# =============================================================================

def create_app(
    settings: Optional[Settings] = None,
    permission_checker: Optional[PermissionChecker] = None,
    notifier: Optional[ChangeNotifier] = None,
) -> FastAPI:
    """
    Build the application.

    The storage handle is created and the schema opened at startup, and the
    engine disposed at shutdown. A schema migration failure aborts startup.
    """
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    if permission_checker is None:
        permission_checker = PrincipalPermissionChecker(
            settings.WRITER_PRINCIPALS, settings.HISTORY_READER_PRINCIPALS
        )
    if notifier is None:
        notifier = ChangeNotifier()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database = Database(settings.DATABASE_URL)
        schema = SchemaManager(database)
        schema.open()
        logger.info(f"Database ready at schema version {DATABASE_VERSION}")

        app.state.database = database
        app.state.schema = schema
        app.state.provider = CellBroadcastProvider(database, permission_checker, notifier)
        try:
            yield
        finally:
            database.dispose()

    app = FastAPI(
        title="Cell Broadcast Store",
        description="Permissioned access to received cell broadcast alerts",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.notifier = notifier

    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(provider_router)

    return app
