# summary_chat/main.py
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import os
import time
import uuid

from summary_chat import config
from summary_chat.api.routes import router
from summary_chat.db.database import create_engine, create_session_factory, init_models
from summary_chat.db.store import ChatStore
from summary_chat.errors import SummaryChatError
from summary_chat.llm.client import LLMClient
from summary_chat.memory.embedder import Embedder
from summary_chat.memory.loader import ContentExtractor
from summary_chat.memory.qdrant_client import QdrantVectorDB
from summary_chat.memory.store import RetrievalIndex
from summary_chat.observability.logger import setup_logging, get_logger
from summary_chat.observability.metrics import MetricsTracker
from summary_chat.observability.posthog_client import PostHogAnalytics
from summary_chat.workflow.chat_service import ChatService
from summary_chat.workflow.context import ContextAssembler
from summary_chat.workflow.orchestrator import GenerationOrchestrator
from summary_chat.workflow.sizing import SizingPolicy

# Initialize logging FIRST
setup_logging(log_level=os.getenv("LOG_LEVEL", "INFO"))
logger = get_logger(__name__)


def build_chat_service(store, index, llm_client, analytics, metrics) -> ChatService:
    """Wire the pipeline from process-scoped collaborators."""

    assembler = ContextAssembler(store, index, analytics=analytics)

    orchestrator = GenerationOrchestrator(
        store,
        assembler,
        llm_client,
        analytics=analytics,
        metrics=metrics,
    )

    return ChatService(
        store=store,
        extractor=ContentExtractor(),
        sizing=SizingPolicy(store, index, analytics=analytics),
        orchestrator=orchestrator,
        analytics=analytics,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):

    if not os.getenv("OPENAI_API_KEY"):

        logger.warning(
            "missing_api_key",
            extra={
                "warning_detail":
                "OPENAI_API_KEY not set. Generation and indexing will fail."
            }
        )

    if not config.JWT_SECRET:

        logger.warning(
            "missing_jwt_secret",
            extra={
                "warning_detail":
                "JWT_SECRET not set. Every request will be rejected as unauthorized."
            }
        )

    engine = create_engine()
    await init_models(engine)

    store = ChatStore(create_session_factory(engine))

    embedder = Embedder()
    index = RetrievalIndex(embedder, QdrantVectorDB(dim=embedder.get_dimension()))

    analytics = PostHogAnalytics()
    metrics = MetricsTracker()

    service = build_chat_service(store, index, LLMClient(), analytics, metrics)

    app.state.engine = engine
    app.state.analytics = analytics
    app.state.metrics = metrics
    app.state.chat_service = service

    logger.info("application_startup", extra={"version": "1.0.0"})

    yield

    await service.orchestrator.wait_idle()
    analytics.shutdown()
    await engine.dispose()

    logger.info("application_shutdown")


# Initialize FastAPI app
app = FastAPI(
    title="Summary Chat API",
    description="Summaries and follow-up Q&A over text, PDFs and web pages",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("ALLOWED_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Thread-Id"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Middleware to log all HTTP requests with latency tracking.
    """

    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    logger.info(
        "request_started",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None
        }
    )

    start_time = time.time()

    try:

        response = await call_next(request)

    except Exception as e:

        logger.error(
            "request_failed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "latency_seconds": round(time.time() - start_time, 3),
                "error": str(e),
                "error_type": type(e).__name__
            },
            exc_info=True
        )

        raise

    response.headers["X-Request-Id"] = request_id

    logger.info(
        "request_completed",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "latency_seconds": round(time.time() - start_time, 3)
        }
    )

    return response


# Include API routes
app.include_router(router)


@app.exception_handler(SummaryChatError)
async def summary_chat_exception_handler(request: Request, exc: SummaryChatError):

    logger.info(
        "request_rejected",
        extra={
            "request_id": getattr(request.state, "request_id", "unknown"),
            "path": request.url.path,
            "status_code": exc.status_code,
            "error": exc.message,
            "error_type": type(exc).__name__,
        },
    )

    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):

    errors = exc.errors()
    first = errors[0] if errors else {}

    # loc is ("path" | "query" | "body", field, ...)
    field = ".".join(str(part) for part in first.get("loc", ())[1:]) or "request"
    message = f"Invalid {field}: {first.get('msg', 'malformed request')}"

    logger.info(
        "request_rejected",
        extra={
            "request_id": getattr(request.state, "request_id", "unknown"),
            "path": request.url.path,
            "status_code": status.HTTP_400_BAD_REQUEST,
            "error": message,
            "error_type": type(exc).__name__,
        },
    )

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"status": status.HTTP_400_BAD_REQUEST, "message": message},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):

    request_id = getattr(request.state, "request_id", "unknown")

    logger.error(
        "unhandled_exception",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "error": str(exc),
            "error_type": type(exc).__name__
        },
        exc_info=True
    )

    analytics = getattr(request.app.state, "analytics", None)

    if analytics is not None:
        analytics.record(
            "error_occurred",
            user_id=getattr(request.state, "user_id", None),
            properties={
                "errorType": "internal",
                "error": str(exc),
                "endpoint": request.url.path,
                "requestId": request_id,
            },
        )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "status": status.HTTP_500_INTERNAL_SERVER_ERROR,
            "message": "An internal error occurred. Please try again.",
        }
    )


@app.get("/")
async def root():

    return {
        "message": "Summary Chat API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics"
    }
