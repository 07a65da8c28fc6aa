from contextlib import asynccontextmanager
from dotenv import load_dotenv
import logging
import sentry_sdk
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from tracewarden.api.routers.routers import api_router
from tracewarden.core.config import settings
from tracewarden.core.logging_config import configure_logging
from tracewarden.core.otel_config import setup_otel_metrics, setup_otel_logs, shutdown_otel
from tracewarden.core.otel_metrics import init_meter
from tracewarden.core.scheduler import Ticker
from tracewarden.middleware import HTTPMetricsMiddleware, RequestIDMiddleware
from tracewarden.status.service import status_service
from tracewarden.workers.analysis_worker import analysis_worker


# Load environment variables
load_dotenv()

# Configure logging with request_id and trace_id support using stdlib logging
configure_logging()

# Get logger for this module
logger = logging.getLogger(__name__)

# Initialize Sentry for error tracking
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        traces_sample_rate=1.0 if settings.is_local else 0.1,
        environment=settings.ENVIRONMENT,
        send_default_pii=False,
        enable_logs=True,
    )
    logger.info("Sentry initialized")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown lifecycle.

    On startup, configures OpenTelemetry export, starts the analysis worker and
    the status ticker, then yields control for the application to run. On
    shutdown, stops the ticker and worker, analyzes whatever is still queued
    and flushes telemetry. Errors during shutdown are logged.
    """
    logger.info("Starting TraceWarden...")

    status_ticker = Ticker(
        settings.STATUS_LOG_INTERVAL_SECONDS,
        status_service.log_snapshot,
        name="status",
    )

    try:
        # Initialize OpenTelemetry (if enabled)
        if settings.OTEL_ENABLED and settings.OTEL_OTLP_ENDPOINT:
            try:
                init_meter(setup_otel_metrics(settings.OTEL_OTLP_ENDPOINT))

                otel_log_handler = setup_otel_logs(settings.OTEL_OTLP_ENDPOINT)
                configure_logging(otel_handler=otel_log_handler)
                logger.info("OpenTelemetry logs configured")
            except Exception as e:
                logger.error(f"Failed to initialize OpenTelemetry: {e}")

        await analysis_worker.start()
        await status_ticker.start()

        logger.info("All services started successfully")
        yield

    except Exception:
        logger.exception("Failed to start services")
        raise
    finally:
        logger.info("Shutting down TraceWarden...")

        try:
            await status_ticker.stop()

            await analysis_worker.stop()
            await analysis_worker.drain()
            logger.info("Analysis worker stopped")

            # Flush remaining telemetry last
            if settings.OTEL_ENABLED:
                shutdown_otel()

            logger.info("All services stopped successfully")
        except Exception:
            logger.exception("Error during shutdown")


# Create FastAPI application
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    lifespan=lifespan,
    openapi_url="/openapi.json" if settings.is_local else None,
)

app.add_middleware(HTTPMetricsMiddleware)

# Request ID middleware is added last so it wraps every other middleware
app.add_middleware(RequestIDMiddleware)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Instrument FastAPI with OpenTelemetry
if settings.OTEL_ENABLED:
    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

        FastAPIInstrumentor.instrument_app(app)
        logger.info("FastAPI instrumented with OpenTelemetry")
    except Exception as e:
        logger.error(f"Failed to instrument FastAPI with OpenTelemetry: {e}")

app.include_router(api_router)


@app.get("/health")
async def health_check():
    try:
        return {
            "tracewarden": {"status": "healthy"},
            "analysis_worker": {
                "running": analysis_worker.running,
                "pending": analysis_worker.pending,
            },
        }
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Health check failed: {str(e)}")
