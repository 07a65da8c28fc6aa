from typing import List, Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Environment
    ENVIRONMENT: Optional[str] = None

    # Log Level (e.g., INFO, DEBUG, WARNING, ERROR)
    LOG_LEVEL: str = "INFO"

    # API Configuration
    PROJECT_NAME: str = "TraceWarden"
    VERSION: str = "0.1.0"

    # CORS
    ALLOWED_ORIGINS: List[str] = ["*"]

    # Ingestion
    DEFAULT_PROJECT_ID: str = (
        "default"  # Used when an export carries no X-Project-ID header
    )
    LIVE_LOG_ENABLED: bool = False  # One log line per SERVER span as it arrives
    DERIVED_SLOW_QUERY_THRESHOLD_MS: int = (
        1000  # DB spans above this synthesize a slow_query event
    )

    # Span Store retention (oldest-first eviction)
    SPAN_RETENTION_LIMIT: int = 5000
    EVENT_RETENTION_LIMIT: int = 1000
    INCIDENT_RETENTION_LIMIT: int = 500  # resolved incidents are evicted first

    # Analyzer thresholds
    N_PLUS_ONE_MIN_OCCURRENCES: int = 5
    SLOW_QUERY_THRESHOLD_MS: int = 500
    SLOW_EXTERNAL_CALL_THRESHOLD_MS: int = 2000

    # Issue lifecycle
    ISSUE_RESOLVE_AFTER_MISSED_PASSES: int = (
        2  # Passes over the same route without re-detection before resolving
    )

    # Schema drift
    SCHEMA_AUTO_ACCEPT_COUNT: int = (
        3  # Consecutive matches of a new shape before it becomes the baseline
    )

    # Anomaly detection
    ERROR_PATTERN_MAX_LENGTH: int = 50
    ANOMALY_SPIKE_MULTIPLIER: float = 3.0
    ANOMALY_MIN_BASELINE_RATE: float = (
        1.0  # Errors/hour; below this spike detection is skipped
    )
    ANOMALY_RECENT_WINDOW_MINUTES: int = 60
    ANOMALY_BASELINE_WINDOW_DAYS: int = 7

    # Incident trace correlation
    CORRELATION_WINDOW_PADDING_SECONDS: int = 120
    CORRELATION_MAX_CANDIDATE_TRACES: int = 10
    CORRELATION_MAX_SPANS: int = 200

    # Background analysis
    ANALYSIS_QUEUE_MAX_SIZE: int = 10000
    STATUS_LOG_INTERVAL_SECONDS: float = 60.0

    # OpenTelemetry Configuration (self-telemetry of this service)
    OTEL_ENABLED: bool = True  # Enable/disable OpenTelemetry
    OTEL_OTLP_ENDPOINT: Optional[str] = (
        None  # OTLP endpoint URL (e.g., "http://collector:4317")
    )
    OTEL_EXPORT_INTERVAL_SECONDS: float = 15.0
    OTEL_INSECURE: bool = True  # plaintext gRPC to the collector
    HOSTNAME: Optional[str] = (
        None  # Hostname for resource attributes (auto-detected if None)
    )

    # Sentry Configuration
    SENTRY_DSN: Optional[str] = None  # Sentry DSN for error tracking

    # Logging Configuration
    LOGGING_FRAME_DEPTH: int = (
        6  # Frame depth for finding logging call origin in stack trace
    )

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    # --------- Properties ---------
    @property
    def is_local(self) -> bool:
        """
        Check if running in local development environment.

        Returns True only for "local" or "local_dev"; any other value
        (dev, staging, prod) or an unset ENVIRONMENT returns False.
        """
        if not self.ENVIRONMENT:
            return False
        env = self.ENVIRONMENT.lower()
        return env in ["local", "local_dev"]


settings = Settings()
