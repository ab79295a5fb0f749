import hashlib
import logging
import os
from typing import Callable, Optional, TypeVar

from redash_dal.errors import ConfigurationError
from redash_dal.util.env import get_env_bool

T = TypeVar("T")
logger = logging.getLogger(__name__)

TRACE_ENV_VAR = "REDASH_TRACE_QUERIES"
PROVIDER = "redash"


def _is_otel_exporter_configured() -> bool:
    return bool(
        os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT") or os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT")
    )


def trace_enabled() -> bool:
    """Return True when query tracing is enabled or OTEL exporter defaults apply."""
    raw = os.getenv(TRACE_ENV_VAR)
    if raw is not None:
        try:
            return get_env_bool(TRACE_ENV_VAR, False) is True
        except ConfigurationError:
            logger.warning("Invalid %s value '%s'; tracing disabled.", TRACE_ENV_VAR, raw)
            return False
    return _is_otel_exporter_configured()


def _hash_sql(sql: str) -> str:
    return hashlib.sha256(sql.encode("utf-8")).hexdigest()


def trace_operation(
    name: str,
    operation: Callable[[], T],
    sql: Optional[str] = None,
    target_id: Optional[str] = None,
) -> T:
    """Run ``operation`` inside an OTEL span when tracing is enabled."""
    if not trace_enabled():
        return operation()

    from opentelemetry import trace

    tracer = trace.get_tracer("redash_dal")
    with tracer.start_as_current_span(name) as span:
        span.set_attribute("db.provider", PROVIDER)
        span.set_attribute("db.execution_model", "async")
        if sql:
            span.set_attribute("db.statement_hash", _hash_sql(sql))
        if target_id is not None:
            span.set_attribute("redash.target_id", str(target_id))
        try:
            result = operation()
            span.set_attribute("db.status", "ok")
            return result
        except Exception:
            span.set_attribute("db.status", "error")
            raise
