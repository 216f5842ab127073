import hashlib
from typing import Any, Awaitable, Dict, Optional

from common.errors import ForestError
from common.observability.metrics import is_metrics_enabled


def trace_enabled() -> bool:
    """Return True when forest tracing is enabled or OTEL exporter defaults apply."""
    return is_metrics_enabled("FOREST_TRACE_OPERATIONS")


def _hash_sql(sql: str) -> str:
    return hashlib.sha256(sql.encode("utf-8")).hexdigest()


async def trace_operation(
    name: str,
    provider: str,
    operation: Awaitable,
    sql: Optional[str] = None,
    attributes: Optional[Dict[str, Any]] = None,
):
    """Trace a store statement or engine operation with OTEL when enabled.

    Only ids, counts and hashed SQL are attached; node labels never are.
    """
    if not trace_enabled():
        return await operation

    from opentelemetry import trace

    tracer = trace.get_tracer("forest")
    with tracer.start_as_current_span(name) as span:
        span.set_attribute("db.provider", provider)
        if sql:
            span.set_attribute("db.statement_hash", _hash_sql(sql))
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, value)
        try:
            result = await operation
            span.set_attribute("forest.status", "ok")
            return result
        except ForestError as exc:
            span.set_attribute("forest.status", "error")
            span.set_attribute("forest.error_code", exc.code.value)
            raise
        except Exception:
            span.set_attribute("forest.status", "error")
            raise
