"""OpenTelemetry spans for search and indexing operations.

Spans are named ``search.<operation>``. Keyword attributes are recorded under
the ``search.`` namespace and unset values are skipped, so callers can pass
optional fields straight through. While a span is open its trace and span
ids, plus the index handle, are bound into the log trace context.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
import logging
from typing import TYPE_CHECKING

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.trace import SpanKind, Status, StatusCode

from site_search.observability.context import bound_trace_context


if TYPE_CHECKING:
    from opentelemetry.sdk.trace.export import SpanExporter
    from opentelemetry.trace import Span, Tracer
    from opentelemetry.util.types import AttributeValue

logger = logging.getLogger(__name__)

TRACER_NAME = "site_search"
SPAN_NAMESPACE = "search"

_tracer_holder: dict[str, Tracer | None] = {"tracer": None}


def init_tracing(
    service_name: str = "site-search",
    resource_attributes: dict[str, str] | None = None,
    *,
    exporter: SpanExporter | None = None,
) -> TracerProvider:
    """Install a tracer provider; finished spans go to ``exporter`` when given.

    The package tracer is taken from the new provider directly, so a second
    call takes effect even though OpenTelemetry keeps the first global one.
    """
    resource = Resource.create({"service.name": service_name, **(resource_attributes or {})})
    provider = TracerProvider(resource=resource)
    if exporter is not None:
        provider.add_span_processor(SimpleSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    _tracer_holder["tracer"] = provider.get_tracer(TRACER_NAME)
    logger.debug("Tracing initialized for %s", service_name)
    return provider


def get_tracer() -> Tracer:
    if _tracer_holder["tracer"] is None:
        _tracer_holder["tracer"] = trace.get_tracer(TRACER_NAME)
    return _tracer_holder["tracer"]  # type: ignore[return-value]


def span_attributes(**values: AttributeValue | None) -> dict[str, AttributeValue]:
    """Namespace ``values`` under ``search.`` and drop the unset ones."""
    return {f"{SPAN_NAMESPACE}.{key}": value for key, value in values.items() if value is not None}


def set_span_attributes(span: Span, **values: AttributeValue | None) -> None:
    """Record operation results (hit counts, cache use) on an open span."""
    span.set_attributes(span_attributes(**values))


@contextmanager
def create_span(
    operation: str,
    index_handle: str | None = None,
    *,
    kind: SpanKind = SpanKind.INTERNAL,
    **attributes: AttributeValue | None,
) -> Iterator[Span]:
    """Open ``search.<operation>`` around one engine or indexer call.

    Failures are recorded on the span with ``search.error`` naming the
    exception class, then re-raised.
    """
    with get_tracer().start_as_current_span(
        f"{SPAN_NAMESPACE}.{operation}",
        kind=kind,
        attributes=span_attributes(index=index_handle, **attributes),
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        bound: dict[str, object] = {"index": index_handle} if index_handle else {}
        ids = span.get_span_context()
        if ids.is_valid:
            bound.update(trace_id=format(ids.trace_id, "032x"), span_id=format(ids.span_id, "016x"))

        with bound_trace_context(**bound):
            try:
                yield span
            except Exception as exc:
                set_span_attributes(span, error=type(exc).__name__)
                span.set_status(Status(StatusCode.ERROR, str(exc)))
                span.record_exception(exc)
                raise
