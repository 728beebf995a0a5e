"""
Best-effort trace export.

Spans are posted as OTLP/HTTP JSON to ``<endpoint>/v1/traces`` when an
endpoint is configured. Export failures never affect the loop.
"""

import logging
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Optional

import requests

logger = logging.getLogger(__name__)

ENDPOINT_ENV = "OTEL_EXPORTER_OTLP_ENDPOINT"
EXPORT_TIMEOUT = 2

SPAN_KIND_INTERNAL = 1
STATUS_OK = 1
STATUS_ERROR = 2


def _attribute_value(value: Any) -> dict:
    if isinstance(value, bool):
        return {"boolValue": value}
    if isinstance(value, int):
        return {"intValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    return {"stringValue": str(value)}


def _attributes(values: dict[str, Any]) -> list[dict]:
    return [
        {"key": key, "value": _attribute_value(value)}
        for key, value in values.items()
        if value is not None
    ]


class TraceEmitter:
    """Emits spans for loop sessions and iterations.

    All spans from one emitter share a trace id, so a whole loop session
    shows up as one trace.

    Example:
        emitter = TraceEmitter.from_env()
        with emitter.span("loop_iteration", iteration=1, max=10) as attrs:
            result = host.run(prompt_path, project_dir)
            attrs["exit_code"] = result.exit_code
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        service_name: str = "rehoboam",
        session: Optional[requests.Session] = None,
    ):
        self.endpoint = endpoint.rstrip("/") if endpoint else None
        self.service_name = service_name
        self.session = session or requests.Session()
        self.trace_id = os.urandom(16).hex()

    @classmethod
    def from_env(cls, endpoint: Optional[str] = None, service_name: str = "rehoboam") -> "TraceEmitter":
        """Create an emitter; the environment endpoint overrides the given one."""
        return cls(endpoint=os.environ.get(ENDPOINT_ENV) or endpoint, service_name=service_name)

    @property
    def enabled(self) -> bool:
        return bool(self.endpoint)

    @contextmanager
    def span(self, name: str, **attributes: Any) -> Iterator[dict[str, Any]]:
        """Measure a span; attributes added to the yielded dict are exported too."""
        attrs = dict(attributes)
        start_ns = time.time_ns()
        status = STATUS_OK
        try:
            yield attrs
        except BaseException:
            status = STATUS_ERROR
            raise
        finally:
            if self.enabled:
                self.export(self.build_payload(name, attrs, start_ns, time.time_ns(), status))

    def build_payload(self, name: str, attributes: dict[str, Any], start_ns: int, end_ns: int, status: int = STATUS_OK) -> dict:
        return {
            "resourceSpans": [{
                "resource": {
                    "attributes": _attributes({"service.name": self.service_name}),
                },
                "scopeSpans": [{
                    "scope": {"name": "rehoboam"},
                    "spans": [{
                        "traceId": self.trace_id,
                        "spanId": os.urandom(8).hex(),
                        "name": name,
                        "kind": SPAN_KIND_INTERNAL,
                        "startTimeUnixNano": str(start_ns),
                        "endTimeUnixNano": str(end_ns),
                        "attributes": _attributes(attributes),
                        "status": {"code": status},
                    }],
                }],
            }],
        }

    def export(self, payload: dict) -> bool:
        """POST one payload. Returns False if the export failed."""
        url = f"{self.endpoint}/v1/traces"
        try:
            response = self.session.post(url, json=payload, timeout=EXPORT_TIMEOUT)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.debug(f"Trace export to {url} failed: {e}")
            return False
        return True
