"""
Unit tests for TraceEmitter.

Tests:
1. Disabled emitter sends nothing
2. Span payload shape and attributes
3. Export failures are swallowed
"""

import os
import sys
import unittest
from unittest.mock import MagicMock, patch

import requests

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from rehoboam.telemetry import ENDPOINT_ENV, STATUS_ERROR, STATUS_OK, TraceEmitter


def span_of(call):
    return call.kwargs["json"]["resourceSpans"][0]["scopeSpans"][0]["spans"][0]


class TestTraceEmitter(unittest.TestCase):
    """Test span export."""

    def setUp(self):
        self.session = MagicMock()
        self.emitter = TraceEmitter(endpoint="http://collector:4318/", session=self.session)

    def test_disabled(self):
        """Test no request is made without an endpoint."""
        session = MagicMock()
        emitter = TraceEmitter(session=session)
        with emitter.span("loop_iteration", iteration=1):
            pass
        self.assertFalse(emitter.enabled)
        session.post.assert_not_called()

    def test_span_payload(self):
        """Test the exported span carries name, attributes and timing."""
        with self.emitter.span("loop_iteration", iteration=2, max=10, role="Auto") as attrs:
            attrs["exit_code"] = 0

        self.session.post.assert_called_once()
        call = self.session.post.call_args
        self.assertEqual(call.args[0], "http://collector:4318/v1/traces")
        self.assertEqual(call.kwargs["timeout"], 2)

        span = span_of(call)
        self.assertEqual(span["name"], "loop_iteration")
        self.assertEqual(span["traceId"], self.emitter.trace_id)
        self.assertEqual(len(span["spanId"]), 16)
        self.assertEqual(span["status"]["code"], STATUS_OK)
        self.assertLessEqual(int(span["startTimeUnixNano"]), int(span["endTimeUnixNano"]))
        attributes = {a["key"]: a["value"] for a in span["attributes"]}
        self.assertEqual(attributes["iteration"], {"intValue": "2"})
        self.assertEqual(attributes["role"], {"stringValue": "Auto"})
        self.assertEqual(attributes["exit_code"], {"intValue": "0"})

    def test_error_status(self):
        """Test a failing block is exported with error status and re-raised."""
        with self.assertRaises(RuntimeError):
            with self.emitter.span("loop_iteration"):
                raise RuntimeError("boom")
        self.assertEqual(span_of(self.session.post.call_args)["status"]["code"], STATUS_ERROR)

    def test_shared_trace(self):
        """Test spans from one emitter share a trace id."""
        with self.emitter.span("loop_session_init"):
            pass
        with self.emitter.span("loop_iteration"):
            pass
        trace_ids = {span_of(c)["traceId"] for c in self.session.post.call_args_list}
        self.assertEqual(len(trace_ids), 1)

    def test_export_failure_swallowed(self):
        """Test connection errors do not propagate."""
        self.session.post.side_effect = requests.ConnectionError("refused")
        with self.emitter.span("loop_iteration"):
            pass
        self.assertFalse(self.emitter.export({}))

    def test_http_error_swallowed(self):
        response = MagicMock()
        response.raise_for_status.side_effect = requests.HTTPError("500")
        self.session.post.return_value = response
        self.assertFalse(self.emitter.export({}))

    def test_from_env(self):
        with patch.dict(os.environ, {ENDPOINT_ENV: "http://env:4318"}):
            self.assertEqual(TraceEmitter.from_env("http://yaml:4318").endpoint, "http://env:4318")
        with patch.dict(os.environ):
            os.environ.pop(ENDPOINT_ENV, None)
            self.assertEqual(TraceEmitter.from_env("http://yaml:4318").endpoint, "http://yaml:4318")
            self.assertFalse(TraceEmitter.from_env().enabled)


if __name__ == "__main__":
    unittest.main()
