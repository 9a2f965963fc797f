"""
Tests for the span helpers and the spans emitted around queries and forest resolution.
"""
import pytest
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from fakes import FakeTaskStore, FakeUserStore, task, user
from taskgrove.forest.resolver import TaskForestResolver
from taskgrove.storage import UserRepository
from taskgrove.tracing import add_span_attribute, trace_span


@pytest.fixture
def exporter(monkeypatch):
    """Route spans from trace_span into memory instead of the global provider."""
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    monkeypatch.setattr(trace, "get_tracer", lambda *args, **kwargs: provider.get_tracer("test"))
    return exporter


class TestTraceSpan:

    def test_attributes(self, exporter):
        with trace_span("work", {"count": 3, "skipped": None, "ids": [1, 2]}):
            add_span_attribute("done", True)

        [span] = exporter.get_finished_spans()
        assert span.name == "work"
        assert dict(span.attributes) == {"count": 3, "ids": "[1, 2]", "done": True}

    def test_exception_marks_span_and_propagates(self, exporter):
        with pytest.raises(RuntimeError):
            with trace_span("work"):
                raise RuntimeError("boom")

        [span] = exporter.get_finished_spans()
        assert span.status.status_code == trace.StatusCode.ERROR
        assert [event.name for event in span.events] == ["exception"]

    def test_add_span_attribute_outside_span(self):
        add_span_attribute("orphan", 1)


class TestEmittedSpans:

    def test_forest_stages(self, exporter):
        resolver = TaskForestResolver(
            FakeTaskStore([task(1), task(2, parent=1)]), FakeUserStore([user(1)])
        )
        resolver.resolve_task_forest(1)

        names = [span.name for span in exporter.get_finished_spans()]
        assert names == [
            "forest.roots", "forest.closure", "forest.references", "forest.flatten", "forest.resolve",
        ]

    def test_queries(self, exporter, temp_db):
        exporter.clear()
        UserRepository(temp_db).find_by_ids([1, 2])

        [span] = exporter.get_finished_spans()
        assert span.name == "db.select"
        assert span.kind == trace.SpanKind.CLIENT
        assert span.attributes["db.sql.table"] == "users"
