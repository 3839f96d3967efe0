import sys

from study_qa.infrastructure.telemetry.otel_adapter import OpenTelemetryAdapter, OtelConfig


class FakeInstrument:
    def __init__(self):
        self.values: list[tuple[float, dict]] = []

    def add(self, value, attributes=None):
        self.values.append((value, attributes))

    def record(self, value, attributes=None):
        self.values.append((value, attributes))


class FakeMeter:
    def __init__(self):
        self.counters: dict[str, FakeInstrument] = {}
        self.histograms: dict[str, FakeInstrument] = {}

    def create_counter(self, name, description=""):
        return self.counters.setdefault(name, FakeInstrument())

    def create_histogram(self, name, description=""):
        return self.histograms.setdefault(name, FakeInstrument())


class BrokenMeter:
    def create_counter(self, name, description=""):
        raise RuntimeError("exporter gone")

    def create_histogram(self, name, description=""):
        raise RuntimeError("exporter gone")


def test_sdk_initialises_with_defaults():
    adapter = OpenTelemetryAdapter(OtelConfig(service_name="study-qa-test", environment="test"))
    assert adapter.enabled
    adapter.incr("qa.sessions.total", {"pipeline": "rag", "status": "success"})
    adapter.observe("qa.answer.chars", 120.0)


def test_missing_sdk_degrades_to_no_op(monkeypatch):
    monkeypatch.setitem(sys.modules, "opentelemetry.sdk.metrics", None)
    adapter = OpenTelemetryAdapter(OtelConfig())
    assert not adapter.enabled
    adapter.incr("qa.sessions.total")
    adapter.observe("qa.session.latency_ms", 12.5)


def test_instruments_are_created_once_and_tagged():
    adapter = OpenTelemetryAdapter(OtelConfig())
    meter = FakeMeter()
    adapter._meter = meter

    adapter.incr("vectorize.total", {"status": "success"})
    adapter.incr("vectorize.total", {"status": "failed"})
    adapter.observe("vectorize.chunks", 7.0)

    assert meter.counters["vectorize.total"].values == [
        (1, {"status": "success"}),
        (1, {"status": "failed"}),
    ]
    assert meter.histograms["vectorize.chunks"].values == [(7.0, {})]


def test_instrument_failures_never_reach_the_caller():
    adapter = OpenTelemetryAdapter(OtelConfig())
    adapter._meter = BrokenMeter()
    adapter.incr("qa.retrieval.degraded")
    adapter.observe("qa.retrieval.passages", 3.0)
