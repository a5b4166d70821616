from __future__ import annotations

import logging

from progressive_lod.events import LevelObservable
from progressive_lod.level_logging import LevelLoadedLogger, LevelLogger
from progressive_lod.metrics import Metrics


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_spans_record_elapsed_ms() -> None:
    clock = FakeClock()
    metrics = Metrics(clock=clock)

    metrics.start_span("Node LOD 1")
    clock.now = 0.25
    assert metrics.end_span("Node LOD 1") == 250.0
    assert metrics.end_span("Node LOD 1") is None

    stats = metrics.snapshot()["histograms"]["Node LOD 1"]
    assert stats["count"] == 1
    assert stats["last_ms"] == 250.0
    assert stats["min_ms"] == 250.0


def test_snapshot_reports_counters_and_open_spans() -> None:
    metrics = Metrics()
    metrics.inc("lod_bucket_reads_total")
    metrics.inc("lod_bucket_bytes_total", 128)
    metrics.set("lod_node_levels_pending", 2)
    metrics.start_span("Material LOD 1")

    snap = metrics.snapshot()
    assert snap["counters"] == {"lod_bucket_reads_total": 1, "lod_bucket_bytes_total": 128}
    assert snap["gauges"] == {"lod_node_levels_pending": 2.0}
    assert snap["open_spans"] == ["Material LOD 1"]


def test_level_observable_isolates_failing_subscribers(caplog) -> None:
    observable = LevelObservable("node level loaded")
    seen: list[int] = []

    def broken(level: int) -> None:
        raise RuntimeError("subscriber bug")

    observable.subscribe(broken)
    observable.subscribe(seen.append)
    with caplog.at_level(logging.ERROR, logger="progressive_lod.events"):
        observable.notify(2)

    assert seen == [2]
    assert "subscriber failed" in caplog.text

    observable.unsubscribe(broken)
    observable.unsubscribe(broken)
    assert len(observable) == 1
    observable.clear()
    observable.notify(3)
    assert seen == [2]


def test_level_logger_indents_nested_loads(caplog) -> None:
    log = logging.getLogger("progressive_lod.tests.level_logging")
    level_log = LevelLogger(log, verbose=True)

    with caplog.at_level(logging.INFO, logger=log.name):
        level_log.open("/nodes/0")
        level_log.log("node LOD %d -> %s", 0, "#/nodes/2")
        level_log.close()
        level_log.close()
        LevelLoadedLogger(log).log(kind="node", level=0, objects=2, failures=0)

    messages = [record.getMessage() for record in caplog.records]
    assert messages == ["/nodes/0", "  node LOD 0 -> #/nodes/2", "Loaded node LOD 0 (objects=2)"]
    assert level_log.depth == 0
