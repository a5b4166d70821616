from __future__ import annotations

from progressive_lod._tests._helpers.fake_host import FakeMesh, FakeRenderable
from progressive_lod.metrics import Metrics
from progressive_lod.usage import MaterialUsageRegistry


def test_shared_material_survives_until_last_consumer_moves_on() -> None:
    events: list[tuple[str, str]] = []
    metrics = Metrics()
    registry = MaterialUsageRegistry(metrics=metrics)
    shared = FakeRenderable("shared", events)
    replacement = FakeRenderable("replacement", events)
    first, second = FakeMesh("a", material=shared), FakeMesh("b", material=shared)
    registry.track(2, 0, shared, first)
    registry.track(2, 0, shared, second)

    first.material = replacement
    assert registry.release_if_unused(2, 0) is False
    assert shared.disposed is False

    second.material = replacement
    assert registry.release_if_unused(2, 0) is True
    assert events == [("dispose", "shared")]
    assert (2, 0) not in registry
    assert metrics.counter("lod_disposed_total") == 1


def test_disposed_consumers_do_not_keep_material_alive() -> None:
    events: list[tuple[str, str]] = []
    registry = MaterialUsageRegistry()
    material = FakeRenderable("m", events)
    mesh = FakeMesh("a", material=material)
    registry.track(0, 4, material, mesh)

    assert registry.sweep() == 0
    mesh.disposed = True
    assert registry.sweep() == 1
    assert material.disposed is True
    assert len(registry) == 0


def test_draw_modes_are_tracked_separately() -> None:
    events: list[tuple[str, str]] = []
    registry = MaterialUsageRegistry()
    triangles = FakeRenderable("triangles", events)
    lines = FakeRenderable("lines", events)
    mesh = FakeMesh("a", material=triangles)
    registry.track(1, 4, triangles, mesh)
    registry.track(1, 1, lines, mesh)

    assert registry.release_if_unused(1, 1) is True
    assert registry.release_if_unused(1, 4) is False
    assert registry.get(1, 4) is not None
    assert registry.release_if_unused(9, 9) is False
