import asyncio

import pytest

from conftest import MockModel
from window_chain.config import FallbackConfig
from window_chain.health_checker import HealthMonitor, HealthRecord, HealthState


def test_registration_creates_unknown_record():
    monitor = HealthMonitor()
    monitor.register("backup", MockModel())

    record = monitor.get_record("backup")
    assert record == HealthRecord()
    assert record.state is HealthState.UNKNOWN
    assert record.healthy is False
    assert record.error_count == 0


@pytest.mark.asyncio
async def test_probe_success_marks_healthy(clock):
    model = MockModel()
    monitor = HealthMonitor(clock=clock)
    monitor.register("backup", model)

    record = await monitor.probe("backup")

    assert record.state is HealthState.HEALTHY
    assert record.healthy is True
    assert record.latency_ms >= 0
    assert record.last_check_at == clock.now
    assert model.calls == ["Test prompt for health check"]


@pytest.mark.asyncio
async def test_probe_failures_accumulate_and_reset():
    model = MockModel(name="flaky", fail_times=2)
    monitor = HealthMonitor()
    monitor.register("flaky", model)

    first = await monitor.probe("flaky")
    second = await monitor.probe("flaky")
    assert first.state is HealthState.UNHEALTHY
    assert second.error_count == 2
    assert second.last_error == "flaky failed"

    recovered = await monitor.probe("flaky")
    assert recovered.healthy is True
    assert recovered.error_count == 0
    assert recovered.last_error is None


@pytest.mark.asyncio
async def test_probe_timeout_marks_unhealthy():
    monitor = HealthMonitor(FallbackConfig(timeout=0.05))
    monitor.register("slow", MockModel(delay=1.0))

    record = await monitor.probe("slow")

    assert record.state is HealthState.UNHEALTHY
    assert "timeout" in record.last_error


@pytest.mark.asyncio
async def test_probe_without_backend_is_noop():
    monitor = HealthMonitor()
    monitor.register("primary", None, primary=True)

    record = await monitor.probe("primary")

    assert record.state is HealthState.UNKNOWN


@pytest.mark.asyncio
async def test_probe_all_checks_every_backend():
    models = {name: MockModel(name=name, delay=0.01) for name in ("a", "b", "c")}
    monitor = HealthMonitor()
    for name, model in models.items():
        monitor.register(name, model)

    records = await monitor.probe_all()

    assert set(records) == {"a", "b", "c"}
    assert all(record.healthy for record in records.values())
    assert all(len(model.calls) == 1 for model in models.values())


def test_ranking_by_latency_keeps_registration_order_on_ties():
    monitor = HealthMonitor()
    monitor.register("primary", MockModel(), primary=True)
    for name in ("slow", "fast", "also_fast", "down"):
        monitor.register(name, MockModel(name=name))

    monitor.record_success("primary", 1.0)
    monitor.record_success("slow", 50.0)
    monitor.record_success("fast", 10.0)
    monitor.record_success("also_fast", 10.0)
    monitor.record_failure("down", RuntimeError("boom"))

    assert monitor.rank_healthy_alternates() == ["fast", "also_fast", "slow"]


def test_ranking_empty_without_healthy_alternates():
    monitor = HealthMonitor()
    monitor.register("unknown", MockModel())
    assert monitor.rank_healthy_alternates() == []


def test_records_are_replaced_not_mutated():
    monitor = HealthMonitor()
    monitor.register("backup", MockModel())
    before = monitor.get_record("backup")

    monitor.record_failure("backup", RuntimeError("down"))

    assert before.state is HealthState.UNKNOWN
    assert monitor.get_record("backup") is not before


def test_outcomes_for_unregistered_backends_are_ignored():
    monitor = HealthMonitor()
    assert monitor.record_success("ghost", 1.0) is None
    assert monitor.record_failure("ghost", RuntimeError("x")) is None
    assert monitor.get_record("ghost") is None


def test_remove_deletes_record():
    monitor = HealthMonitor()
    monitor.register("backup", MockModel())

    assert monitor.remove("backup") is True
    assert monitor.get_record("backup") is None
    assert monitor.get_backend("backup") is None
    assert monitor.remove("backup") is False


def test_health_status_splits_primary_and_fallbacks():
    monitor = HealthMonitor()
    monitor.register("primary", None, primary=True)
    monitor.register("backup", MockModel())
    monitor.record_success("primary", 5.0)

    status = monitor.get_health_status()

    assert status["primary"].healthy is True
    assert list(status["fallbacks"]) == ["backup"]
    assert status["fallbacks"]["backup"].to_dict()["state"] == "unknown"


@pytest.mark.asyncio
async def test_periodic_probing():
    model = MockModel()
    monitor = HealthMonitor(FallbackConfig(health_check_interval=0.01))
    monitor.register("backup", model)

    await monitor.start()
    assert monitor.is_monitoring
    await asyncio.sleep(0.1)
    await monitor.stop()

    assert not monitor.is_monitoring
    assert len(model.calls) >= 2
    calls = len(model.calls)
    await asyncio.sleep(0.05)
    assert len(model.calls) == calls
