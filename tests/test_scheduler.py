"""
Tests for the viewport concurrency scheduler.
"""

import asyncio

import pytest

from pathfinder.execution.cancellation import CancellationToken
from pathfinder.execution.models import ScenarioExecutionResult, ScenarioStatus
from pathfinder.execution.scheduler import ViewportScheduler, build_units
from pathfinder.streaming.emitter import ProgressEmitter


def _result(unit, status=ScenarioStatus.PASS):
    return ScenarioExecutionResult(
        scenario_id=unit.scenario.id,
        scenario_name=unit.scenario.name,
        viewport=unit.viewport.id,
        viewport_size=unit.viewport.size,
        status=status,
        started_at="2024-01-01T00:00:00+00:00",
        completed_at="2024-01-01T00:00:01+00:00",
    )


async def _drain(emitter):
    """Close the channel and return everything emitted before the close."""
    emitter.error("done")
    return [event async for event in emitter.events()][:-1]


class TestBuildUnits:
    """Test cases for build_units."""

    def test_scenario_major_cross_product(self, scenario, desktop, mobile):
        """Test units pair every scenario with every enabled viewport."""
        units = build_units([scenario("a"), scenario("b")], [mobile, desktop])

        assert [u.key for u in units] == [
            ("a", "mobile_large"),
            ("a", "desktop"),
            ("b", "mobile_large"),
            ("b", "desktop"),
        ]
        assert [u.index for u in units] == [0, 1, 2, 3]

    def test_disabled_viewports_excluded(self, scenario, desktop, mobile):
        """Test disabled viewports produce no units."""
        disabled = mobile.model_copy(update={"enabled": False})

        units = build_units([scenario("a")], [disabled, desktop])

        assert [u.viewport.id for u in units] == ["desktop"]


class TestViewportScheduler:
    """Test cases for ViewportScheduler."""

    @pytest.fixture
    def units(self, scenario, desktop, mobile):
        return build_units([scenario("s1"), scenario("s2"), scenario("s3")], [desktop, mobile])

    @pytest.mark.asyncio
    async def test_six_units_with_limit_three(self, units):
        """Test 3 scenarios x 2 viewports run with at most 3 in flight."""
        emitter = ProgressEmitter("run-1")

        async def run_unit(unit):
            await asyncio.sleep(0.01 * (unit.index % 3 + 1))
            return _result(unit)

        scheduler = ViewportScheduler(run_unit, emitter=emitter, run_id="run-1")
        results = [r async for r in scheduler.run_all(units, concurrency_limit=3)]

        assert len(results) == 6
        assert {r.unit_key for r in results} == {u.key for u in units}
        assert scheduler.max_in_flight == 3
        assert scheduler.passed == 6

        events = await _drain(emitter)
        progress = [e for e in events if e.kind == "progress"]
        assert [e.current for e in progress] == [1, 2, 3, 4, 5, 6]
        assert all(e.total == 6 for e in progress)
        assert progress[-1].percentage == 100

        outstanding = 0
        for event in events:
            if event.kind == "scenario-start":
                outstanding += 1
            elif event.kind == "scenario-complete":
                outstanding -= 1
            assert outstanding <= 3

    @pytest.mark.asyncio
    async def test_limit_one_runs_sequentially(self, units):
        """Test concurrency 1 keeps submission order."""

        async def run_unit(unit):
            await asyncio.sleep(0)
            return _result(unit)

        scheduler = ViewportScheduler(run_unit)
        results = [r async for r in scheduler.run_all(units, concurrency_limit=1)]

        assert [r.unit_key for r in results] == [u.key for u in units]
        assert scheduler.max_in_flight == 1

    @pytest.mark.asyncio
    async def test_unit_exception_is_isolated(self, units):
        """Test one raising unit fails alone; the others keep their outcome."""

        async def run_unit(unit):
            if unit.key == ("s2", "desktop"):
                raise RuntimeError("browser crashed")
            return _result(unit)

        scheduler = ViewportScheduler(run_unit)
        results = {r.unit_key: r async for r in scheduler.run_all(units, concurrency_limit=3)}

        assert results[("s2", "desktop")].status == ScenarioStatus.FAIL
        assert results[("s2", "desktop")].errors[0].message == "browser crashed"
        others = [r for key, r in results.items() if key != ("s2", "desktop")]
        assert all(r.status == ScenarioStatus.PASS for r in others)
        assert scheduler.failed == 1
        assert scheduler.passed == 5

    @pytest.mark.asyncio
    async def test_cancel_skips_queued_units(self, units):
        """Test units still queued at cancellation are skipped without running."""
        token = CancellationToken()
        started = []

        async def run_unit(unit):
            started.append(unit.key)
            token.cancel()
            return _result(unit)

        scheduler = ViewportScheduler(run_unit, cancel_token=token)
        results = [r async for r in scheduler.run_all(units, concurrency_limit=1)]

        assert len(results) == 6
        assert started == [units[0].key]
        assert scheduler.skipped == 5
        assert scheduler.passed + scheduler.failed + scheduler.skipped == scheduler.total

    @pytest.mark.asyncio
    async def test_no_units(self):
        """Test an empty unit list yields nothing."""

        async def run_unit(unit):
            raise AssertionError("not called")

        scheduler = ViewportScheduler(run_unit)
        results = [r async for r in scheduler.run_all([], concurrency_limit=3)]

        assert results == []
        assert scheduler.total == 0

    @pytest.mark.asyncio
    async def test_invalid_limit(self, units):
        """Test a concurrency limit below one is rejected."""

        async def run_unit(unit):
            return _result(unit)

        scheduler = ViewportScheduler(run_unit)
        with pytest.raises(ValueError):
            async for _ in scheduler.run_all(units, concurrency_limit=0):
                pass

    @pytest.mark.asyncio
    async def test_schedulers_do_not_share_state(self, units):
        """Test two concurrent runs keep separate tallies."""

        async def passing(unit):
            await asyncio.sleep(0)
            return _result(unit)

        async def failing(unit):
            await asyncio.sleep(0)
            return _result(unit, ScenarioStatus.FAIL)

        first = ViewportScheduler(passing, run_id="a")
        second = ViewportScheduler(failing, run_id="b")

        async def consume(scheduler):
            return [r async for r in scheduler.run_all(units, concurrency_limit=2)]

        await asyncio.gather(consume(first), consume(second))

        assert (first.passed, first.failed) == (6, 0)
        assert (second.passed, second.failed) == (0, 6)
