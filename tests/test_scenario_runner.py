"""
Tests for the scenario runner.
"""

import pytest

from pathfinder.core.exceptions import TransientExecutionError
from pathfinder.execution.artifacts import ScreenshotStore
from pathfinder.execution.cancellation import CancellationToken
from pathfinder.execution.models import ScenarioStatus
from pathfinder.execution.scenario_runner import ScenarioRunner


def _messages(result):
    return [entry.message for entry in result.console_logs]


class TestScenarioRunner:
    """Test cases for ScenarioRunner."""

    @pytest.fixture
    def store(self, tmp_path):
        return ScreenshotStore(tmp_path / "artifacts", "run-1")

    @pytest.mark.asyncio
    async def test_single_navigate_passes(self, fake_driver_cls, step, scenario, desktop, store):
        """Test a one-step navigate flow passes with initial and final screenshots."""
        driver = fake_driver_cls()
        runner = ScenarioRunner(driver, "https://example.com", screenshot_store=store)

        result = await runner.run(
            scenario("home", [step(1, "navigate", url="https://example.com")]), desktop
        )

        assert result.status == ScenarioStatus.PASS
        assert result.errors == []
        assert result.viewport == "desktop"
        assert result.viewport_size == "1920x1080"
        assert len(result.step_results) == 1
        assert result.step_results[0].message == "Step completed successfully"
        assert len(result.screenshots) == 2
        assert "initial-load" in result.screenshots[0]
        assert "final-state" in result.screenshots[1]

    @pytest.mark.asyncio
    async def test_missing_selector_fails_scenario(self, fake_driver_cls, fake_page_cls, step, scenario, desktop):
        """Test a missing click target fails the scenario with one error."""
        driver = fake_driver_cls(lambda viewport: fake_page_cls(missing={"#missing"}))
        runner = ScenarioRunner(driver, "https://example.com")

        result = await runner.run(
            scenario("broken", [step(1, "navigate"), step(2, "click", selector="#missing")]),
            desktop,
        )

        assert result.status == ScenarioStatus.FAIL
        assert len(result.errors) == 1
        assert result.errors[0].message.startswith("Step 2 (click) failed: Element not found: #missing")
        messages = _messages(result)
        assert "[Playwright] Step 1 succeeded" in messages
        assert any(m.startswith("[Playwright] Step 2 failed:") for m in messages)
        assert [r.status for r in result.step_results] == [ScenarioStatus.PASS, ScenarioStatus.FAIL]

    @pytest.mark.asyncio
    async def test_continues_after_failed_step(self, fake_driver_cls, fake_page_cls, step, scenario, desktop):
        """Test later steps still run after a failure."""
        driver = fake_driver_cls(lambda viewport: fake_page_cls(missing={"#gone"}))
        runner = ScenarioRunner(driver, "https://example.com")

        result = await runner.run(
            scenario(
                "s",
                [
                    step(1, "click", selector="#gone"),
                    step(2, "fill", selector="#name", value="Ada"),
                ],
            ),
            desktop,
        )

        assert result.status == ScenarioStatus.FAIL
        assert [r.status for r in result.step_results] == [ScenarioStatus.FAIL, ScenarioStatus.PASS]
        assert driver.pages[0].actions_named("fill")

    @pytest.mark.asyncio
    async def test_step_logs_follow_order(self, fake_driver_cls, step, scenario, desktop):
        """Test steps execute by order, not by list position."""
        driver = fake_driver_cls()
        runner = ScenarioRunner(driver, "https://example.com")
        steps = [
            step(3, "hover", selector="#third"),
            step(1, "click", selector="#first"),
            step(2, "fill", selector="#second", value="x"),
        ]

        result = await runner.run(scenario("ordered", steps), desktop)

        executing = [m for m in _messages(result) if m.startswith("[Playwright] Executing step")]
        assert executing == [
            "[Playwright] Executing step 1/3: click",
            "[Playwright] Executing step 2/3: fill",
            "[Playwright] Executing step 3/3: hover",
        ]
        messages = _messages(result)
        assert messages.index("[Playwright] Step 1 succeeded") < messages.index(
            "[Playwright] Executing step 2/3: fill"
        )

    @pytest.mark.asyncio
    async def test_navigation_failure_runs_no_steps(self, fake_driver_cls, fake_page_cls, step, scenario, desktop):
        """Test a failed initial load fails the unit without running steps."""
        driver = fake_driver_cls(lambda viewport: fake_page_cls(fail_navigation=True))
        runner = ScenarioRunner(driver, "https://down.example")

        result = await runner.run(scenario("s", [step(1, "click", selector="#a")]), desktop)

        assert result.status == ScenarioStatus.FAIL
        assert result.step_results == []
        assert result.errors[0].message.startswith("Failed to navigate to https://down.example")
        assert driver.pages[0].actions_named("click") == []

    @pytest.mark.asyncio
    async def test_listeners_record_console_network_and_page_errors(
        self,
        fake_driver_cls,
        fake_page_cls,
        console_message_cls,
        fake_response_cls,
        scenario,
        desktop,
    ):
        """Test page listeners feed the result's logs and errors."""

        class NoisyPage(fake_page_cls):
            async def goto(self, url, wait_until=None, timeout=None):
                await super().goto(url, wait_until, timeout)
                self.fire("console", console_message_cls("warning", "Deprecated API"))
                self.fire("response", fake_response_cls("https://example.com/api", 500, "POST"))
                self.fire("pageerror", Exception("ReferenceError: foo is not defined"))

        driver = fake_driver_cls(lambda viewport: NoisyPage())
        runner = ScenarioRunner(driver, "https://example.com")

        result = await runner.run(scenario("noisy"), desktop)

        assert result.status == ScenarioStatus.FAIL
        assert any(log.type == "warn" and log.message == "Deprecated API" for log in result.console_logs)
        assert result.network_logs[0].status == 500
        assert result.network_logs[0].method == "POST"
        assert result.errors[0].message == "ReferenceError: foo is not defined"

    @pytest.mark.asyncio
    async def test_screenshot_on_every_step(self, fake_driver_cls, step, scenario, desktop, store):
        """Test per-step screenshots are captured when enabled."""
        driver = fake_driver_cls()
        runner = ScenarioRunner(
            driver,
            "https://example.com",
            screenshot_store=store,
            screenshot_on_every_step=True,
        )

        result = await runner.run(
            scenario("s", [step(1, "click", selector="#a"), step(2, "hover", selector="#b")]),
            desktop,
        )

        assert len(result.screenshots) == 4
        assert "step-1-click" in result.screenshots[1]
        assert "step-2-hover" in result.screenshots[2]

    @pytest.mark.asyncio
    async def test_screenshot_failure_does_not_fail_unit(self, fake_driver_cls, fake_page_cls, step, scenario, desktop, store):
        """Test a failing capture is logged and skipped."""
        driver = fake_driver_cls(lambda viewport: fake_page_cls(fail_screenshot=True))
        runner = ScenarioRunner(driver, "https://example.com", screenshot_store=store)

        result = await runner.run(scenario("s", [step(1, "click", selector="#a")]), desktop)

        assert result.status == ScenarioStatus.PASS
        assert result.screenshots == []

    @pytest.mark.asyncio
    async def test_context_failure_is_transient(self, fake_driver_cls, scenario, desktop):
        """Test a context that cannot be opened raises for the retry wrapper."""
        driver = fake_driver_cls(context_failures=1)
        runner = ScenarioRunner(driver, "https://example.com")

        with pytest.raises(TransientExecutionError) as exc_info:
            await runner.run(scenario("s"), desktop, attempt=2)

        assert exc_info.value.scenario_id == "s"
        assert exc_info.value.attempt == 2
        assert exc_info.value.viewport == "desktop"

    @pytest.mark.asyncio
    async def test_page_and_context_released(self, fake_driver_cls, fake_page_cls, step, scenario, desktop):
        """Test handles are closed after a failing unit."""
        driver = fake_driver_cls(lambda viewport: fake_page_cls(missing={"#x"}))
        runner = ScenarioRunner(driver, "https://example.com")

        await runner.run(scenario("s", [step(1, "click", selector="#x")]), desktop)

        assert driver.pages[0].closed
        assert driver.contexts[0].closed
        assert driver.open_contexts == 0

    @pytest.mark.asyncio
    async def test_cancelled_run_skips_remaining_steps(self, fake_driver_cls, step, scenario, desktop):
        """Test cancellation stops the unit at the next step boundary."""
        token = CancellationToken()
        driver = fake_driver_cls()
        runner = ScenarioRunner(driver, "https://example.com", cancel_token=token)

        token.cancel()
        result = await runner.run(
            scenario("s", [step(1, "click", selector="#a"), step(2, "click", selector="#b")]),
            desktop,
        )

        assert result.status == ScenarioStatus.SKIP
        assert [r.status for r in result.step_results] == [ScenarioStatus.SKIP, ScenarioStatus.SKIP]
        assert driver.pages[0].actions_named("click") == []

    @pytest.mark.asyncio
    async def test_failure_before_cancel_keeps_fail(self, fake_driver_cls, fake_page_cls, step, scenario, desktop):
        """Test a unit that already failed a step stays failed when cancelled afterwards."""
        token = CancellationToken()

        class CancellingPage(fake_page_cls):
            def record(self, action, target=None, **details):
                super().record(action, target, **details)
                if action == "wait_for" and target == "#missing":
                    token.cancel()

        driver = fake_driver_cls(lambda viewport: CancellingPage(missing={"#missing"}))
        runner = ScenarioRunner(driver, "https://example.com", cancel_token=token)

        result = await runner.run(
            scenario("s", [step(1, "click", selector="#missing"), step(2, "click", selector="#b")]),
            desktop,
        )

        assert result.status == ScenarioStatus.FAIL
        assert [r.status for r in result.step_results] == [ScenarioStatus.FAIL, ScenarioStatus.SKIP]
        assert driver.pages[0].actions_named("click") == []

    @pytest.mark.asyncio
    async def test_deadline_exceeded(self, fake_driver_cls, fake_page_cls, step, scenario, desktop):
        """Test a unit stops and fails once its deadline has passed."""
        driver = fake_driver_cls(lambda viewport: fake_page_cls(delay=0.05))
        runner = ScenarioRunner(driver, "https://example.com", scenario_deadline_ms=10)

        result = await runner.run(
            scenario("slow", [step(1, "click", selector="#a"), step(2, "click", selector="#b")]),
            desktop,
        )

        assert result.status == ScenarioStatus.FAIL
        assert "deadline of 10ms exceeded before step 2" in result.errors[-1].message
        assert result.step_results[-1].status == ScenarioStatus.SKIP

    @pytest.mark.asyncio
    async def test_log_sink_receives_runner_lines(self, fake_driver_cls, step, scenario, desktop):
        """Test runner log lines are forwarded as they happen."""
        forwarded = []
        runner = ScenarioRunner(fake_driver_cls(), "https://example.com")

        await runner.run(
            scenario("s", [step(1, "click", selector="#a")]),
            desktop,
            log_sink=forwarded.append,
        )

        assert forwarded[0].message == "[Playwright] Navigating to https://example.com"
        assert forwarded[-1].message == "[Playwright] Step 1 succeeded"
