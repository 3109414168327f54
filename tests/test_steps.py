import asyncio

import pytest

from engine.errors import ActionNotVerified, ElementNotFound
from engine.steps import StepOverlapError, StepRunner, StepStatus, WorkflowStep
from engine.telemetry import TelemetryLog


def test_steps_run_in_order_and_record_outcomes():
    telemetry = TelemetryLog()
    runner = StepRunner(telemetry)
    calls = []

    async def make(name):
        calls.append(name)
        return name.upper()

    steps = [WorkflowStep(name, lambda name=name: make(name)) for name in ("login", "select", "book")]

    results = asyncio.run(runner.run_all(steps))

    assert results == ["LOGIN", "SELECT", "BOOK"]
    assert calls == ["login", "select", "book"]
    assert [o.status for o in runner.outcomes] == [StepStatus.SUCCESS] * 3
    assert [e["name"] for e in telemetry.events("step")] == ["login", "select", "book"]


def test_tolerated_absence_is_recorded_as_skipped():
    runner = StepRunner(TelemetryLog())

    async def missing():
        raise ElementNotFound("no day view dropdown")

    result = asyncio.run(runner.run(WorkflowStep("Switch to day view", missing, tolerate_absence=True)))

    assert result is None
    outcome = runner.outcomes[0]
    assert outcome.status is StepStatus.SKIPPED
    assert outcome.reason == "no day view dropdown"


def test_failures_propagate_even_for_optional_steps():
    runner = StepRunner(TelemetryLog())

    async def unverified():
        raise ActionNotVerified("dialog never opened")

    async def absent():
        raise ElementNotFound("no such button")

    with pytest.raises(ActionNotVerified):
        asyncio.run(runner.run(WorkflowStep("Open dialog", unverified, tolerate_absence=True)))
    with pytest.raises(ElementNotFound):
        asyncio.run(runner.run(WorkflowStep("Click", absent)))

    assert [o.status for o in runner.outcomes] == [StepStatus.FAILURE, StepStatus.FAILURE]
    assert runner.outcomes[0].as_dict()["reason"] == "dialog never opened"


def test_overlapping_steps_are_rejected():
    runner = StepRunner(TelemetryLog())

    async def scenario():
        release = asyncio.Event()

        async def slow():
            await release.wait()

        first = asyncio.create_task(runner.run(WorkflowStep("slow", slow)))
        await asyncio.sleep(0)
        try:
            with pytest.raises(StepOverlapError):
                await runner.run(WorkflowStep("eager", slow))
        finally:
            release.set()
            await first

    asyncio.run(scenario())
    assert [o.name for o in runner.outcomes] == ["slow"]
