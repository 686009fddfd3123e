"""
Tests for the agent decision loop
"""

import asyncio

import pytest

from conductor.domain.context.memory import MemoryTier
from conductor.domain.models import AttemptOutcome, CancellationToken, ErrorKind
from conductor.domain.orchestration.core.agent import Agent
from conductor.domain.orchestration.core.decision import Complete, Infeasible, InvokeTool
from conductor.infrastructure.config import AgentLoopConfig
from conductor.infrastructure.observability.logging import metrics

from conftest import ScriptedDecider, make_tool


def adder():
    return make_tool("add", lambda args: args["a"] + args["b"], ["a", "b"])


class TestAgentLoop:

    @pytest.mark.asyncio
    async def test_invokes_tool_then_completes(self, fast_config):
        decider = ScriptedDecider([
            InvokeTool(tool="add", args={"a": 2, "b": 3}),
            lambda request: Complete(result=request.prior_attempts[-1].result * 10),
        ])
        agent = Agent("calc", decider, tools=[adder()], config=fast_config)

        envelope = await agent.run("add two numbers")

        assert envelope.success is True
        assert envelope.result == 50
        assert envelope.metadata["iterations"] == 2
        assert envelope.metadata["tool_calls"] == 1
        assert envelope.metadata["status"] == "done"

    @pytest.mark.asyncio
    async def test_planning_receives_catalog_and_working_memory(self, fast_config):
        decider = ScriptedDecider([InvokeTool(tool="add", args={"a": 1, "b": 1}), Complete(result="ok")])
        agent = Agent("calc", decider, tools=[adder()], config=fast_config)

        await agent.run("sum")

        first, second = decider.requests
        assert first.task == "sum"
        assert first.tool_catalog == [{"name": "add", "description": "add tool", "inputs": ["a", "b"]}]
        assert first.memory_context["working"] == []
        assert second.memory_context["working"] == [{"tool": "add", "args": {"a": 1, "b": 1}, "result": 2}]

    @pytest.mark.asyncio
    async def test_always_invalid_tool_terminates(self):
        decider = ScriptedDecider([InvokeTool(tool="does_not_exist")])
        agent = Agent("lost", decider, tools=[adder()], config=AgentLoopConfig(max_iterations=50))

        envelope = await agent.run("anything")

        assert envelope.success is False
        assert envelope.error.kind == ErrorKind.TASK_INFEASIBLE
        assert decider.calls == 2
        assert "not available" in decider.requests[1].notes[0]

    @pytest.mark.asyncio
    async def test_single_invalid_proposal_is_corrected(self, fast_config):
        decider = ScriptedDecider([
            InvokeTool(tool="ad"),
            InvokeTool(tool="add", args={"a": 1, "b": 2}),
            InvokeTool(tool="ad"),
            Complete(result="done"),
        ])
        agent = Agent("calc", decider, tools=[adder()], config=fast_config)

        envelope = await agent.run("sum")

        assert envelope.success is True
        assert decider.calls == 4

    @pytest.mark.asyncio
    async def test_always_failing_tool_exhausts_budget(self):
        calls = []

        def broken(args):
            calls.append(args)
            raise RuntimeError("unavailable")

        decider = ScriptedDecider([InvokeTool(tool="broken")])
        config = AgentLoopConfig(max_iterations=3, max_tool_attempts=2, tool_timeout=None)
        agent = Agent("stubborn", decider, tools=[make_tool("broken", broken)], config=config)

        envelope = await agent.run("try forever")

        assert envelope.error.kind == ErrorKind.ITERATION_BUDGET_EXHAUSTED
        assert len(calls) == 6
        attempts = envelope.error.details["attempts"]
        assert [attempt["outcome"] for attempt in attempts] == [AttemptOutcome.FAILED] * 3
        assert all(attempt["tool_attempts"] == 2 for attempt in attempts)

    @pytest.mark.asyncio
    async def test_failure_is_fed_back_into_planning(self, fast_config):
        outcomes = iter([RuntimeError("flaky"), RuntimeError("flaky"), "recovered"])

        def flaky(args):
            outcome = next(outcomes)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        decider = ScriptedDecider([
            InvokeTool(tool="flaky"),
            InvokeTool(tool="flaky"),
            lambda request: Complete(result=request.prior_attempts[-1].result),
        ])
        agent = Agent("retrying", decider, tools=[make_tool("flaky", flaky)], config=fast_config)

        envelope = await agent.run("eventually works")

        assert envelope.success is True
        assert envelope.result == "recovered"
        failed = decider.requests[1].prior_attempts[0]
        assert failed.outcome == AttemptOutcome.FAILED
        assert "flaky" in failed.error

    @pytest.mark.asyncio
    async def test_tool_timeout_is_retried_then_fed_back(self):
        calls = []

        async def stalled(args):
            calls.append(args)
            await asyncio.sleep(1)

        decider = ScriptedDecider([
            InvokeTool(tool="stalled"),
            lambda request: Infeasible(reason=request.prior_attempts[-1].error),
        ])
        config = AgentLoopConfig(max_iterations=3, max_tool_attempts=2, tool_timeout=0.02)
        agent = Agent("patient", decider, tools=[make_tool("stalled", stalled)], config=config)

        envelope = await agent.run("wait for it")

        assert len(calls) == 2
        attempt = decider.requests[1].prior_attempts[0]
        assert attempt.outcome == AttemptOutcome.FAILED
        assert attempt.tool_attempts == 2
        assert envelope.error.kind == ErrorKind.TASK_INFEASIBLE
        assert "timed out" in envelope.error.message

    @pytest.mark.asyncio
    async def test_validation_error_is_not_retried(self, fast_config):
        decider = ScriptedDecider([
            InvokeTool(tool="add", args={"a": 1}),
            Complete(result=None),
        ])
        agent = Agent("calc", decider, tools=[adder()], config=fast_config)

        await agent.run("sum")

        attempt = decider.requests[1].prior_attempts[0]
        assert attempt.outcome == AttemptOutcome.FAILED
        assert attempt.tool_attempts == 1

    @pytest.mark.asyncio
    async def test_infeasible_decision(self, fast_config):
        decider = ScriptedDecider([Infeasible(reason="no weather tool")])
        agent = Agent("weather", decider, config=fast_config)

        envelope = await agent.run("forecast")

        assert envelope.error.kind == ErrorKind.TASK_INFEASIBLE
        assert envelope.error.message == "no weather tool"

    @pytest.mark.asyncio
    async def test_short_form_decisions_are_accepted(self, fast_config):
        decider = ScriptedDecider([{"invoke": "add", "args": {"a": 4, "b": 4}}, {"complete": 8}])
        agent = Agent("calc", decider, tools=[adder()], config=fast_config)

        envelope = await agent.run("sum")

        assert envelope.result == 8

    @pytest.mark.asyncio
    async def test_decider_errors_consume_iterations(self):
        decider = ScriptedDecider([RuntimeError("provider down")])
        agent = Agent("flaky", decider, config=AgentLoopConfig(max_iterations=3))

        envelope = await agent.run("anything")

        assert envelope.error.kind == ErrorKind.ITERATION_BUDGET_EXHAUSTED
        assert decider.calls == 3
        attempts = envelope.error.details["attempts"]
        assert [attempt["outcome"] for attempt in attempts] == [AttemptOutcome.PLANNING_ERROR] * 3

    @pytest.mark.asyncio
    async def test_malformed_decision_is_a_planning_error(self):
        decider = ScriptedDecider([{"unexpected": True}, {"complete": "fine"}])
        agent = Agent("calc", decider, config=AgentLoopConfig(max_iterations=3))

        envelope = await agent.run("anything")

        assert envelope.success is True
        assert decider.requests[1].prior_attempts[0].outcome == AttemptOutcome.PLANNING_ERROR

    @pytest.mark.asyncio
    async def test_non_decision_replies_are_planning_errors(self):
        decider = ScriptedDecider(["complete", lambda request: None, Complete(result="fine")])
        agent = Agent("calc", decider, tools=[adder()], config=AgentLoopConfig(max_iterations=5))

        envelope = await agent.run("anything")

        assert envelope.success is True
        assert decider.calls == 3
        attempts = decider.requests[2].prior_attempts
        assert [attempt.outcome for attempt in attempts] == [AttemptOutcome.PLANNING_ERROR] * 2
        assert "str" in attempts[0].error
        assert "NoneType" in attempts[1].error

    @pytest.mark.asyncio
    async def test_decision_timeout_is_a_planning_error(self):
        class SlowDecider:
            async def decide(self, request):
                await asyncio.sleep(1)

        agent = Agent("slow", SlowDecider(), config=AgentLoopConfig(max_iterations=1, decision_timeout=0.01))

        envelope = await agent.run("anything")

        assert envelope.error.kind == ErrorKind.ITERATION_BUDGET_EXHAUSTED
        assert "timed out" in envelope.error.details["attempts"][0]["error"]

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, fast_config):
        decider = ScriptedDecider([Complete(result="never")])
        token = CancellationToken()
        token.cancel("shutting down")

        envelope = await Agent("calc", decider, config=fast_config).run("sum", cancel_token=token)

        assert envelope.error.kind == ErrorKind.CANCELLED
        assert envelope.error.message == "shutting down"
        assert decider.calls == 0

    @pytest.mark.asyncio
    async def test_cancelled_between_steps(self, fast_config):
        token = CancellationToken()

        def cancelling(args):
            token.cancel("stop requested")
            return "partial"

        decider = ScriptedDecider([InvokeTool(tool="work"), Complete(result="never")])
        agent = Agent("worker", decider, tools=[make_tool("work", cancelling)], config=fast_config)

        envelope = await agent.run("work", cancel_token=token)

        assert envelope.error.kind == ErrorKind.CANCELLED
        assert decider.calls == 1
        assert envelope.error.details["attempts"][0]["result"] == "partial"

    @pytest.mark.asyncio
    async def test_missing_task_fails_validation(self, fast_config):
        envelope = await Agent("idle", ScriptedDecider([Complete()]), config=fast_config).run()

        assert envelope.error.kind == ErrorKind.VALIDATION_ERROR

    @pytest.mark.asyncio
    async def test_unsupported_input_type_fails_validation(self, fast_config):
        decider = ScriptedDecider([Complete()])

        envelope = await Agent("calc", decider, task="sum", config=fast_config).run([1, 2, 3])

        assert envelope.success is False
        assert envelope.error.kind == ErrorKind.VALIDATION_ERROR
        assert envelope.error.details["input_type"] == "list"
        assert decider.calls == 0

    @pytest.mark.asyncio
    async def test_record_inputs_are_folded_into_task(self, fast_config):
        decider = ScriptedDecider([Complete(result="ok")])
        agent = Agent("greeter", decider, task="Greet the user", config=fast_config)

        await agent.run({"name": "Ada"})

        assert decider.requests[0].task == 'Greet the user\n\nInputs: {"name": "Ada"}'

    @pytest.mark.asyncio
    async def test_latency_recorded_per_agent(self, fast_config):
        await Agent("calc", ScriptedDecider([Complete()]), config=fast_config).run("sum")

        summary = metrics.get_metrics_summary()
        assert summary["latency.agent.calc"]["count"] == 1
        assert summary["latency.decision.calc"]["count"] == 1


class TestAgentMemory:

    @pytest.mark.asyncio
    async def test_steps_and_result_are_written_to_memory(self, memory, fast_config):
        decider = ScriptedDecider([InvokeTool(tool="add", args={"a": 1, "b": 2}), Complete(result=3)])
        agent = Agent("calc", decider, tools=[adder()], config=fast_config, memory=memory)

        envelope = await agent.run("sum")
        run_id = envelope.metadata["run_id"]

        step = await memory.get(f"calc:{run_id}:step:1")
        assert step == {"tool": "add", "args": {"a": 1, "b": 2}, "result": 3}
        stored = await memory.get(f"calc:result:{run_id}", tier=MemoryTier.LONG_TERM)
        assert stored == {"task": "sum", "result": 3}

    @pytest.mark.asyncio
    async def test_previous_results_reach_planning_context(self, memory, fast_config):
        first = Agent("calc", ScriptedDecider([Complete(result=3)]), config=fast_config, memory=memory)
        await first.run("sum of one and two")

        decider = ScriptedDecider([Complete(result="again")])
        second = Agent("calc", decider, config=fast_config, memory=memory)
        await second.run("sum of one and two")

        relevant = decider.requests[0].memory_context["relevant"]
        assert relevant[0]["value"] == {"task": "sum of one and two", "result": 3}

    @pytest.mark.asyncio
    async def test_steps_recorded_in_open_episode(self, memory, fast_config):
        decider = ScriptedDecider([InvokeTool(tool="add", args={"a": 1, "b": 2}), Complete(result=3)])
        agent = Agent("calc", decider, tools=[adder()], config=fast_config, memory=memory)

        async with memory.episode("session-1"):
            await agent.run("sum")

        history = await memory.get_episode_history()
        assert [entry.value["result"] for entry in history] == [3]
