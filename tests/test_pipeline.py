"""
Tests for pipeline construction and execution
"""

import pytest

from conductor.domain.models import CancellationToken, DuplicateNameError, ErrorKind, PipelineConstructionError
from conductor.domain.orchestration.core.agent import Agent
from conductor.domain.orchestration.core.decision import Complete
from conductor.domain.orchestration.pipeline import ErrorPolicy, Pipeline, PipelineBuilder, PipelineStep
from conductor.infrastructure.observability.logging import metrics

from conftest import ScriptedDecider, make_tool


def recording_tool(name, result, inputs=(), calls=None):
    def handler(args):
        if calls is not None:
            calls.append((name, args))
        if isinstance(result, Exception):
            raise result
        return result

    return make_tool(name, handler, inputs)


class TestPipelineScenario:

    @pytest.mark.asyncio
    async def test_fetch_then_summarize(self):
        received = []

        def summarize(args):
            received.append(args)
            return {"summary": args["result"]["text"].upper()}

        pipeline = (
            PipelineBuilder("digest")
            .step("fetch", make_tool("fetch", lambda args: {"result": {"text": "abc"}}, ["query"]),
                  chain_position=1, expects={"query": "string"}, produces={"result": "object"})
            .step("summarize", make_tool("summarize", summarize, ["result"]),
                  chain_position=2, expects={"result": "object"}, produces={"summary": "string"})
            .build()
        )

        envelope = await pipeline.run({"query": "x"})

        assert received == [{"result": {"text": "abc"}}]
        assert envelope.success is True
        assert envelope.result == {"summary": "ABC"}
        assert envelope.metadata["executed"] == ["fetch", "summarize"]
        assert envelope.metadata["skipped"] == []


class TestPipelineConstruction:

    def test_compatible_shapes_build(self):
        pipeline = (
            PipelineBuilder("numbers")
            .step("count", make_tool("count", lambda args: {"n": 1}), produces={"n": "integer", "extra": "string"})
            .step("scale", make_tool("scale", lambda args: {"n": 2.0}), expects={"n": "number"})
            .build()
        )

        assert pipeline.step_names() == ["count", "scale"]

    def test_incompatible_adjacent_shapes_fail(self):
        builder = (
            PipelineBuilder("broken")
            .step("fetch", make_tool("fetch", lambda args: None), produces={"result": "string"})
            .step("summarize", make_tool("summarize", lambda args: None), expects={"result": "object"})
        )

        with pytest.raises(PipelineConstructionError) as excinfo:
            builder.build()

        assert excinfo.value.details["from_step"] == "fetch"
        assert excinfo.value.details["to_step"] == "summarize"

    def test_missing_field_fails(self):
        builder = (
            PipelineBuilder("broken")
            .step("a", make_tool("a", lambda args: None), produces={"x": "string"})
            .step("b", make_tool("b", lambda args: None), expects={"y": "string"})
        )

        with pytest.raises(PipelineConstructionError):
            builder.build()

    def test_steps_run_in_position_order(self):
        pipeline = (
            PipelineBuilder("ordered")
            .step("second", make_tool("second", lambda args: None), chain_position=2)
            .step("first", make_tool("first", lambda args: None), chain_position=1)
            .build()
        )

        assert pipeline.step_names() == ["first", "second"]

    def test_positions_must_be_contiguous(self):
        builder = (
            PipelineBuilder("gappy")
            .step("a", make_tool("a", lambda args: None), chain_position=1)
            .step("b", make_tool("b", lambda args: None), chain_position=3)
        )

        with pytest.raises(PipelineConstructionError):
            builder.build()

    def test_positions_must_be_unique(self):
        builder = (
            PipelineBuilder("clash")
            .step("a", make_tool("a", lambda args: None), chain_position=1)
            .step("b", make_tool("b", lambda args: None), chain_position=1)
        )

        with pytest.raises(PipelineConstructionError):
            builder.build()

    def test_step_names_must_be_unique(self):
        builder = (
            PipelineBuilder("dupes")
            .step("a", make_tool("a", lambda args: None))
            .step("a", make_tool("b", lambda args: None))
        )

        with pytest.raises(DuplicateNameError):
            builder.build()

    def test_empty_pipeline_fails(self):
        with pytest.raises(PipelineConstructionError):
            Pipeline(name="empty", steps=())

    def test_unknown_shape_type_fails(self):
        builder = PipelineBuilder("typo").step("a", make_tool("a", lambda args: None), expects={"x": "strng"})

        with pytest.raises(PipelineConstructionError):
            builder.build()

    def test_step_needs_an_invokable(self):
        step = PipelineStep(name="a", tool=object(), chain_position=1)

        with pytest.raises(PipelineConstructionError):
            Pipeline(name="inert", steps=(step,))

    def test_skip_default_must_match_output_shape(self):
        builder = PipelineBuilder("skippy").step(
            "a", make_tool("a", lambda args: None),
            produces={"value": "integer"}, on_error=ErrorPolicy.SKIP, default={"value": "zero"}
        )

        with pytest.raises(PipelineConstructionError):
            builder.build()

    def test_declared_input_must_satisfy_first_step(self):
        builder = (
            PipelineBuilder("typed")
            .input_shape({"query": "integer"})
            .step("fetch", make_tool("fetch", lambda args: None), expects={"query": "string"})
        )

        with pytest.raises(PipelineConstructionError):
            builder.build()


class TestPipelineExecution:

    @pytest.mark.asyncio
    async def test_fail_fast_skips_remaining_steps(self):
        calls = []
        pipeline = (
            PipelineBuilder("chain")
            .step("one", recording_tool("one", {"v": 1}, calls=calls))
            .step("two", recording_tool("two", RuntimeError("broken"), calls=calls))
            .step("three", recording_tool("three", {"v": 3}, calls=calls))
            .build()
        )

        envelope = await pipeline.run({})

        assert envelope.success is False
        assert envelope.error.kind == ErrorKind.TOOL_EXECUTION_ERROR
        assert [name for name, _ in calls] == ["one", "two"]
        assert envelope.metadata["failed_step"] == "two"
        assert envelope.metadata["executed"] == ["one"]

    @pytest.mark.asyncio
    async def test_skip_continues_with_default(self):
        calls = []
        pipeline = (
            PipelineBuilder("lenient")
            .step("one", recording_tool("one", {"v": 1}, calls=calls), produces={"v": "integer"})
            .step("two", recording_tool("two", RuntimeError("broken"), calls=calls),
                  expects={"v": "integer"}, produces={"v": "integer"},
                  on_error=ErrorPolicy.SKIP, default={"v": 0})
            .step("three", recording_tool("three", "end", calls=calls), expects={"v": "integer"})
            .build()
        )

        envelope = await pipeline.run({})

        assert envelope.success is True
        assert envelope.result == "end"
        assert calls[-1] == ("three", {"v": 0})
        assert envelope.metadata["executed"] == ["one", "three"]
        assert envelope.metadata["skipped"] == ["two"]

    @pytest.mark.asyncio
    async def test_input_mismatch_names_step_and_shapes(self):
        pipeline = PipelineBuilder("typed").step(
            "fetch", make_tool("fetch", lambda args: None, ["query"]), expects={"query": "string"}
        ).build()

        envelope = await pipeline.run({"query": 5})

        assert envelope.error.kind == ErrorKind.SCHEMA_MISMATCH
        assert envelope.error.details["step"] == "fetch"
        assert envelope.error.details["expected"] == {"query": "string"}
        assert envelope.error.details["actual"] == {"query": "integer"}

    @pytest.mark.asyncio
    async def test_output_mismatch_stops_the_run(self):
        calls = []
        pipeline = (
            PipelineBuilder("liar")
            .step("fetch", recording_tool("fetch", {"result": "text"}, calls=calls), produces={"result": "object"})
            .step("use", recording_tool("use", None, calls=calls), expects={"result": "object"})
            .build()
        )

        envelope = await pipeline.run({})

        assert envelope.error.kind == ErrorKind.SCHEMA_MISMATCH
        assert envelope.error.details["side"] == "output"
        assert [name for name, _ in calls] == ["fetch"]

    @pytest.mark.asyncio
    async def test_retries_up_to_max_attempts(self):
        outcomes = iter([RuntimeError("flaky"), RuntimeError("flaky"), {"ok": True}])

        def flaky(args):
            outcome = next(outcomes)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        pipeline = PipelineBuilder("retrying").step("flaky", make_tool("flaky", flaky), max_attempts=3).build()

        envelope = await pipeline.run({})

        assert envelope.result == {"ok": True}

    @pytest.mark.asyncio
    async def test_cancellation_before_step(self):
        calls = []
        token = CancellationToken()
        token.cancel("user abort")
        pipeline = PipelineBuilder("p").step("one", recording_tool("one", 1, calls=calls)).build()

        envelope = await pipeline.run({}, cancel_token=token)

        assert envelope.error.kind == ErrorKind.CANCELLED
        assert envelope.error.details["step"] == "one"
        assert calls == []

    @pytest.mark.asyncio
    async def test_pipeline_can_be_a_step(self):
        inner = PipelineBuilder("inner").step(
            "double", make_tool("double", lambda n: {"n": n * 2}, ["n"], positional=True), produces={"n": "integer"}
        ).build()
        outer = (
            PipelineBuilder("outer")
            .step("inner", inner, produces={"n": "integer"})
            .step("again", inner, expects={"n": "integer"})
            .build()
        )

        envelope = await outer.run({"n": 3})

        assert envelope.result == {"n": 12}
        assert metrics.get_metrics_summary()["latency.pipeline.inner"]["count"] == 2

    @pytest.mark.asyncio
    async def test_agent_step_rejects_a_list_payload(self):
        decider = ScriptedDecider([Complete(result="summary")])
        summarizer = Agent("summarizer", decider, task="summarize")
        pipeline = (
            PipelineBuilder("listing")
            .step("list", make_tool("list", lambda args: ["a", "b"]))
            .step("summarize", summarizer)
            .build()
        )

        envelope = await pipeline.run({})

        assert envelope.success is False
        assert envelope.error.kind == ErrorKind.VALIDATION_ERROR
        assert envelope.metadata["failed_step"] == "summarize"
        assert envelope.metadata["executed"] == ["list"]
        assert decider.calls == 0
