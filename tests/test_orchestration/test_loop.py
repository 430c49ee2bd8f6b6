"""Tests for the orchestration loop."""

import json
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest

from conftest import ScriptedModelClient, final, make_tool, tool_request
from react_agent.errors import (
    InvalidTransitionError,
    MalformedReplyError,
    RegistryFrozenError,
    UpstreamRateLimitedError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
)
from react_agent.models import (
    ErrorKind,
    Exhausted,
    ExhaustionReason,
    FinalAnswer,
    Role,
    RunError,
)
from react_agent.orchestration import (
    CancellationToken,
    Orchestrator,
    RetryPolicy,
    RunState,
)
from react_agent.tools.registry import ParameterSpec


def _make_orchestrator(client, registry, sleeps=None, **kwargs) -> Orchestrator:
    """Orchestrator whose backoff sleeps are recorded instead of slept."""
    recorded = sleeps if sleeps is not None else []
    return Orchestrator(client, registry, sleep=recorded.append, **kwargs)


def _tool_payloads(result) -> list[dict]:
    return [json.loads(m.content) for m in result.conversation.tool_results()]


class TestScenarios:
    """End-to-end runs against a scripted model."""

    def test_weather_lookup_answers_after_two_model_calls(self, registry):
        """A tool request followed by a final reply takes two steps."""
        client = ScriptedModelClient(
            [
                tool_request(("call_1", "get_weather", {"location": "San Francisco"})),
                final("It is 18 degrees and foggy in San Francisco."),
            ]
        )
        orchestrator = _make_orchestrator(client, registry)

        result = orchestrator.run("What's the weather in San Francisco?")

        assert isinstance(result, FinalAnswer)
        assert result.steps == 2
        assert client.call_count == 2
        assert "foggy" in result.content

        roles = [m.role for m in result.conversation]
        assert roles == [Role.USER, Role.ASSISTANT, Role.TOOL, Role.ASSISTANT]
        tool_message = result.conversation.tool_results()[0]
        assert tool_message.tool_call_id == "call_1"
        assert json.loads(tool_message.content)["location"] == "San Francisco"

    def test_direct_answer_takes_one_step(self, registry):
        """A final first reply ends the run without tool results."""
        client = ScriptedModelClient([final("Fermat's last theorem was proved by Wiles.")])
        orchestrator = _make_orchestrator(client, registry)

        result = orchestrator.run("Tell me about Fermat's last theorem")

        assert isinstance(result, FinalAnswer)
        assert result.steps == 1
        assert client.call_count == 1
        assert result.conversation.tool_results() == []

    @pytest.mark.parametrize("instruction,expected_length", [("Be brief.", 8), (None, 7)])
    def test_step_budget_exhausts_after_max_steps(
        self, registry, instruction, expected_length
    ):
        """A model that never stops calling tools exhausts the step budget."""
        client = ScriptedModelClient(
            [tool_request((f"call_{i}", "echo", {"text": str(i)})) for i in range(1, 4)]
        )
        orchestrator = _make_orchestrator(client, registry, max_steps=3)

        result = orchestrator.run("Loop forever", system_instruction=instruction)

        assert isinstance(result, Exhausted)
        assert result.reason is ExhaustionReason.MAX_STEPS
        assert result.steps == 3
        assert client.call_count == 3
        assert len(result.conversation) == expected_length
        assert result.conversation.pending_tool_call_ids == []

    def test_repeated_tool_call_id_still_exhausts_step_budget(self, registry):
        """A model that keeps sending the same call id gets fresh ids, not a crash."""
        client = ScriptedModelClient([tool_request(("call_0", "echo", {"text": "x"}))])
        orchestrator = _make_orchestrator(client, registry, max_steps=3)

        result = orchestrator.run("Loop forever")

        assert isinstance(result, Exhausted)
        assert result.reason is ExhaustionReason.MAX_STEPS
        assert result.steps == 3
        ids = [m.tool_call_id for m in result.conversation.tool_results()]
        assert len(ids) == 3
        assert ids[0] == "call_0"
        assert len(set(ids)) == 3
        assert result.conversation.pending_tool_call_ids == []

    def test_duplicate_ids_within_one_reply_are_rekeyed(self, registry):
        client = ScriptedModelClient(
            [
                tool_request(
                    ("dup", "echo", {"text": "a"}),
                    ("dup", "echo", {"text": "b"}),
                ),
                final("done"),
            ]
        )
        orchestrator = _make_orchestrator(client, registry)

        result = orchestrator.run("Echo twice")

        assert isinstance(result, FinalAnswer)
        results = result.conversation.tool_results()
        assert [m.content for m in results] == ["a", "b"]
        assert results[0].tool_call_id == "dup"
        assert results[1].tool_call_id != "dup"
        assistant = next(m for m in result.conversation if m.tool_calls)
        assert [tc.id for tc in assistant.tool_calls] == [m.tool_call_id for m in results]

    def test_unknown_tool_is_reported_to_the_model(self, registry):
        """A call to an unregistered tool becomes error content, not a failure."""
        client = ScriptedModelClient(
            [
                tool_request(("call_1", "get_stock_price", {"ticker": "ACME"})),
                final("I can't look up stock prices."),
            ]
        )
        orchestrator = _make_orchestrator(client, registry)

        result = orchestrator.run("What is ACME trading at?")

        assert isinstance(result, FinalAnswer)
        payload = _tool_payloads(result)[0]
        assert payload["error"] == "UnknownToolError"
        assert payload["tool"] == "get_stock_price"
        # the model saw the error before answering
        second_call = client.calls[1]["messages"]
        assert second_call[-1].role is Role.TOOL


class TestToolFailures:
    """Tool failures are serialized into the conversation."""

    def test_invalid_arguments(self, registry):
        client = ScriptedModelClient(
            [tool_request(("call_1", "echo", {"txt": "hi"})), final("done")]
        )
        result = _make_orchestrator(client, registry).run("Echo something")

        payload = _tool_payloads(result)[0]
        assert payload["error"] == "InvalidArgumentsError"
        assert payload["missing"] == ["text"]
        assert payload["unexpected"] == ["txt"]

    def test_execution_error(self, registry):
        client = ScriptedModelClient([tool_request(("call_1", "broken", {})), final("sorry")])
        result = _make_orchestrator(client, registry).run("Use the broken tool")

        assert isinstance(result, FinalAnswer)
        payload = _tool_payloads(result)[0]
        assert payload["error"] == "ToolExecutionError"
        assert "backend exploded" in payload["message"]

    def test_tool_timeout(self, registry):
        client = ScriptedModelClient(
            [tool_request(("call_1", "slow", {"seconds": 1.0})), final("gave up")]
        )
        orchestrator = _make_orchestrator(client, registry, tool_timeout=0.1)

        result = orchestrator.run("Do something slow")

        assert isinstance(result, FinalAnswer)
        payload = _tool_payloads(result)[0]
        assert payload["error"] == "ToolTimeoutError"


class TestToolBatches:
    """Multiple tool calls in one reply."""

    def test_results_follow_request_order(self, registry):
        """Results are appended in request order, not completion order."""
        client = ScriptedModelClient(
            [
                tool_request(
                    ("call_a", "slow", {"seconds": 0.2}),
                    ("call_b", "echo", {"text": "fast"}),
                    ("call_c", "get_weather", {"location": "Oslo"}),
                ),
                final("done"),
            ]
        )
        orchestrator = _make_orchestrator(client, registry, max_tool_workers=4)

        result = orchestrator.run("Do three things")

        ids = [m.tool_call_id for m in result.conversation.tool_results()]
        assert ids == ["call_a", "call_b", "call_c"]
        assert result.conversation.tool_results()[1].content == "fast"

    def test_batch_counts_as_one_step(self, registry):
        client = ScriptedModelClient(
            [
                tool_request(("c1", "echo", {"text": "1"}), ("c2", "echo", {"text": "2"})),
                final("done"),
            ]
        )
        result = _make_orchestrator(client, registry).run("Two echoes")

        assert result.steps == 2

    def test_tool_calls_take_precedence_over_content(self, registry):
        client = ScriptedModelClient(
            [
                tool_request(("c1", "echo", {"text": "x"}), content="Let me check."),
                final("done"),
            ]
        )
        result = _make_orchestrator(client, registry).run("Check")

        assert result.steps == 2
        assert result.conversation.messages[1].content == "Let me check."


class TestBudgets:
    """Step and time budgets."""

    def test_zero_max_steps_exhausts_without_model_call(self, registry):
        client = ScriptedModelClient([final("never")])
        result = _make_orchestrator(client, registry, max_steps=0).run("Anything")

        assert isinstance(result, Exhausted)
        assert result.steps == 0
        assert client.call_count == 0
        assert len(result.conversation) == 1

    def test_per_run_max_steps_overrides_default(self, registry):
        client = ScriptedModelClient(
            [tool_request((f"c{i}", "echo", {"text": "x"})) for i in range(5)]
        )
        orchestrator = _make_orchestrator(client, registry, max_steps=10)

        result = orchestrator.run("Loop", max_steps=2)

        assert isinstance(result, Exhausted)
        assert result.steps == 2

    def test_run_timeout_exhausts_time_budget(self, registry):
        client = ScriptedModelClient(
            [tool_request(("c1", "slow", {"seconds": 0.2})), final("too late")]
        )
        orchestrator = _make_orchestrator(client, registry, run_timeout=0.05)

        result = orchestrator.run("Slow task")

        assert isinstance(result, Exhausted)
        assert result.reason is ExhaustionReason.TIME_BUDGET
        assert client.call_count == 1
        assert len(result.conversation.tool_results()) == 1

    def test_model_timeout_is_passed_to_client(self, registry):
        client = ScriptedModelClient([final("ok")])
        _make_orchestrator(client, registry, model_timeout=5.0).run("Hi")

        assert client.calls[0]["timeout"] == 5.0

    def test_model_timeout_is_capped_by_remaining_run_time(self, registry):
        client = ScriptedModelClient([final("ok")])
        _make_orchestrator(client, registry, model_timeout=60.0, run_timeout=2.0).run("Hi")

        assert client.calls[0]["timeout"] <= 2.0


class TestRetry:
    """Retry policy for model-client errors."""

    def test_unavailable_is_retried(self, registry):
        sleeps = []
        client = ScriptedModelClient([UpstreamUnavailableError("down"), final("ok")])
        result = _make_orchestrator(client, registry, sleeps).run("Hi")

        assert isinstance(result, FinalAnswer)
        assert client.call_count == 2
        assert sleeps == [0.5]

    def test_retries_do_not_consume_steps(self, registry):
        client = ScriptedModelClient([UpstreamUnavailableError("down"), final("ok")])
        result = _make_orchestrator(client, registry, max_steps=1).run("Hi")

        assert isinstance(result, FinalAnswer)
        assert result.steps == 1

    def test_exhausted_retries_end_in_error(self, registry):
        sleeps = []
        client = ScriptedModelClient([UpstreamUnavailableError("down")])
        result = _make_orchestrator(client, registry, sleeps).run("Hi")

        assert isinstance(result, RunError)
        assert result.kind is ErrorKind.UPSTREAM_UNAVAILABLE
        assert client.call_count == 3
        assert sleeps == [0.5, 1.0]
        assert len(result.conversation) == 1

    def test_rate_limit_honours_retry_after(self, registry):
        sleeps = []
        client = ScriptedModelClient(
            [UpstreamRateLimitedError("slow down", retry_after=2.0), final("ok")]
        )
        result = _make_orchestrator(client, registry, sleeps).run("Hi")

        assert isinstance(result, FinalAnswer)
        assert sleeps == [2.0]

    def test_rate_limit_error_kind(self, registry):
        client = ScriptedModelClient([UpstreamRateLimitedError("slow down")])
        result = _make_orchestrator(client, registry).run("Hi")

        assert result.kind is ErrorKind.UPSTREAM_RATE_LIMITED

    @pytest.mark.parametrize(
        "error,kind",
        [
            (MalformedReplyError("garbage"), ErrorKind.MALFORMED_REPLY),
            (UpstreamRejectedError("bad request", status_code=400), ErrorKind.UPSTREAM_REJECTED),
        ],
    )
    def test_non_retryable_errors_fail_immediately(self, registry, error, kind):
        sleeps = []
        client = ScriptedModelClient([error, final("unreachable")])
        result = _make_orchestrator(client, registry, sleeps).run("Hi")

        assert isinstance(result, RunError)
        assert result.kind is kind
        assert client.call_count == 1
        assert sleeps == []

    def test_no_retry_past_run_deadline(self, registry):
        sleeps = []
        client = ScriptedModelClient([UpstreamUnavailableError("down"), final("ok")])
        orchestrator = _make_orchestrator(
            client,
            registry,
            sleeps,
            run_timeout=1.0,
            retry_policy=RetryPolicy(max_attempts=3, backoff_base=5.0, backoff_max=10.0),
        )

        result = orchestrator.run("Hi")

        assert isinstance(result, RunError)
        assert result.kind is ErrorKind.UPSTREAM_UNAVAILABLE
        assert sleeps == []

    def test_backoff_is_exponential_and_capped(self):
        policy = RetryPolicy(max_attempts=5, backoff_base=1.0, backoff_max=3.0)
        error = UpstreamUnavailableError("down")

        assert [policy.delay(n, error) for n in range(1, 5)] == [1.0, 2.0, 3.0, 3.0]


class TestCancellation:
    """Cooperative cancellation."""

    def test_cancel_before_start(self, registry):
        token = CancellationToken()
        token.cancel("user pressed stop")
        client = ScriptedModelClient([final("never")])

        result = _make_orchestrator(client, registry).run("Hi", cancel_token=token)

        assert isinstance(result, RunError)
        assert result.kind is ErrorKind.CANCELLED
        assert result.detail == "user pressed stop"
        assert client.call_count == 0

    def test_cancel_during_tool_batch_stops_at_next_boundary(self, registry):
        token = CancellationToken()
        registry.register(
            make_tool("stop", lambda p: token.cancel() or "stopping")
        )
        client = ScriptedModelClient([tool_request(("c1", "stop", {})), final("never")])

        result = _make_orchestrator(client, registry).run("Stop", cancel_token=token)

        assert isinstance(result, RunError)
        assert result.kind is ErrorKind.CANCELLED
        assert client.call_count == 1
        # the in-flight batch completed before cancellation took effect
        assert result.conversation.tool_results()[0].content == "stopping"

    def test_cancel_during_retry_backoff(self, registry):
        token = CancellationToken()
        client = ScriptedModelClient([UpstreamUnavailableError("down"), final("ok")])
        orchestrator = Orchestrator(
            client, registry, sleep=lambda seconds: token.cancel("bored")
        )

        result = orchestrator.run("Hi", cancel_token=token)

        assert isinstance(result, RunError)
        assert result.kind is ErrorKind.CANCELLED
        assert client.call_count == 1


class TestRunEvents:
    """The event stream from iter_run."""

    def test_event_sequence(self, registry):
        client = ScriptedModelClient(
            [tool_request(("c1", "echo", {"text": "hi"})), final("done")]
        )
        orchestrator = _make_orchestrator(client, registry)

        events = list(orchestrator.iter_run("Echo hi"))

        assert [e.state for e in events] == [
            RunState.SEEDED,
            RunState.AWAITING_MODEL,
            RunState.TOOL_DISPATCH,
            RunState.AWAITING_MODEL,
            RunState.TERMINAL_ANSWER,
        ]
        assert all(e.result is None for e in events[:-1])
        assert isinstance(events[-1].result, FinalAnswer)

    def test_events_carry_new_messages(self, registry):
        client = ScriptedModelClient(
            [tool_request(("c1", "echo", {"text": "hi"})), final("done")]
        )
        events = list(_make_orchestrator(client, registry).iter_run("Echo hi"))

        assert [m.role for m in events[0].messages] == [Role.USER]
        assert events[1].messages == ()
        assert [m.role for m in events[2].messages] == [Role.ASSISTANT]
        assert [m.role for m in events[3].messages] == [Role.TOOL]
        assert events[4].messages[0].content == "done"

    def test_closing_the_stream_abandons_the_run(self, registry):
        client = ScriptedModelClient([final("never")])
        stream = _make_orchestrator(client, registry).iter_run("Hi")

        first = next(stream)
        stream.close()

        assert first.state is RunState.SEEDED
        assert client.call_count == 0

    def test_unexpected_exception_becomes_internal_error(self, registry):
        client = ScriptedModelClient([RuntimeError("bug in client")])
        result = _make_orchestrator(client, registry).run("Hi")

        assert isinstance(result, RunError)
        assert result.kind is ErrorKind.INTERNAL
        assert "bug in client" in result.detail

    def test_run_without_terminal_event_raises(self, registry):
        orchestrator = _make_orchestrator(ScriptedModelClient([final("x")]), registry)

        with patch.object(Orchestrator, "iter_run", return_value=iter([])):
            with pytest.raises(InvalidTransitionError, match="without a terminal event"):
                orchestrator.run("Hi")


class TestOrchestratorSetup:
    """Construction and sharing."""

    def test_registry_is_frozen(self, registry):
        _make_orchestrator(ScriptedModelClient([final("x")]), registry)

        assert registry.frozen
        with pytest.raises(RegistryFrozenError):
            registry.register(make_tool("late", lambda p: "x"))

    def test_tool_definitions_are_sent(self, registry):
        client = ScriptedModelClient([final("ok")])
        _make_orchestrator(client, registry).run("Hi")

        names = [t["function"]["name"] for t in client.calls[0]["tools"]]
        assert names == ["get_weather", "echo", "slow", "broken"]

    def test_default_system_instruction(self, registry):
        client = ScriptedModelClient([final("ok")])
        orchestrator = _make_orchestrator(client, registry, system_instruction="Be terse.")

        result = orchestrator.run("Hi")

        assert result.conversation.messages[0].role is Role.SYSTEM
        assert result.conversation.messages[0].content == "Be terse."

    def test_concurrent_runs_are_independent(self, registry):
        registry.register(
            make_tool("double", lambda p: p["n"] * 2, {"n": ParameterSpec("integer")})
        )
        client = ScriptedModelClient([final("ok")])
        orchestrator = _make_orchestrator(client, registry)

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(lambda i: orchestrator.run(f"Task {i}"), range(8)))

        assert all(isinstance(r, FinalAnswer) for r in results)
        assert [r.conversation.messages[0].content for r in results] == [
            f"Task {i}" for i in range(8)
        ]

    def test_close_closes_model_client(self, registry):
        client = ScriptedModelClient([final("ok")])
        _make_orchestrator(client, registry).close()

        assert client.closed
