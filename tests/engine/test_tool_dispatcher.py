import asyncio
import time

from pydantic import BaseModel

from baton.domain.agent import Agent
from baton.domain.context import RunContext
from baton.domain.messages import ToolCallRequest
from baton.domain.run_state import ApprovalDecision
from baton.domain.tool import Tool, function_tool
from baton.engine.tool_dispatcher import ToolDispatcher, coerce_decision


class NoArgs(BaseModel):
    pass


def _request(tool_name: str, arguments, call_id: str) -> ToolCallRequest:
    return ToolCallRequest(call_id=call_id, tool_name=tool_name, arguments=arguments)


def _dispatch(agent, requests, decisions=None, handler=None, context=None):
    ctx = RunContext(context=context, agent=agent.name, step=1)
    return asyncio.run(
        ToolDispatcher().dispatch(agent, requests, ctx, decisions, handler)
    )


def test_sync_tools_run_concurrently() -> None:
    """Two blocking tools in one batch overlap in time."""

    @function_tool
    def slow(label: str) -> str:
        time.sleep(0.2)
        return label

    agent = Agent(name="Worker", tools=[slow])
    started = time.monotonic()
    outcome = _dispatch(
        agent,
        [_request("slow", {"label": "a"}, "1"), _request("slow", {"label": "b"}, "2")],
    )
    elapsed = time.monotonic() - started

    assert [result.payload for result in outcome.results] == ["a", "b"]
    assert elapsed < 0.38


def test_results_follow_request_order_not_completion_order() -> None:
    @function_tool
    async def wait(delay: float) -> float:
        await asyncio.sleep(delay)
        return delay

    agent = Agent(name="Worker", tools=[wait])
    outcome = _dispatch(
        agent,
        [_request("wait", {"delay": 0.05}, "late"), _request("wait", {"delay": 0.0}, "early")],
    )

    assert [result.call_id for result in outcome.results] == ["late", "early"]


def test_raw_json_arguments_are_parsed() -> None:
    @function_tool
    def echo(text: str) -> str:
        return text

    agent = Agent(name="Worker", tools=[echo])
    outcome = _dispatch(agent, [_request("echo", '{"text": "hi"}', "1")])

    assert outcome.results[0].payload == "hi"


def test_invalid_arguments_yield_error_without_running() -> None:
    ran = []

    @function_tool
    def echo(text: str) -> str:
        ran.append(text)
        return text

    agent = Agent(name="Worker", tools=[echo])
    outcome = _dispatch(
        agent,
        [_request("echo", "{not json", "1"), _request("echo", {"other": 1}, "2")],
    )

    assert ran == []
    assert all(result.is_error for result in outcome.results)
    assert "not valid JSON" in outcome.results[0].payload
    assert outcome.results[1].payload.startswith("Invalid arguments for echo")


def test_tool_timeout_yields_error() -> None:
    @function_tool(timeout=0.01)
    async def hang() -> str:
        await asyncio.sleep(1)
        return "never"

    agent = Agent(name="Worker", tools=[hang])
    outcome = _dispatch(agent, [_request("hang", {}, "1")])

    assert outcome.results[0].is_error
    assert outcome.results[0].payload == "Error executing hang: timed out after 0.01s"


def test_failure_details_are_structured() -> None:
    @function_tool
    def broken() -> str:
        raise ValueError("bad input")

    agent = Agent(name="Worker", tools=[broken])
    result = _dispatch(agent, [_request("broken", {}, "1")]).results[0]

    assert result.error["error_class"] == "ToolExecutionError"
    assert result.error["cause_class"] == "ValueError"
    assert result.error["cause_message"] == "bad input"


def test_raising_predicate_requires_approval() -> None:
    def predicate(context, arguments):
        raise RuntimeError("predicate broke")

    tool = Tool(
        name="guarded",
        description="",
        args_model=NoArgs,
        function=lambda: "ran",
        needs_approval=predicate,
    )
    agent = Agent(name="Worker", tools=[tool])
    outcome = _dispatch(agent, [_request("guarded", {}, "1")])

    assert outcome.suspended
    assert outcome.results == []


def test_recorded_decisions_are_applied() -> None:
    @function_tool(needs_approval=True)
    def risky() -> str:
        return "ran"

    agent = Agent(name="Worker", tools=[risky])
    outcome = _dispatch(
        agent,
        [_request("risky", {}, "a"), _request("risky", {}, "b")],
        decisions={"a": ApprovalDecision(approved=True), "b": ApprovalDecision(approved=False)},
    )

    assert not outcome.suspended
    assert outcome.results[0].payload == "ran"
    assert outcome.results[1].payload == "Tool call rejected: Tool call was rejected by the approver"


def test_async_handler_decisions_are_reported() -> None:
    @function_tool(needs_approval=True)
    def risky() -> str:
        return "ran"

    async def handler(tool_name, arguments, context):
        return {"approved": True, "approver": context["user"]}

    agent = Agent(name="Worker", tools=[risky])
    outcome = _dispatch(agent, [_request("risky", {}, "a")], handler=handler, context={"user": "ops"})

    assert outcome.decisions["a"].approver == "ops"
    assert outcome.results[0].payload == "ran"


def test_failing_handler_rejects_the_call() -> None:
    """A handler that raises rejects the call with its error text."""
    ran = []

    @function_tool(needs_approval=True)
    def risky() -> str:
        ran.append("risky")
        return "ran"

    def handler(tool_name, arguments, context):
        raise RuntimeError("approver offline")

    agent = Agent(name="Worker", tools=[risky])
    outcome = _dispatch(agent, [_request("risky", {}, "a")], handler=handler)

    assert ran == []
    assert not outcome.suspended
    assert outcome.decisions["a"].approved is False
    assert outcome.results[0].is_error
    assert outcome.results[0].payload == (
        "Tool call rejected: Approval handler failed: approver offline"
    )


def test_coerce_decision_variants() -> None:
    assert coerce_decision(True).approved is True
    assert coerce_decision(False).approved is False
    assert coerce_decision({"approved": False, "reason": "no"}).reason == "no"
    decision = ApprovalDecision(approved=True)
    assert coerce_decision(decision) is decision
