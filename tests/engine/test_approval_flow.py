"""Approval gating, suspension and resume."""

import pytest

from baton.domain.agent import Agent
from baton.domain.approvals import ApprovalPolicies
from baton.domain.messages import Role
from baton.domain.records import RunStatus
from baton.domain.run_state import ApprovalDecision, ApprovalStatus, RunState, TurnPhase
from baton.domain.tool import function_tool
from baton.engine.run_loop import RunOptions, Runner
from scripted_provider import ScriptedProvider, call, calls, reply


def _delete_agent(invocations, gated=True):
    @function_tool(needs_approval=gated, approval_metadata={"severity": "high"})
    def delete_file(path: str) -> str:
        """Delete a file."""
        invocations.append(path)
        return f"deleted {path}"

    @function_tool
    def list_files() -> list:
        """List files."""
        invocations.append("list")
        return ["a.txt", "b.txt"]

    return Agent(name="Files", tools=[delete_file, list_files])


def _tool_messages(provider):
    return [m.model_dump() for m in provider.requests[-1].messages if m.role == Role.TOOL]


def _script():
    return [
        calls(
            call("list_files", {}, "c-list"),
            call("delete_file", {"path": "/tmp/a.txt"}, "c-del"),
        ),
        reply("all done"),
    ]


def test_gated_call_suspends_the_whole_batch(make_runner) -> None:
    """Nothing in the batch runs while an approval is outstanding."""
    invocations = []
    agent = _delete_agent(invocations)
    runner, provider = make_runner(_script())

    result = runner.run_sync(agent, "clean up")

    assert result.status == RunStatus.AWAITING_APPROVAL
    assert invocations == []
    assert provider.call_count == 1
    assert result.state is not None
    assert result.state.phase == TurnPhase.DISPATCH
    [pending] = result.interruptions
    assert pending.call_id == "c-del"
    assert pending.tool_name == "delete_file"
    assert pending.arguments == {"path": "/tmp/a.txt"}
    assert pending.status == ApprovalStatus.PENDING
    assert pending.metadata == {"severity": "high"}


def test_rejection_never_runs_the_tool(make_runner) -> None:
    """A rejected call gets a rejection result and its body never runs."""
    invocations = []
    agent = _delete_agent(invocations)
    runner, provider = make_runner(_script())

    suspended = runner.run_sync(agent, "clean up")
    result = runner.resume_sync(
        suspended.state, {"c-del": ApprovalDecision(approved=False, reason="not today")}
    )

    assert result.status == RunStatus.COMPLETED
    assert result.final_output == "all done"
    assert invocations == ["list"]
    tool_messages = {m.tool_call_id: m for m in provider.requests[1].messages if m.role == Role.TOOL}
    assert tool_messages["c-del"].is_error is True
    assert tool_messages["c-del"].content == "Tool call rejected: not today"
    assert tool_messages["c-list"].is_error is False


def test_approval_runs_the_tool(make_runner) -> None:
    invocations = []
    agent = _delete_agent(invocations)
    runner, _ = make_runner(_script())

    suspended = runner.run_sync(agent, "clean up")
    result = runner.resume_sync(suspended.state, {"c-del": True})

    assert sorted(invocations) == ["/tmp/a.txt", "list"]
    assert result.steps[0].tool_results[1].payload == "deleted /tmp/a.txt"
    assert suspended.state.pending_approvals == []


def test_approving_everything_matches_an_ungated_run(make_runner) -> None:
    """Suspend then approve all yields the same output and tool results as no gating."""
    ungated_calls = []
    gated_calls = []
    ungated_runner, ungated_provider = make_runner(_script())
    gated_runner, gated_provider = make_runner(_script())

    ungated = ungated_runner.run_sync(_delete_agent(ungated_calls, gated=False), "clean up")
    suspended = gated_runner.run_sync(_delete_agent(gated_calls), "clean up")
    approved = gated_runner.resume_sync(
        suspended.state, {item.call_id: True for item in suspended.interruptions}
    )

    assert ungated.status == approved.status == RunStatus.COMPLETED
    assert approved.final_output == ungated.final_output
    assert [r.model_dump() for r in approved.steps[0].tool_results] == [
        r.model_dump() for r in ungated.steps[0].tool_results
    ]
    assert sorted(gated_calls) == sorted(ungated_calls)
    assert approved.transcript[-1].text == ungated.transcript[-1].text
    assert _tool_messages(gated_provider) == _tool_messages(ungated_provider)


def test_undecided_calls_suspend_again(make_runner) -> None:
    """Resuming without a decision returns another suspension."""
    invocations = []
    agent = _delete_agent(invocations)
    runner, provider = make_runner(_script())

    suspended = runner.run_sync(agent, "clean up")
    again = runner.resume_sync(suspended.state, {"unknown-id": True})

    assert again.status == RunStatus.AWAITING_APPROVAL
    assert [item.call_id for item in again.interruptions] == ["c-del"]
    assert invocations == []
    assert provider.call_count == 1


def test_resume_requires_a_suspended_state(make_runner) -> None:
    runner, _ = make_runner([reply("hi")])
    state = RunState(start_agent="Solo", current_agent="Solo")

    with pytest.raises(ValueError):
        runner.resume_sync(state, {})


def test_serialized_state_resumes_like_in_process(config) -> None:
    """A state restored from JSON produces the same output as the original."""
    in_process_calls = []
    restored_calls = []

    first_runner = Runner(provider=ScriptedProvider(_script()), config=config)
    first_agent = _delete_agent(in_process_calls)
    suspended = first_runner.run_sync(first_agent, "clean up", RunOptions(context={"user": "ada"}))
    payload = suspended.state.to_json()
    expected = first_runner.resume_sync(suspended.state, {"c-del": True})

    second_runner = Runner(provider=ScriptedProvider(_script()[1:]), config=config)
    second_agent = _delete_agent(restored_calls)
    restored = RunState.from_json(payload, second_agent)
    assert restored.context == {"user": "ada"}
    actual = second_runner.resume_sync(restored, {"c-del": True})

    assert actual.final_output == expected.final_output
    assert [m.model_dump() for m in actual.messages] == [m.model_dump() for m in expected.messages]
    assert sorted(restored_calls) == sorted(in_process_calls)
    assert actual.usage.requests == expected.usage.requests == 2


def test_approval_handler_decides_inline(make_runner) -> None:
    """A configured handler is asked instead of suspending."""
    invocations = []
    asked = []

    def handler(tool_name, arguments, context):
        asked.append((tool_name, arguments, context))
        return tool_name != "delete_file"

    agent = _delete_agent(invocations)
    runner, provider = make_runner(_script())

    result = runner.run_sync(
        agent, "clean up", RunOptions(context={"role": "user"}, approval_handler=handler)
    )

    assert result.status == RunStatus.COMPLETED
    assert asked == [("delete_file", {"path": "/tmp/a.txt"}, {"role": "user"})]
    assert invocations == ["list"]


def test_predicate_gates_on_context(make_runner) -> None:
    """Predicates see the caller context and the call arguments."""
    invocations = []

    @function_tool(needs_approval=ApprovalPolicies.require_unless_role("admin"))
    def restart(service: str) -> str:
        invocations.append(service)
        return "restarted"

    agent = Agent(name="Ops", tools=[restart])
    runner, _ = make_runner([calls(call("restart", {"service": "db"}, "r1")), reply("ok")])

    result = runner.run_sync(agent, "restart db", RunOptions(context={"roles": ["admin"]}))

    assert result.status == RunStatus.COMPLETED
    assert invocations == ["db"]


def test_failing_approval_handler_rejects_and_completes(make_runner) -> None:
    """A handler that raises rejects the call instead of failing the run."""
    invocations = []

    def handler(tool_name, arguments, context):
        raise RuntimeError("approver offline")

    runner, provider = make_runner(_script())

    result = runner.run_sync(
        _delete_agent(invocations), "clean up", RunOptions(approval_handler=handler)
    )

    assert result.status == RunStatus.COMPLETED
    assert result.final_output == "all done"
    assert invocations == ["list"]
    tool_messages = {m.tool_call_id: m for m in provider.requests[1].messages if m.role == Role.TOOL}
    assert tool_messages["c-del"].is_error is True
    assert "approver offline" in tool_messages["c-del"].content
