import asyncio

from baton.domain.approvals import ApprovalPolicies, format_approval_request
from baton.domain.run_state import PendingApproval


def _check(predicate, context=None, arguments=None) -> bool:
    decision = predicate(context, arguments or {})
    if asyncio.iscoroutine(decision):
        decision = asyncio.run(decision)
    return decision


def test_simple_policies() -> None:
    assert _check(ApprovalPolicies.always()) is True
    assert _check(ApprovalPolicies.never()) is False


def test_role_policy_reads_dicts_and_objects() -> None:
    class Caller:
        roles = ["admin"]

    policy = ApprovalPolicies.require_unless_role("admin")

    assert _check(policy, {"roles": ["viewer"]}) is True
    assert _check(policy, Caller()) is False
    assert _check(policy, None) is True


def test_argument_and_context_policies() -> None:
    large = ApprovalPolicies.require_for_args(lambda args: args["amount"] > 1000)
    production = ApprovalPolicies.require_for_context(lambda ctx: ctx["env"] == "prod")

    assert _check(large, arguments={"amount": 5000}) is True
    assert _check(large, arguments={"amount": 5}) is False
    assert _check(production, {"env": "prod"}) is True


def test_count_and_path_policies() -> None:
    counter = ApprovalPolicies.require_after_count("calls", 3)
    paths = ApprovalPolicies.require_for_paths(["/etc", "/root"], argument="target")

    assert _check(counter, {"calls": 2}) is False
    assert _check(counter, {"calls": 3}) is True
    assert _check(paths, arguments={"target": "/etc/passwd"}) is True
    assert _check(paths, arguments={"target": "/tmp/x"}) is False
    assert _check(paths, arguments={}) is False


def test_combinators_await_async_predicates() -> None:
    async def async_yes(context, arguments):
        return True

    never = ApprovalPolicies.never()

    assert _check(ApprovalPolicies.any_of(never, async_yes)) is True
    assert _check(ApprovalPolicies.all_of(async_yes, never)) is False
    assert _check(ApprovalPolicies.all_of(async_yes, ApprovalPolicies.always())) is True


def test_format_approval_request() -> None:
    request = PendingApproval(
        call_id="c1",
        tool_name="delete_file",
        arguments={"path": "/tmp/a"},
        metadata={"severity": "high"},
    )

    text = format_approval_request(request, reason="Destructive operation")

    assert text.splitlines()[:3] == ["APPROVAL REQUIRED", "Tool: delete_file", "Call: c1"]
    assert "Severity: high" in text
    assert text.endswith("Reason: Destructive operation")
