"""Reusable approval predicates for gated tools."""

import inspect
import json
from typing import Any, Callable, Dict, Iterable, Optional

from baton.domain.run_state import PendingApproval
from baton.domain.tool import ApprovalPredicate


def _lookup(context: Any, key: str, default: Any = None) -> Any:
    if isinstance(context, dict):
        return context.get(key, default)
    return getattr(context, key, default)


async def _evaluate(predicate: ApprovalPredicate, context: Any, arguments: Dict[str, Any]) -> bool:
    decision = predicate(context, arguments)
    if inspect.isawaitable(decision):
        decision = await decision
    return bool(decision)


class ApprovalPolicies:
    """Factory methods returning ``(context, arguments) -> bool`` predicates."""

    @staticmethod
    def always() -> ApprovalPredicate:
        return lambda context, arguments: True

    @staticmethod
    def never() -> ApprovalPredicate:
        return lambda context, arguments: False

    @staticmethod
    def require_unless_role(role: str = "admin", key: str = "roles") -> ApprovalPredicate:
        """
        Requires approval unless the caller context holds a role.

        Args:
            role: Role that bypasses approval.
            key: Context attribute or key listing the caller's roles.
        """

        def predicate(context: Any, arguments: Dict[str, Any]) -> bool:
            roles = _lookup(context, key) or ()
            return role not in roles

        return predicate

    @staticmethod
    def require_for_args(check: Callable[[Dict[str, Any]], bool]) -> ApprovalPredicate:
        return lambda context, arguments: bool(check(arguments))

    @staticmethod
    def require_for_context(check: Callable[[Any], bool]) -> ApprovalPredicate:
        return lambda context, arguments: bool(check(context))

    @staticmethod
    def require_after_count(key: str, threshold: int) -> ApprovalPredicate:
        """Requires approval once a counter in the context reaches a threshold."""

        return lambda context, arguments: (_lookup(context, key) or 0) >= threshold

    @staticmethod
    def require_for_paths(prefixes: Iterable[str], argument: str = "path") -> ApprovalPredicate:
        """
        Requires approval when a path argument starts with a sensitive prefix.

        Args:
            prefixes: Sensitive path prefixes.
            argument: Name of the argument holding the path.
        """
        prefix_list = tuple(prefixes)

        def predicate(context: Any, arguments: Dict[str, Any]) -> bool:
            value = arguments.get(argument)
            return isinstance(value, str) and value.startswith(prefix_list)

        return predicate

    @staticmethod
    def any_of(*predicates: ApprovalPredicate) -> ApprovalPredicate:
        async def predicate(context: Any, arguments: Dict[str, Any]) -> bool:
            for item in predicates:
                if await _evaluate(item, context, arguments):
                    return True
            return False

        return predicate

    @staticmethod
    def all_of(*predicates: ApprovalPredicate) -> ApprovalPredicate:
        async def predicate(context: Any, arguments: Dict[str, Any]) -> bool:
            for item in predicates:
                if not await _evaluate(item, context, arguments):
                    return False
            return True

        return predicate


def format_approval_request(request: PendingApproval, reason: Optional[str] = None) -> str:
    """Render a pending approval for display to a human approver."""

    lines = [
        "APPROVAL REQUIRED",
        f"Tool: {request.tool_name}",
        f"Call: {request.call_id}",
        f"Args: {json.dumps(request.arguments, indent=2, default=str)}",
    ]
    severity = request.metadata.get("severity")
    if severity:
        lines.append(f"Severity: {severity}")
    reason = reason or request.metadata.get("reason")
    if reason:
        lines.append(f"Reason: {reason}")
    return "\n".join(lines)
