import asyncio
import functools
import inspect
import json
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Optional,
    Type,
    Union,
    get_type_hints,
)

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from baton.domain.context import RunContext
from baton.domain.exceptions import ToolExecutionError

ApprovalPredicate = Callable[[Any, Dict[str, Any]], Union[bool, Awaitable[bool]]]


class ToolSpec(BaseModel):
    """Provider-facing description of a callable tool."""

    name: str = Field(description="Tool name the model uses to call it.")
    description: str = Field(default="", description="Human-readable description.")
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON schema of the tool arguments.",
    )

    model_config = ConfigDict(frozen=True)

    def as_openai_tool(self) -> Dict[str, Any]:
        """
        Returns an OpenAI-compatible tool schema definition.

        Returns:
            A dictionary describing the tool for function calling.
        """
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass(eq=False)
class Tool:
    """
    A schema-validated callable the model may invoke during a turn.

    The function receives the validated argument fields as keyword arguments;
    when ``takes_context`` is set it also receives the RunContext first.
    Sync functions run in a worker thread so a batch executes concurrently.
    """

    name: str
    description: str
    args_model: Type[BaseModel]
    function: Callable[..., Any]
    takes_context: bool = False
    needs_approval: Union[bool, ApprovalPredicate] = False
    approval_metadata: Dict[str, Any] = field(default_factory=dict)
    timeout: Optional[float] = None

    def validate(self, arguments: Union[Dict[str, Any], str, None]) -> BaseModel:
        """
        Parses and validates raw call arguments.

        Args:
            arguments: Parsed arguments or raw JSON text from the model.

        Returns:
            An instance of the tool's args model.

        Raises:
            ToolExecutionError: When the arguments are unparsable or invalid.
        """
        if arguments is None or arguments == "":
            arguments = {}
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except json.JSONDecodeError as exc:
                raise ToolExecutionError(
                    f"Arguments for {self.name} are not valid JSON: {exc.msg}"
                ) from exc
        if not isinstance(arguments, dict):
            raise ToolExecutionError(
                f"Arguments for {self.name} must be an object, "
                f"got {type(arguments).__name__}"
            )
        try:
            return self.args_model.model_validate(arguments)
        except ValidationError as exc:
            raise ToolExecutionError(
                f"Invalid arguments for {self.name}: {exc}"
            ) from exc

    async def requires_approval(self, ctx: RunContext, arguments: Dict[str, Any]) -> bool:
        """Evaluate the tool's approval policy for one call."""

        if callable(self.needs_approval):
            decision = self.needs_approval(ctx.context, arguments)
            if inspect.isawaitable(decision):
                decision = await decision
            return bool(decision)
        return bool(self.needs_approval)

    async def execute(self, args: BaseModel, ctx: RunContext) -> Any:
        """
        Runs the tool body with validated arguments.

        Args:
            args: Validated args model instance.
            ctx: Run context bound to this call.

        Returns:
            Whatever the tool function returns.
        """
        kwargs = {name: getattr(args, name) for name in type(args).model_fields}
        if self.takes_context:
            call = functools.partial(self.function, ctx, **kwargs)
        else:
            call = functools.partial(self.function, **kwargs)

        if inspect.iscoroutinefunction(self.function):
            result = await call()
        else:
            result = await asyncio.to_thread(call)
        if inspect.isawaitable(result):
            result = await result
        return result

    def as_spec(self) -> ToolSpec:
        """Return the provider-facing spec for this tool."""

        return ToolSpec(
            name=self.name,
            description=self.description,
            parameters=self.args_model.model_json_schema(),
        )


def _is_context_parameter(parameter: inspect.Parameter, hints: Dict[str, Any]) -> bool:
    annotation = hints.get(parameter.name)
    if annotation is RunContext:
        return True
    return annotation is None and parameter.name in ("ctx", "run_context")


def _args_model_name(tool_name: str) -> str:
    parts = [part for part in tool_name.replace("-", "_").split("_") if part]
    return "".join(part[:1].upper() + part[1:] for part in parts) + "Args"


def function_tool(
    func: Optional[Callable[..., Any]] = None,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    needs_approval: Union[bool, ApprovalPredicate] = False,
    approval_metadata: Optional[Dict[str, Any]] = None,
    timeout: Optional[float] = None,
) -> Any:
    """
    Builds a Tool from a typed function signature.

    A first parameter annotated as RunContext (or named ``ctx``) receives the
    run context and is excluded from the argument schema. Usable bare
    (``@function_tool``) or with options (``@function_tool(name=...)``).

    Args:
        func: Function to wrap when used without options.
        name: Tool name; defaults to the function name.
        description: Tool description; defaults to the docstring.
        needs_approval: Approval flag or predicate ``(context, args) -> bool``.
        approval_metadata: Extra metadata copied onto approval requests.
        timeout: Optional per-call timeout in seconds.

    Returns:
        A Tool, or a decorator producing one.
    """

    def decorator(fn: Callable[..., Any]) -> Tool:
        hints = get_type_hints(fn)
        parameters = list(inspect.signature(fn).parameters.values())
        takes_context = bool(parameters) and _is_context_parameter(parameters[0], hints)
        if takes_context:
            parameters = parameters[1:]

        fields: Dict[str, Any] = {}
        for parameter in parameters:
            if parameter.kind in (
                inspect.Parameter.VAR_POSITIONAL,
                inspect.Parameter.VAR_KEYWORD,
            ):
                raise TypeError(
                    f"Tool function {fn.__name__} cannot take *args or **kwargs"
                )
            annotation = hints.get(parameter.name, Any)
            default = (
                parameter.default
                if parameter.default is not inspect.Parameter.empty
                else ...
            )
            fields[parameter.name] = (annotation, default)

        tool_name = name or fn.__name__
        args_model = create_model(_args_model_name(tool_name), **fields)
        return Tool(
            name=tool_name,
            description=description or inspect.getdoc(fn) or "",
            args_model=args_model,
            function=fn,
            takes_context=takes_context,
            needs_approval=needs_approval,
            approval_metadata=dict(approval_metadata or {}),
            timeout=timeout,
        )

    if func is not None:
        return decorator(func)
    return decorator
