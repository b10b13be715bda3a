import re
from collections import deque
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
    Type,
    Union,
)

from pydantic import BaseModel, Field

from baton.domain.context import RunContext
from baton.domain.guardrail import Guardrail, GuardrailKind
from baton.domain.hooks import AgentHooks
from baton.domain.messages import Message
from baton.domain.tool import Tool, ToolSpec
from baton.infra.tool_registry import ToolRegistry

TRANSFER_TOOL_PREFIX = "transfer_to_"

Instructions = Union[str, Callable[[RunContext], Union[str, Awaitable[str]]]]
InputFilter = Callable[[Sequence[Message]], List[Message]]


def slugify_agent_name(name: str) -> str:
    """Return the tool-name-safe slug for an agent name."""

    slug = re.sub(r"[^a-z0-9]+", "_", name.strip().lower()).strip("_")
    return slug or "agent"


class ModelSettings(BaseModel):
    """Sampling settings forwarded to the model provider."""

    temperature: Optional[float] = Field(default=None, description="Sampling temperature.")
    top_p: Optional[float] = Field(default=None, description="Nucleus sampling mass.")
    max_tokens: Optional[int] = Field(default=None, description="Output token cap.")
    presence_penalty: Optional[float] = Field(default=None)
    frequency_penalty: Optional[float] = Field(default=None)

    def as_dict(self) -> Dict[str, Any]:
        """Return only the settings that were explicitly set."""

        return self.model_dump(exclude_none=True)


class TransferArgs(BaseModel):
    """Arguments accepted by a transfer pseudo-tool."""

    reason: Optional[str] = Field(
        default=None, description="Reason for transferring to this agent."
    )


@dataclass(eq=False)
class Transfer:
    """
    A transfer target with optional per-target configuration.

    Args:
        agent: Agent that receives control.
        input_filter: Optional history rewrite applied before the target's
            first turn.
        tool_name: Override for the transfer pseudo-tool name.
        description: Override for the transfer pseudo-tool description.
    """

    agent: "Agent"
    input_filter: Optional[InputFilter] = None
    tool_name: Optional[str] = None
    description: Optional[str] = None

    @property
    def resolved_tool_name(self) -> str:
        return self.tool_name or f"{TRANSFER_TOOL_PREFIX}{slugify_agent_name(self.agent.name)}"

    def as_spec(self) -> ToolSpec:
        """Return the synthetic tool spec the model calls to transfer."""

        description = self.description or self.agent.transfer_description
        if description:
            text = f"Transfer to {self.agent.name}: {description}"
        else:
            text = f"Transfer to the {self.agent.name} agent to handle the request"
        return ToolSpec(
            name=self.resolved_tool_name,
            description=text,
            parameters=TransferArgs.model_json_schema(),
        )


@dataclass(eq=False)
class Agent:
    """
    A named configuration of instructions, tools and transfer targets.

    Transfer lists may be mutated before a run starts so that cyclic agent
    graphs (A -> B -> A) can be built; see ``add_transfer``.
    """

    name: str
    instructions: Instructions = ""
    tools: List[Tool] = field(default_factory=list)
    transfers: List[Union["Agent", Transfer]] = field(default_factory=list, repr=False)
    guardrails: List[Guardrail] = field(default_factory=list)
    model: Optional[str] = None
    model_settings: ModelSettings = field(default_factory=ModelSettings)
    transfer_description: Optional[str] = None
    output_type: Optional[Type[BaseModel]] = None
    hooks: Optional[AgentHooks] = None

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Agent name must be a non-empty string")
        # Raises on duplicate tool names before any run starts.
        self._registry: Optional[ToolRegistry] = ToolRegistry(self.tools)
        self._registry_key: Tuple[int, ...] = tuple(id(tool) for tool in self.tools)

    @property
    def tool_registry(self) -> ToolRegistry:
        """Name-to-tool table for the regular tools, rebuilt when ``tools`` changes."""

        key = tuple(id(tool) for tool in self.tools)
        if self._registry is None or key != self._registry_key:
            self._registry = ToolRegistry(self.tools)
            self._registry_key = key
        return self._registry

    def add_transfer(self, target: Union["Agent", Transfer]) -> None:
        """Append a transfer target."""

        self.transfers.append(target)

    def transfer_targets(self) -> List[Transfer]:
        """Return transfer targets normalized to Transfer wrappers."""

        return [
            target if isinstance(target, Transfer) else Transfer(agent=target)
            for target in self.transfers
        ]

    def find_transfer(self, tool_name: str) -> Optional[Transfer]:
        """Return the transfer target whose pseudo-tool has this name."""

        for target in self.transfer_targets():
            if target.resolved_tool_name == tool_name:
                return target
        return None

    def is_transfer_call(self, tool_name: str) -> bool:
        """
        Returns whether a requested tool name is a transfer request.

        Regular tools shadow the transfer prefix; any other prefixed name is
        a transfer request, even if it names no known target.
        """
        if self.find_transfer(tool_name) is not None:
            return True
        if tool_name in self.tool_registry:
            return False
        return tool_name.startswith(TRANSFER_TOOL_PREFIX)

    def guardrails_of(self, kind: GuardrailKind) -> List[Guardrail]:
        return [guardrail for guardrail in self.guardrails if guardrail.kind == kind]

    def tool_specs(self) -> List[ToolSpec]:
        """Specs for regular tools followed by one pseudo-tool per target."""

        specs = self.tool_registry.specs()
        specs.extend(target.as_spec() for target in self.transfer_targets())
        return specs


class AgentRegistry:
    """
    Stable name-to-agent arena for one agent graph.

    Run state refers to agents by name only; the registry turns names back
    into Agent objects, which keeps cyclic graphs serializable.
    """

    def __init__(self, agents: Sequence[Agent] = ()) -> None:
        self._agents: Dict[str, Agent] = {}
        for agent in agents:
            self.register(agent)

    @classmethod
    def from_root(cls, root: Agent) -> "AgentRegistry":
        """
        Builds a registry from every agent reachable through transfers.

        Args:
            root: Starting agent of the graph.

        Returns:
            A registry containing the root and all reachable agents.

        Raises:
            ValueError: When two different agents share a name.
        """
        registry = cls()
        queue = deque([root])
        while queue:
            agent = queue.popleft()
            if agent.name in registry and registry.get(agent.name) is agent:
                continue
            registry.register(agent)
            queue.extend(target.agent for target in agent.transfer_targets())
        return registry

    def register(self, agent: Agent) -> None:
        existing = self._agents.get(agent.name)
        if existing is not None and existing is not agent:
            raise ValueError(f"Duplicate agent name in graph: {agent.name}")
        self._agents[agent.name] = agent

    def get(self, name: str) -> Agent:
        """Return the agent registered under a name (KeyError when absent)."""

        return self._agents[name]

    def names(self) -> List[str]:
        return list(self._agents)

    def __contains__(self, name: object) -> bool:
        return name in self._agents

    def __iter__(self) -> Iterator[Agent]:
        return iter(self._agents.values())

    def __len__(self) -> int:
        return len(self._agents)
