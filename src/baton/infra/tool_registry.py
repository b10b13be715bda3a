"""Tool registry keyed by explicit tool names."""

from typing import Dict, Iterable, Iterator, List, Optional

from baton.domain.tool import Tool, ToolSpec


class ToolRegistry:
    """
    Explicit name-to-implementation table for tools.

    Args:
        tools: Tools to register up front.
    """

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._registry: Dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        """
        Registers a tool with the registry.

        Args:
            tool: The tool instance to register.

        Raises:
            ValueError: When another tool already uses the name.
        """
        existing = self._registry.get(tool.name)
        if existing is not None and existing is not tool:
            raise ValueError(f"Duplicate tool name: {tool.name}")
        self._registry[tool.name] = tool

    def get_tool(self, name: str) -> Optional[Tool]:
        """
        Retrieves a tool by name.

        Args:
            name: The tool name to fetch.

        Returns:
            The matching tool instance or None.
        """
        return self._registry.get(name)

    def list_tools(self) -> List[Tool]:
        return list(self._registry.values())

    def specs(self) -> List[ToolSpec]:
        """Return provider-facing specs in registration order."""

        return [tool.as_spec() for tool in self._registry.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._registry

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._registry.values())

    def __len__(self) -> int:
        return len(self._registry)
