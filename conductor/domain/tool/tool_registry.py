from typing import Dict, List, Any, Optional, Callable, Iterable, Tuple, Mapping
from pydantic import BaseModel, ConfigDict, Field
import structlog

from conductor.domain.models.envelope import ResultEnvelope
from conductor.domain.models.errors import DuplicateNameError, NotFound
from .tool_executor import execute_tool, describe_tool

logger = structlog.get_logger(__name__)


class Tool(BaseModel):
    """A named async unit of work; immutable once built"""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(min_length=1, description="Unique tool name")
    description: str = Field(default="", description="What the tool does, shown to the decision capability")
    input_schema: Tuple[str, ...] = Field(default_factory=tuple, description="Ordered input parameter names")
    handler: Callable[..., Any] = Field(description="Receives a record keyed by input name, or the bare value if positional")
    positional: bool = Field(default=False, description="Pass the single declared input as a bare value")
    timeout: Optional[float] = Field(default=None, description="Seconds; overrides the engine default")
    category: str = "general"

    async def run(self, inputs: Mapping[str, Any], timeout: Optional[float] = None) -> ResultEnvelope:
        return await execute_tool(self, inputs, timeout=timeout)

    def describe(self) -> Dict[str, Any]:
        return describe_tool(self)


class ToolRegistry:
    """Registry for managing available tools"""

    def __init__(self, tools: Optional[Iterable[Tool]] = None):
        self.tools: Dict[str, Tool] = {}
        self.tool_categories: Dict[str, List[str]] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> Tool:
        """Register a new tool"""

        if tool.name in self.tools:
            raise DuplicateNameError(
                f"Tool named '{tool.name}' already registered",
                {"name": tool.name}
            )

        self.tools[tool.name] = tool
        self.tool_categories.setdefault(tool.category, []).append(tool.name)

        logger.debug("Registered tool", tool=tool.name, inputs=list(tool.input_schema))
        return tool

    def get(self, name: str) -> Tool:
        try:
            return self.tools[name]
        except KeyError:
            raise NotFound(f"Unknown tool '{name}'", {"name": name}) from None

    def __contains__(self, name: object) -> bool:
        return name in self.tools

    def __len__(self) -> int:
        return len(self.tools)

    def names(self) -> List[str]:
        return list(self.tools.keys())

    def catalog(self) -> List[Dict[str, Any]]:
        """Name, description and inputs of every tool, in registration order"""

        return [tool.describe() for tool in self.tools.values()]

    def by_category(self, category: str) -> List[Tool]:
        """Get tools by category"""

        tool_names = self.tool_categories.get(category, [])
        return [self.tools[name] for name in tool_names if name in self.tools]

    def search(self, query: str) -> List[Tool]:
        """Search tools by name or description"""

        query_lower = query.lower()
        matching_tools = []

        for tool in self.tools.values():
            if query_lower in tool.name.lower() or query_lower in tool.description.lower():
                matching_tools.append(tool)

        return matching_tools
