from .tool_registry import Tool, ToolRegistry
from .tool_executor import execute_tool, describe_tool
from .tool_validator import ToolInputValidator

__all__ = ["Tool", "ToolRegistry", "execute_tool", "describe_tool", "ToolInputValidator"]
