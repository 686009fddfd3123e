from typing import Dict, Any, Mapping, TYPE_CHECKING

from conductor.domain.models.errors import ValidationError

if TYPE_CHECKING:
    from .tool_registry import Tool


class ToolInputValidator:
    """Checks named inputs against a tool's declared input schema"""

    @staticmethod
    def bind_arguments(tool: "Tool", inputs: Mapping[str, Any]) -> Any:
        """Return the value handed to the handler, or raise ValidationError"""

        if not isinstance(inputs, Mapping):
            raise ValidationError(
                f"Tool '{tool.name}' expects named inputs, got {type(inputs).__name__}",
                {"tool": tool.name}
            )

        missing = [name for name in tool.input_schema if name not in inputs]
        if missing:
            raise ValidationError(
                f"Tool '{tool.name}' is missing required inputs: {', '.join(missing)}",
                {"tool": tool.name, "missing": missing, "expected": list(tool.input_schema)}
            )

        # Tools without a declared schema receive everything they were given
        if not tool.input_schema:
            return dict(inputs)

        if tool.positional and len(tool.input_schema) == 1:
            return inputs[tool.input_schema[0]]

        arguments: Dict[str, Any] = {name: inputs[name] for name in tool.input_schema}
        return arguments
