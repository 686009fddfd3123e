"""
Structural shapes for pipeline step contracts

A shape maps field names to a type name or to a nested shape:

    {"result": "object", "meta": {"source": "string", "score": "number"}}

Shapes are compared structurally when a pipeline is built, and payloads
are checked at run time by compiling the shape to JSON Schema.
"""

from typing import Dict, List, Any, Mapping, Union
from jsonschema import Draft7Validator

Shape = Mapping[str, Union[str, "Shape"]]

TYPE_NAMES = frozenset({"object", "string", "number", "integer", "boolean", "array", "null", "any"})


def shape_errors(shape: Any, path: str = "") -> List[str]:
    """Problems with a shape definition itself"""

    if not isinstance(shape, Mapping):
        return [f"{path or '<root>'}: shape must be a mapping, got {type(shape).__name__}"]

    errors = []
    for field, declared in shape.items():
        field_path = f"{path}.{field}" if path else str(field)
        if isinstance(declared, Mapping):
            errors.extend(shape_errors(declared, field_path))
        elif declared not in TYPE_NAMES:
            errors.append(f"{field_path}: unknown type '{declared}'")
    return errors


def shape_satisfies(produced: Shape, expected: Shape, path: str = "") -> List[str]:
    """Reasons why ``produced`` does not structurally satisfy ``expected``.

    An empty list means it does. Extra produced fields are allowed.
    """

    problems = []
    for field, wanted in expected.items():
        field_path = f"{path}.{field}" if path else str(field)

        if field not in produced:
            problems.append(f"missing field '{field_path}'")
            continue

        offered = produced[field]
        if wanted == "any":
            continue

        if isinstance(wanted, Mapping):
            if isinstance(offered, Mapping):
                problems.extend(shape_satisfies(offered, wanted, field_path))
            else:
                problems.append(f"field '{field_path}' is '{offered}', expected a nested object")
            continue

        offered_type = "object" if isinstance(offered, Mapping) else offered
        if offered_type == wanted or (offered_type == "integer" and wanted == "number"):
            continue
        problems.append(f"field '{field_path}' is '{offered_type}', expected '{wanted}'")

    return problems


def to_json_schema(shape: Shape) -> Dict[str, Any]:
    """Compile a shape to JSON Schema; an empty shape accepts anything"""

    if not shape:
        return {}

    properties = {}
    for field, declared in shape.items():
        if isinstance(declared, Mapping):
            properties[field] = to_json_schema(declared) or {"type": "object"}
        elif declared == "any":
            properties[field] = {}
        else:
            properties[field] = {"type": declared}

    return {"type": "object", "required": list(shape.keys()), "properties": properties}


def payload_errors(payload: Any, shape: Shape) -> List[str]:
    """Validate a runtime payload against a shape"""

    validator = Draft7Validator(to_json_schema(shape))
    errors = []
    for error in sorted(validator.iter_errors(payload), key=lambda e: list(e.absolute_path)):
        location = ".".join(str(part) for part in error.absolute_path)
        errors.append(f"{location}: {error.message}" if location else error.message)
    return errors


def describe_shape(value: Any) -> Union[str, Dict[str, Any]]:
    """Infer the shape of an actual payload, for error reports"""

    if isinstance(value, Mapping):
        return {str(key): describe_shape(item) for key, item in value.items()}
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if value is None:
        return "null"
    return type(value).__name__
