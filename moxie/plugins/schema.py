"""Tool parameter validation against a tool's JSON-schema-like parameter description."""

from typing import Any, Dict, List

from moxie.plugins.errors import InvalidParameters


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
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
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _matches(value: Any, expected: str) -> bool:
    actual = _type_name(value)
    if expected == "number":
        return actual in ("integer", "number")
    return actual == expected


def check_params(schema: Dict[str, Any], params: Any) -> List[str]:
    """Return every problem found in ``params``; empty when valid.

    Only the top level is checked: required keys, declared property types
    and, when ``additionalProperties`` is false, undeclared keys.
    """
    if not isinstance(params, dict):
        return [f"parameters must be an object, got {_type_name(params)}"]

    properties = schema.get("properties") or {}
    problems = []

    for name in schema.get("required") or []:
        if name not in params:
            problems.append(f"missing required parameter '{name}'")

    for name, value in params.items():
        prop = properties.get(name)
        if prop is None:
            if schema.get("additionalProperties") is False:
                problems.append(f"unexpected parameter '{name}'")
            continue

        expected = prop.get("type")
        if expected is None:
            continue
        allowed = expected if isinstance(expected, list) else [expected]
        if not any(_matches(value, t) for t in allowed):
            problems.append(
                f"parameter '{name}' expected {' or '.join(allowed)}, got {_type_name(value)}"
            )

        if "enum" in prop and value not in prop["enum"]:
            problems.append(f"parameter '{name}' must be one of {prop['enum']}")

    return problems


def validate_params(schema: Dict[str, Any], params: Any) -> Dict[str, Any]:
    """Validate ``params`` and return them.

    Raises:
        InvalidParameters: Lists every problem, separated by '; '
    """
    problems = check_params(schema, params)
    if problems:
        raise InvalidParameters("; ".join(problems))
    return params
