from typing import Any, Dict, List, NamedTuple

import jsonschema


class ValidationResult(NamedTuple):
    is_valid: bool
    errors: List[str]


# Parameter validation against the tool's declared input schema
class ToolParameterValidator:
    @staticmethod
    def validate_tool_call(tool: Dict[str, Any], parameters: Dict[str, Any]) -> ValidationResult:
        schema = tool["input_schema"]

        try:
            jsonschema.validate(parameters, schema)
            return ValidationResult(True, [])

        except jsonschema.ValidationError as e:
            location = ".".join(str(part) for part in e.absolute_path)
            message = f"{location}: {e.message}" if location else e.message
            return ValidationResult(False, [message])
