from typing import Any, List, Optional

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError
from pydantic import BaseModel, Field

from taskengine.errors import JSONExtractionError
from taskengine.llm.json_extraction import extract_json


class ValidationResult(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)
    data: Optional[Any] = None


def _instance_path(error) -> str:
    if not error.absolute_path:
        return "root"
    return "/" + "/".join(str(part) for part in error.absolute_path)


class SchemaValidator:
    """JSON Schema (draft 2020-12) checks for prompt inputs and model outputs."""

    def validate(self, data: Any, schema: Optional[dict]) -> ValidationResult:
        if not schema:
            return ValidationResult(valid=True, data=data)
        try:
            Draft202012Validator.check_schema(schema)
        except SchemaError as e:
            return ValidationResult(valid=False, errors=[f"Schema validation error: {e.message}"])

        validator = Draft202012Validator(schema)
        errors = sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path])
        if not errors:
            return ValidationResult(valid=True, data=data)
        return ValidationResult(valid=False, errors=[f"{_instance_path(e)}: {e.message}" for e in errors])

    def validate_response(self, response: str, schema: Optional[dict]) -> ValidationResult:
        try:
            data = extract_json(response)
        except JSONExtractionError as e:
            return ValidationResult(valid=False, errors=[f"Failed to parse JSON: {e}"])
        return self.validate(data, schema)
