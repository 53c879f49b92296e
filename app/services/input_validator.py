"""Input Validation Service for Action Execution

Interprets an action's ordered list of parameter descriptors and validates
raw, untyped inputs against it:
- Required / optional handling with default application
- Type checks and coercion (numeric strings become numbers)
- String length, pattern and format constraints
- Numeric ranges, enum membership, date parsing
- Complete, field-indexed error reporting (never fail-fast)

Fields present in the inputs but absent from the schema are dropped from the
validated result. A parameter whose ``visibleIf`` JSONLogic rule is falsy for
the raw inputs is hidden: it is neither validated nor passed on.
"""

import math
import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse
from json_logic import jsonLogic
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from app.core.logging_config import get_logger
from app.schemas.action import (
    BooleanParameter,
    DateParameter,
    EnumParameter,
    NumberParameter,
    StringParameter,
    parse_input_schema,
)


logger = get_logger(__name__)


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_MISSING = object()


class FieldError(BaseModel):
    """Represents a single field validation error"""
    field: str = Field(..., description="Field name that failed validation")
    error_type: str = Field(..., description="Type of validation error")
    message: str = Field(..., description="Human-readable error message")
    value: Optional[Any] = Field(None, description="The invalid value")


class ValidationResult(BaseModel):
    """Result of input validation"""
    valid: bool = Field(..., description="Whether validation passed")
    errors: List[FieldError] = Field(
        default_factory=list,
        description="List of field errors"
    )
    validated: Dict[str, Any] = Field(
        default_factory=dict,
        description="Validated and coerced inputs (empty when invalid)"
    )
    dropped_fields: List[str] = Field(
        default_factory=list,
        description="Input fields not declared by the schema or hidden by a visibility rule"
    )

    @property
    def fields(self) -> List[str]:
        return [error.field for error in self.errors]

    @property
    def error_types(self) -> List[str]:
        return [error.error_type for error in self.errors]


def _parse_date(value: str) -> bool:
    candidate = value.strip()
    if not candidate:
        return False
    try:
        date.fromisoformat(candidate)
        return True
    except ValueError:
        pass
    try:
        datetime.fromisoformat(candidate)
        return True
    except ValueError:
        return False


def _parse_datetime(value: str) -> bool:
    try:
        datetime.fromisoformat(value.strip())
        return "T" in value or " " in value.strip()
    except ValueError:
        return False


def _is_url(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme) and bool(parsed.netloc)


class InputValidator:
    """
    Validates raw action inputs against a parameter descriptor list.

    The descriptor list is a closed union of string, number, boolean, enum
    and date descriptors; each kind is checked by its own small routine.
    """

    def validate(
        self,
        schema: Optional[List[Any]],
        raw_inputs: Optional[Dict[str, Any]]
    ) -> ValidationResult:
        """
        Validate inputs against a schema.

        Args:
            schema: Ordered parameter descriptors (parsed or raw dicts)
            raw_inputs: Inputs exactly as received

        Returns:
            ValidationResult with every field error, or the validated inputs
        """
        if raw_inputs is None:
            raw_inputs = {}
        if not isinstance(raw_inputs, dict):
            return ValidationResult(
                valid=False,
                errors=[FieldError(
                    field="inputs",
                    error_type="type",
                    message="Inputs must be an object",
                    value=raw_inputs
                )]
            )

        try:
            descriptors = parse_input_schema(schema)
        except (PydanticValidationError, ValueError) as e:
            return ValidationResult(
                valid=False,
                errors=[FieldError(
                    field="input_schema",
                    error_type="schema",
                    message=f"Action input schema is invalid: {e}"
                )]
            )

        errors: List[FieldError] = []
        validated: Dict[str, Any] = {}

        hidden: List[str] = []

        for descriptor in descriptors:
            if not self._is_visible(descriptor, raw_inputs):
                hidden.append(descriptor.name)
                continue

            value = raw_inputs.get(descriptor.name, _MISSING)

            if self._is_absent(descriptor, value):
                if descriptor.default is not None:
                    validated[descriptor.name] = descriptor.default
                elif descriptor.required:
                    errors.append(FieldError(
                        field=descriptor.name,
                        error_type="required",
                        message=f"Required field '{descriptor.name}' is missing"
                    ))
                continue

            coerced, field_errors = self._validate_field(descriptor, value)
            if field_errors:
                errors.extend(field_errors)
            else:
                validated[descriptor.name] = coerced

        declared = {descriptor.name for descriptor in descriptors}
        dropped = [name for name in raw_inputs if name not in declared or name in hidden]

        return ValidationResult(
            valid=len(errors) == 0,
            errors=errors,
            validated=validated if len(errors) == 0 else {},
            dropped_fields=dropped
        )

    def _is_visible(self, descriptor, raw_inputs: Dict[str, Any]) -> bool:
        if not descriptor.visible_if:
            return True
        try:
            return bool(jsonLogic(descriptor.visible_if, raw_inputs))
        except Exception as e:
            # A broken rule keeps the parameter visible
            logger.warning(
                "visibility_condition_failed",
                field=descriptor.name,
                error=str(e)
            )
            return True

    def _is_absent(self, descriptor, value: Any) -> bool:
        if value is _MISSING or value is None:
            return True
        # Empty form values count as absent for numbers only
        return isinstance(descriptor, NumberParameter) and value == ""

    def _validate_field(self, descriptor, value: Any) -> Tuple[Any, List[FieldError]]:
        if isinstance(descriptor, StringParameter):
            return self._validate_string(descriptor, value)
        if isinstance(descriptor, NumberParameter):
            return self._validate_number(descriptor, value)
        if isinstance(descriptor, BooleanParameter):
            return self._validate_boolean(descriptor, value)
        if isinstance(descriptor, EnumParameter):
            return self._validate_enum(descriptor, value)
        if isinstance(descriptor, DateParameter):
            return self._validate_date(descriptor, value)
        return value, []

    def _error(self, descriptor, error_type: str, message: str, value: Any = None) -> FieldError:
        rules = descriptor.validation
        if rules and rules.message and error_type not in ("type", "schema"):
            message = rules.message
        return FieldError(
            field=descriptor.name,
            error_type=error_type,
            message=message,
            value=value
        )

    def _validate_string(self, descriptor: StringParameter, value: Any) -> Tuple[Any, List[FieldError]]:
        name = descriptor.name
        if not isinstance(value, str):
            return value, [self._error(
                descriptor, "type",
                f"Field '{name}' must be of type 'string', got '{type(value).__name__}'",
                value
            )]

        errors: List[FieldError] = []
        rules = descriptor.validation
        if rules is None:
            return value, errors

        if rules.min is not None and len(value) < rules.min:
            errors.append(self._error(
                descriptor, "minLength",
                f"Field '{name}' must be at least {int(rules.min)} characters",
                value
            ))

        if rules.max is not None and len(value) > rules.max:
            errors.append(self._error(
                descriptor, "maxLength",
                f"Field '{name}' must be at most {int(rules.max)} characters",
                value
            ))

        if rules.pattern:
            try:
                matched = re.search(rules.pattern, value) is not None
            except re.error as e:
                errors.append(self._error(
                    descriptor, "schema",
                    f"Field '{name}' has an invalid pattern: {e}"
                ))
            else:
                if not matched:
                    errors.append(self._error(
                        descriptor, "pattern",
                        f"Field '{name}' does not match required pattern",
                        value
                    ))

        if rules.format == "email" and not EMAIL_PATTERN.match(value):
            errors.append(self._error(descriptor, "format", f"Field '{name}' must be a valid email", value))
        elif rules.format == "url" and not _is_url(value):
            errors.append(self._error(descriptor, "format", f"Field '{name}' must be a valid URL", value))
        elif rules.format == "date" and not _parse_date(value):
            errors.append(self._error(descriptor, "format", f"Field '{name}' must be a valid date", value))
        elif rules.format == "date-time" and not _parse_datetime(value):
            errors.append(self._error(descriptor, "format", f"Field '{name}' must be a valid date-time", value))

        return value, errors

    def _validate_number(self, descriptor: NumberParameter, value: Any) -> Tuple[Any, List[FieldError]]:
        name = descriptor.name
        type_error = self._error(
            descriptor, "type",
            f"Field '{name}' must be of type 'number', got '{type(value).__name__}'",
            value
        )

        if isinstance(value, bool):
            return value, [type_error]

        number = value
        if isinstance(value, str):
            try:
                number = int(value.strip())
            except ValueError:
                try:
                    number = float(value.strip())
                except ValueError:
                    return value, [type_error]

        if not isinstance(number, (int, float)) or (isinstance(number, float) and not math.isfinite(number)):
            return value, [type_error]

        errors: List[FieldError] = []
        rules = descriptor.validation
        if rules is not None:
            if rules.min is not None and number < rules.min:
                errors.append(self._error(
                    descriptor, "minimum",
                    f"Field '{name}' must be at least {rules.min:g}",
                    value
                ))
            if rules.max is not None and number > rules.max:
                errors.append(self._error(
                    descriptor, "maximum",
                    f"Field '{name}' must be at most {rules.max:g}",
                    value
                ))

        return number, errors

    def _validate_boolean(self, descriptor: BooleanParameter, value: Any) -> Tuple[Any, List[FieldError]]:
        if not isinstance(value, bool):
            return value, [self._error(
                descriptor, "type",
                f"Field '{descriptor.name}' must be of type 'boolean', got '{type(value).__name__}'",
                value
            )]
        return value, []

    def _validate_enum(self, descriptor: EnumParameter, value: Any) -> Tuple[Any, List[FieldError]]:
        allowed_values = descriptor.allowed_values
        if not allowed_values:
            return value, [self._error(
                descriptor, "schema",
                f"Enum parameter '{descriptor.name}' must have options defined"
            )]
        if value not in allowed_values:
            return value, [self._error(
                descriptor, "enum",
                f"Field '{descriptor.name}' must be one of: {', '.join(map(str, allowed_values))}",
                value
            )]
        return value, []

    def _validate_date(self, descriptor: DateParameter, value: Any) -> Tuple[Any, List[FieldError]]:
        if not isinstance(value, str) or not _parse_date(value):
            return value, [self._error(
                descriptor, "date",
                f"Field '{descriptor.name}' must be a valid date",
                value
            )]
        return value, []
