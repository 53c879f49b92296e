"""Pydantic schemas for action definitions and their input parameter descriptors"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from app.models.catalog import AuthType


StringFormat = Literal["email", "url", "date", "date-time"]

# Older descriptors used free-form type names; these map onto the closed set.
LEGACY_TYPE_MAP = {
    "string": "string",
    "text": "string",
    "number": "number",
    "integer": "number",
    "float": "number",
    "boolean": "boolean",
    "bool": "boolean",
    "enum": "enum",
    "select": "enum",
    "date": "date",
    "datetime": "date",
}


class ValidationRules(BaseModel):
    """Additional constraints attached to a parameter descriptor"""
    model_config = ConfigDict(extra="ignore")

    min: Optional[float] = Field(None, description="Minimum string length or numeric value")
    max: Optional[float] = Field(None, description="Maximum string length or numeric value")
    pattern: Optional[str] = Field(None, description="Regex a string value must match")
    format: Optional[StringFormat] = Field(None, description="Well-known string format")
    enum: Optional[List[str]] = Field(None, description="Allowed values (alternative to options)")
    message: Optional[str] = Field(None, description="Custom error message")


class _ParameterBase(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = Field(..., min_length=1, description="Machine-readable parameter name")
    required: bool = Field(default=False)
    label: Optional[str] = None
    description: Optional[str] = None
    validation: Optional[ValidationRules] = None
    visible_if: Optional[Dict[str, Any]] = Field(
        None,
        alias="visibleIf",
        description="JSONLogic rule over the raw inputs; the parameter is hidden when it is falsy"
    )


class StringParameter(_ParameterBase):
    type: Literal["string"] = "string"
    default: Optional[str] = None


class NumberParameter(_ParameterBase):
    type: Literal["number"] = "number"
    default: Optional[Union[int, float]] = None


class BooleanParameter(_ParameterBase):
    type: Literal["boolean"] = "boolean"
    default: Optional[bool] = None


class EnumParameter(_ParameterBase):
    type: Literal["enum"] = "enum"
    options: List[str] = Field(default_factory=list)
    default: Optional[str] = None

    @property
    def allowed_values(self) -> List[str]:
        if self.options:
            return self.options
        if self.validation and self.validation.enum:
            return self.validation.enum
        return []


class DateParameter(_ParameterBase):
    type: Literal["date"] = "date"
    default: Optional[str] = None


ParameterDescriptor = Annotated[
    Union[StringParameter, NumberParameter, BooleanParameter, EnumParameter, DateParameter],
    Field(discriminator="type")
]

_descriptor_list_adapter = TypeAdapter(List[ParameterDescriptor])


def normalize_descriptor(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert a stored descriptor into the closed descriptor format.

    Legacy descriptors carry loose type names and ``minimum``/``maximum``
    validation keys; unknown type names become ``string``.
    """
    descriptor = dict(raw)
    raw_type = str(descriptor.get("type", "string")).lower()
    descriptor["type"] = LEGACY_TYPE_MAP.get(raw_type, "string")

    validation = descriptor.get("validation")
    if isinstance(validation, dict):
        validation = dict(validation)
        if "minimum" in validation and "min" not in validation:
            validation["min"] = validation.pop("minimum")
        if "maximum" in validation and "max" not in validation:
            validation["max"] = validation.pop("maximum")
        if descriptor["type"] == "enum" and validation.get("enum") and not descriptor.get("options"):
            descriptor["options"] = list(validation["enum"])
        descriptor["validation"] = validation

    return descriptor


def parse_input_schema(raw_schema: Optional[List[Any]]) -> List[ParameterDescriptor]:
    """
    Parse an ordered list of stored descriptors.

    Raises:
        ValueError: If two descriptors share a name
        pydantic.ValidationError: If a descriptor is malformed
    """
    items = [
        normalize_descriptor(item) if isinstance(item, dict) else item
        for item in (raw_schema or [])
    ]
    descriptors = _descriptor_list_adapter.validate_python(items)

    seen = set()
    for descriptor in descriptors:
        if descriptor.name in seen:
            raise ValueError(f"Duplicate parameter name '{descriptor.name}' in input schema")
        seen.add(descriptor.name)

    return descriptors


class ToolDefinition(BaseModel):
    """Read-only view of a tool"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    org_id: str
    name: str
    base_url: str
    auth_type: AuthType = AuthType.NONE


class ActionDefinition(BaseModel):
    """Read-only view of an action, with its descriptors parsed"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    org_id: str
    key: str
    name: str
    tool_id: str
    method: str = "GET"
    endpoint: str
    headers: Dict[str, str] = Field(default_factory=dict)
    input_schema: List[Any] = Field(
        default_factory=list,
        description="Raw parameter descriptors as stored; parsed lazily by the validator"
    )

    @field_validator("method")
    @classmethod
    def normalize_method(cls, v: str) -> str:
        return v.upper()

    @field_validator("headers", mode="before")
    @classmethod
    def default_headers(cls, v: Any) -> Any:
        return v or {}

    @field_validator("input_schema", mode="before")
    @classmethod
    def default_schema(cls, v: Any) -> Any:
        return v or []
