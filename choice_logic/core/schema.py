"""
Host form schema adapter.

The host form system owns the field/choice schema. The engine only reads
it through the small `ChoiceField` protocol below; the Pydantic models in
this module are the concrete adapter used for JSON/YAML form definitions
posted to the API or loaded from disk.
"""

from collections.abc import Sequence
from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from choice_logic.core.rules import ChoiceLogic
from choice_logic.core.utils import is_truthy


# --- Field type tags ---


class ChoiceFieldType(str, Enum):
    """Field types whose individual choices can carry conditional logic."""

    RADIO = "radio"
    CHECKBOX = "checkbox"
    SELECT = "select"
    MULTISELECT = "multiselect"
    MULTI_CHOICE = "multi_choice"


SUPPORTED_FIELD_TYPES = frozenset(t.value for t in ChoiceFieldType)

# Field types whose value can be referenced by a rule's field_id.
TRIGGER_FIELD_TYPES = frozenset({
    "text",
    "textarea",
    "select",
    "multiselect",
    "radio",
    "checkbox",
    "number",
    "date",
    "hidden",
    "calculation",
    "product",
    "total",
    "quantity",
    "price",
    "multi_choice",
})

# Choice fields submitted as one sub-input per choice (input_{id}_{n}).
SUB_INPUT_FIELD_TYPES = frozenset({ChoiceFieldType.CHECKBOX.value, ChoiceFieldType.MULTI_CHOICE.value})

# Choice fields rendered as checkable controls rather than <option>s.
CHECKABLE_FIELD_TYPES = frozenset({
    ChoiceFieldType.RADIO.value,
    ChoiceFieldType.CHECKBOX.value,
    ChoiceFieldType.MULTI_CHOICE.value,
})

# Choice fields holding several values at once.
MULTI_VALUE_FIELD_TYPES = frozenset({
    ChoiceFieldType.CHECKBOX.value,
    ChoiceFieldType.MULTISELECT.value,
    ChoiceFieldType.MULTI_CHOICE.value,
})

# User-facing messages shipped to the live runner and used by the
# submission guard.
DEFAULT_MESSAGES: dict[str, str] = {
    "invalidSelection": "Please select a valid option.",
    "noOptionsAvailable": "No options available. Please adjust your previous selections.",
}


# --- Read-only capability the engine depends on ---


class ChoiceOption(Protocol):
    value: str
    conditional_logic: ChoiceLogic | None


class ChoiceField(Protocol):
    """Minimal view of a host field: its id, type tag and choices."""

    id: str
    type: str
    is_required: bool
    choices: Sequence[ChoiceOption] | None


# --- Concrete adapter models ---


def _coerce_id(value: Any) -> Any:
    # Host ids are frequently integers.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class Choice(BaseModel):
    """One selectable option of a choice field."""

    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(default="", description="Label shown to the user")
    value: str = Field(..., description="Submitted value of the choice")
    conditional_logic: ChoiceLogic | None = Field(
        default=None,
        alias="conditionalLogic",
        description="Choice-level visibility logic (always visible if absent)",
    )

    @model_validator(mode="before")
    @classmethod
    def default_value_to_text(cls, data: Any) -> Any:
        """Choices without an explicit value submit their label."""
        if isinstance(data, dict) and data.get("value") is None:
            data = {**data, "value": data.get("text", "")}
        return data

    @field_validator("text", "value", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("conditional_logic", mode="before")
    @classmethod
    def parse_logic(cls, value: Any) -> ChoiceLogic | None:
        if value is None:
            return None
        return ChoiceLogic.from_untrusted(value)

    @property
    def has_enabled_logic(self) -> bool:
        return self.conditional_logic is not None and self.conditional_logic.enabled


class FormField(BaseModel):
    """Definition of a single host form field."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(
        ...,
        min_length=1,
        description="Unique field identifier",
    )
    type: str = Field(
        ...,
        min_length=1,
        description="Host field type tag (radio, checkbox, text, ...)",
    )
    label: str = Field(default="", description="Field label")
    is_required: bool = Field(
        default=False,
        alias="isRequired",
        description="Whether the host requires an answer for this field",
    )
    choices: list[Choice] | None = Field(
        default=None,
        description="Selectable options (choice fields only)",
    )

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        return _coerce_id(value)

    @field_validator("is_required", mode="before")
    @classmethod
    def coerce_required(cls, value: Any) -> bool:
        return is_truthy(value)

    @property
    def supports_choice_logic(self) -> bool:
        """True for supported choice fields that actually define choices."""
        return self.type in SUPPORTED_FIELD_TYPES and self.choices is not None

    @property
    def is_trigger(self) -> bool:
        """True if rules may reference this field."""
        return self.type in TRIGGER_FIELD_TYPES


class FormSchema(BaseModel):
    """A host form definition: id, title and fields."""

    model_config = ConfigDict(populate_by_name=True)

    form_id: str = Field(
        ...,
        alias="id",
        min_length=1,
        description="Unique form identifier",
    )
    title: str = Field(default="", description="Form title")
    fields: list[FormField] = Field(
        default_factory=list,
        description="Form fields in display order",
    )

    @field_validator("form_id", mode="before")
    @classmethod
    def coerce_form_id(cls, value: Any) -> Any:
        return _coerce_id(value)

    @model_validator(mode="after")
    def validate_unique_field_ids(self) -> "FormSchema":
        """Field IDs must be unique within a form."""
        seen = set()
        for f in self.fields:
            if f.id in seen:
                raise ValueError(f"Duplicate field ID: '{f.id}'")
            seen.add(f.id)
        return self

    def get_field(self, field_id: str) -> FormField | None:
        """Look up a field by its ID."""
        for f in self.fields:
            if f.id == field_id:
                return f
        return None

    def trigger_fields(self) -> list[FormField]:
        """Fields whose values rules may reference."""
        return [f for f in self.fields if f.is_trigger]
