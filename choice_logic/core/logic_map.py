"""
Logic map builder.

Projects a full form schema down to the fields and choices that carry
enabled choice logic. The resulting payload is everything the live runner
needs; an empty map means there is nothing to evaluate on that form.
"""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from choice_logic.core.rules import ChoiceLogic
from choice_logic.core.schema import DEFAULT_MESSAGES, SUPPORTED_FIELD_TYPES, ChoiceField, FormSchema

logger = logging.getLogger(__name__)


class FieldLogic(BaseModel):
    """Enabled choice logic of one field, keyed by choice value."""

    type: str
    choices: dict[str, ChoiceLogic] = Field(default_factory=dict)


class LogicMap(BaseModel):
    """Per-form payload delivered to the live runner.

    Rebuilt wholesale on every render, never patched in place.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    form_id: str = Field(..., alias="formId")
    fields: dict[str, FieldLogic] = Field(default_factory=dict)
    i18n: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_MESSAGES))

    @field_validator("form_id", mode="before")
    @classmethod
    def coerce_form_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def is_empty(self) -> bool:
        return not self.fields

    def referenced_field_ids(self) -> set[str]:
        """IDs of all trigger fields referenced by any rule in the map."""
        return {
            rule.field_id
            for field_logic in self.fields.values()
            for logic in field_logic.choices.values()
            for rule in logic.rules
            if rule.field_id
        }

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the wire shape (camelCase keys)."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "LogicMap":
        return cls.model_validate(data)


def build_field_logic(field: ChoiceField) -> FieldLogic | None:
    """Collect the enabled choice logic of a single field.

    Returns None for unsupported fields and fields where no choice has
    enabled logic.
    """
    if field.type not in SUPPORTED_FIELD_TYPES or field.choices is None:
        return None

    choices: dict[str, ChoiceLogic] = {}
    for choice in field.choices or []:
        logic = choice.conditional_logic
        if logic is None or not logic.enabled:
            continue
        choices[choice.value] = logic

    if not choices:
        return None

    return FieldLogic(type=field.type, choices=choices)


def build_logic_map(form: FormSchema, messages: dict[str, str] | None = None) -> LogicMap:
    """Build the logic map for a form.

    Args:
        form: The host form definition.
        messages: Optional override for the user-facing messages.

    Returns:
        A LogicMap containing only fields and choices with enabled logic.
    """
    fields: dict[str, FieldLogic] = {}

    for field in form.fields:
        field_logic = build_field_logic(field)
        if field_logic is not None:
            fields[field.id] = field_logic

    logger.debug(
        "Built logic map for form %s: %d field(s) with choice logic",
        form.form_id,
        len(fields),
    )

    return LogicMap(
        form_id=form.form_id,
        fields=fields,
        i18n=dict(messages or DEFAULT_MESSAGES),
    )
