"""
Choice logic rule models.

These Pydantic models define the rule configuration attached to a single
choice, in the same shape the form editor stores and the live runner
receives. Rule configuration is never fully trusted: it may come from
editor-produced JSON or hand-edited form meta. Construction therefore
backfills defaults instead of raising on partial or malformed input.
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from choice_logic.core.utils import is_truthy


# A field value is either a single string or an ordered list of strings
# (checkbox groups, multi-selects).
FieldValue = str | list[str]


# --- Enums ---


class Operator(str, Enum):
    """Comparison operators available to a rule.

    The values are the stable identifiers used both in stored
    configuration and in the live payload.
    """

    IS = "is"
    IS_NOT = "isnot"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    GREATER_THAN = ">"
    LESS_THAN = "<"
    GREATER_OR_EQUAL = ">="
    LESS_OR_EQUAL = "<="
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"


OPERATOR_LABELS: dict[Operator, str] = {
    Operator.IS: "is",
    Operator.IS_NOT: "is not",
    Operator.CONTAINS: "contains",
    Operator.STARTS_WITH: "starts with",
    Operator.ENDS_WITH: "ends with",
    Operator.GREATER_THAN: "greater than",
    Operator.LESS_THAN: "less than",
    Operator.GREATER_OR_EQUAL: "greater or equal",
    Operator.LESS_OR_EQUAL: "less or equal",
    Operator.IS_EMPTY: "is empty",
    Operator.IS_NOT_EMPTY: "is not empty",
}


class ActionType(str, Enum):
    """Whether matching conditions show or hide the choice."""

    SHOW = "show"
    HIDE = "hide"


class LogicType(str, Enum):
    """How rule results are combined: all must match, or any one."""

    ALL = "all"
    ANY = "any"


def parse_operator(value: Any) -> Operator | None:
    """Resolve a raw operator identifier, or None if it is not recognised."""
    if isinstance(value, Operator):
        return value
    try:
        return Operator(str(value).strip())
    except ValueError:
        return None


# --- Rule ---


class Rule(BaseModel):
    """One atomic condition against another field's value.

    A rule with an empty `field_id` is an unconfigured placeholder and
    never matches.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    field_id: str = Field(
        default="",
        alias="fieldId",
        description="ID of the trigger field (empty = not configured)",
    )
    operator: Operator | None = Field(
        default=Operator.IS,
        description="Comparison operator (None when the stored identifier is unknown)",
    )
    value: str = Field(
        default="",
        description="Literal comparison operand (ignored by emptiness operators)",
    )

    @field_validator("field_id", "value", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> str:
        """Stored ids and operands may arrive as numbers or null."""
        if value is None:
            return ""
        return str(value)

    @field_validator("operator", mode="before")
    @classmethod
    def coerce_operator(cls, value: Any) -> Operator | None:
        if value is None:
            return Operator.IS
        return parse_operator(value)

    @classmethod
    def from_untrusted(cls, data: Any) -> "Rule":
        """Build a rule from a partial payload; non-mappings become a placeholder."""
        if isinstance(data, Rule):
            return data
        if not isinstance(data, Mapping):
            return cls()
        return cls.model_validate(dict(data))


def placeholder_rules() -> list[Rule]:
    """The single empty rule the editor starts every new logic block with."""
    return [Rule()]


# --- Choice Logic ---


class ChoiceLogic(BaseModel):
    """The full conditional logic attached to one choice.

    Defaults mirror the editor: show the choice when all rules match.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    enabled: bool = Field(
        default=False,
        description="Whether the logic applies (disabled logic never hides anything)",
    )
    action_type: ActionType = Field(
        default=ActionType.SHOW,
        alias="actionType",
        description="Show or hide the choice when the conditions are met",
    )
    logic_type: LogicType = Field(
        default=LogicType.ALL,
        alias="logicType",
        description="Combine rule results with AND (all) or OR (any)",
    )
    rules: list[Rule] = Field(
        default_factory=placeholder_rules,
        description="Ordered list of rules",
    )

    @field_validator("enabled", mode="before")
    @classmethod
    def coerce_enabled(cls, value: Any) -> bool:
        return is_truthy(value)

    @field_validator("action_type", mode="before")
    @classmethod
    def coerce_action_type(cls, value: Any) -> ActionType:
        """Only an explicit "hide" inverts; anything else shows."""
        if isinstance(value, ActionType):
            return value
        return ActionType.HIDE if value == ActionType.HIDE.value else ActionType.SHOW

    @field_validator("logic_type", mode="before")
    @classmethod
    def coerce_logic_type(cls, value: Any) -> LogicType:
        """Missing means "all"; any other value than "all" combines with OR."""
        if isinstance(value, LogicType):
            return value
        if value is None or value == LogicType.ALL.value:
            return LogicType.ALL
        return LogicType.ANY

    @field_validator("rules", mode="before")
    @classmethod
    def coerce_rules(cls, value: Any) -> list[Any]:
        if value is None or not isinstance(value, (list, tuple)):
            return placeholder_rules()
        return [Rule.from_untrusted(item) for item in value]

    @classmethod
    def from_untrusted(cls, data: Any) -> "ChoiceLogic":
        """Build choice logic from a partial payload without ever raising.

        Args:
            data: Anything read from stored form meta or a wire payload.

        Returns:
            A fully defaulted ChoiceLogic. Non-mapping input yields
            disabled logic.
        """
        if isinstance(data, ChoiceLogic):
            return data
        if not isinstance(data, Mapping):
            return cls()
        return cls.model_validate(dict(data))

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the stored / wire shape (camelCase keys)."""
        return self.model_dump(mode="json", by_alias=True)
