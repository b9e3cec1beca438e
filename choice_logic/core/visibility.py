"""
Deterministic choice visibility evaluator.

This is the one evaluation algorithm shared by the live runner and the
submission guard. It decides whether a single choice is visible from its
`ChoiceLogic` and a field value lookup, and never keeps state between
calls: values may change between evaluations.
"""

from collections.abc import Callable, Mapping
from typing import Any

from choice_logic.core.comparator import compare
from choice_logic.core.rules import ActionType, ChoiceLogic, FieldValue, LogicType, Rule
from choice_logic.core.schema import ChoiceField

# Returns the current value of a field by ID ("" when unknown).
FieldValueLookup = Callable[[str], FieldValue]

ChoiceEvaluator = Callable[[ChoiceLogic, FieldValueLookup], bool]


def lookup_from_mapping(values: Mapping[str, Any]) -> FieldValueLookup:
    """Wrap a plain {field_id: value} mapping as a field value lookup."""

    def lookup(field_id: str) -> FieldValue:
        value = values.get(field_id)
        return "" if value is None else value

    return lookup


def _as_lookup(values: FieldValueLookup | Mapping[str, Any]) -> FieldValueLookup:
    if isinstance(values, Mapping):
        return lookup_from_mapping(values)
    return values


def is_choice_visible(logic: ChoiceLogic | None, values: FieldValueLookup | Mapping[str, Any]) -> bool:
    """Determine if a choice should be visible given the current values.

    Disabled (or absent) logic never hides a choice. Otherwise every rule
    is evaluated, the results are combined with AND (`all`) or OR (`any`),
    and the result is inverted for `hide` logic.

    Args:
        logic: The choice's conditional logic.
        values: A field value lookup, or a plain mapping of field values.

    Returns:
        True if the choice should be visible, False otherwise.
    """
    if logic is None or not logic.enabled:
        return True

    if not logic.rules:
        return True

    lookup = _as_lookup(values)
    results = [evaluate_rule(rule, lookup) for rule in logic.rules]

    if logic.logic_type == LogicType.ALL:
        conditions_met = all(results)
    else:
        conditions_met = any(results)

    if logic.action_type == ActionType.HIDE:
        return not conditions_met

    return conditions_met


def evaluate_rule(rule: Rule, values: FieldValueLookup | Mapping[str, Any]) -> bool:
    """Evaluate a single rule against the current values.

    Args:
        rule: The rule to evaluate.
        values: A field value lookup, or a plain mapping of field values.

    Returns:
        True if the rule passes. Unconfigured rules (empty field ID)
        never pass.
    """
    if not rule.field_id:
        return False

    field_value = _as_lookup(values)(rule.field_id)
    return compare(field_value, rule.operator, rule.value)


def get_visible_choices(
    field: ChoiceField,
    values: FieldValueLookup | Mapping[str, Any],
    evaluate: ChoiceEvaluator = is_choice_visible,
) -> list[str]:
    """Return the values of all currently visible choices of a field.

    Args:
        field: A choice field.
        values: A field value lookup, or a plain mapping of field values.
        evaluate: The choice evaluator to apply.

    Returns:
        Visible choice values, in choice order.
    """
    if not field.choices:
        return []

    lookup = _as_lookup(values)
    visible = []

    for choice in field.choices:
        logic = choice.conditional_logic
        if logic is None or not logic.enabled or evaluate(logic, lookup):
            visible.append(choice.value)

    return visible
