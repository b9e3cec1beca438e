"""
Rule comparator.

Compares a field value against a rule operand. Scalar values are matched
case- and whitespace-insensitively, multi-value fields (checkbox groups,
multi-selects) are matched element-wise. The comparator is total: an
unsupported operator for the value shape, or a non-numeric operand for a
numeric operator, resolves to False instead of raising.
"""

from collections.abc import Callable, Sequence
from typing import Any

from choice_logic.core.rules import FieldValue, Operator, parse_operator
from choice_logic.core.utils import normalize, parse_number


def compare(field_value: FieldValue | None, operator: Operator | str | None, rule_value: Any) -> bool:
    """Compare a field value against a rule value with the given operator.

    Args:
        field_value: The trigger field's current value, a string or a
            list of strings.
        operator: The rule operator (an Operator or its identifier).
        rule_value: The rule's literal operand.

    Returns:
        True if the comparison passes, False otherwise.
    """
    if operator is not None:
        operator = parse_operator(operator)

    if isinstance(field_value, (list, tuple)):
        return _compare_sequence(field_value, operator, rule_value)

    return _compare_scalar(field_value, operator, rule_value)


def _compare_scalar(field_value: Any, operator: Operator | None, rule_value: Any) -> bool:
    val = normalize(field_value)
    target = normalize(rule_value)

    match operator:
        case Operator.IS:
            return val == target

        case Operator.IS_NOT:
            return val != target

        # An empty target matches every value for the three substring
        # operators.
        case Operator.CONTAINS:
            return target in val

        case Operator.STARTS_WITH:
            return val.startswith(target)

        case Operator.ENDS_WITH:
            return val.endswith(target)

        # Numeric operators compare the raw operands, not the normalized ones
        case Operator.GREATER_THAN:
            return _compare_numbers(field_value, rule_value, lambda a, b: a > b)

        case Operator.LESS_THAN:
            return _compare_numbers(field_value, rule_value, lambda a, b: a < b)

        case Operator.GREATER_OR_EQUAL:
            return _compare_numbers(field_value, rule_value, lambda a, b: a >= b)

        case Operator.LESS_OR_EQUAL:
            return _compare_numbers(field_value, rule_value, lambda a, b: a <= b)

        case Operator.IS_EMPTY:
            return val == ""

        case Operator.IS_NOT_EMPTY:
            return val != ""

        case None:
            return False

    return False


def _compare_sequence(field_values: Sequence[Any], operator: Operator | None, rule_value: Any) -> bool:
    normalized = [normalize(v) for v in field_values]
    target = normalize(rule_value)

    match operator:
        case Operator.IS:
            return target in normalized

        case Operator.IS_NOT:
            return target not in normalized

        case Operator.CONTAINS:
            return any(target in v for v in normalized)

        case Operator.IS_EMPTY:
            return not any(v != "" for v in normalized)

        case Operator.IS_NOT_EMPTY:
            return any(v != "" for v in normalized)

        # No single "starts with" or numeric reading of a multi-value field
        case (
            Operator.STARTS_WITH
            | Operator.ENDS_WITH
            | Operator.GREATER_THAN
            | Operator.LESS_THAN
            | Operator.GREATER_OR_EQUAL
            | Operator.LESS_OR_EQUAL
        ):
            return False

        case None:
            return False

    return False


def _compare_numbers(
    field_value: Any,
    rule_value: Any,
    comparator: Callable[[float, float], bool],
) -> bool:
    """Compare two raw values numerically; False if either is not a number."""
    left = parse_number(field_value)
    right = parse_number(rule_value)

    if left is None or right is None:
        return False

    return comparator(left, right)
