"""
Shared test fixtures for the choice logic test suite.

Provides the bundled example forms and a small builder for choice
logic dicts in the stored (camelCase) shape.
"""

from pathlib import Path

import pytest

from choice_logic.core.loader import load_form_schema
from choice_logic.core.schema import FormSchema

SCHEMAS_DIR = Path(__file__).parent.parent / "schemas"


def logic(*rules: dict, action: str = "show", logic_type: str = "all", enabled: bool = True) -> dict:
    """Build a stored choice logic dict from (fieldId, operator, value) rule dicts."""
    return {
        "enabled": enabled,
        "actionType": action,
        "logicType": logic_type,
        "rules": list(rules),
    }


def rule(field_id: str, operator: str, value: str = "") -> dict:
    return {"fieldId": field_id, "operator": operator, "value": value}


@pytest.fixture
def pizza_form() -> FormSchema:
    """Load the pizza_order example form."""
    return load_form_schema(SCHEMAS_DIR / "pizza_order.json")


@pytest.fixture
def event_form() -> FormSchema:
    """Load the event_registration example form."""
    return load_form_schema(SCHEMAS_DIR / "event_registration.yaml")


@pytest.fixture
def scenario_form() -> FormSchema:
    """Field F1 (radio) whose choice "c" is shown only when dropdown F2 is "b"."""
    return FormSchema.model_validate({
        "id": "scenario",
        "fields": [
            {
                "id": "F1",
                "type": "radio",
                "isRequired": True,
                "choices": [
                    {"value": "a"},
                    {"value": "c", "conditionalLogic": logic(rule("F2", "is", "b"))},
                ],
            },
            {
                "id": "F2",
                "type": "select",
                "choices": [{"value": "a"}, {"value": "b"}, {"value": "c"}],
            },
        ],
    })
