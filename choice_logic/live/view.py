"""
Live form view.

The live runner never touches a concrete UI toolkit. It reads values and
toggles choice controls through the `FormView` protocol; a browser bridge,
a TUI or a test double can implement it. `InMemoryFormView` is the
reference implementation, used by the API's render sessions and the tests.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from pydantic import BaseModel, Field

from choice_logic.core.rules import FieldValue
from choice_logic.core.schema import MULTI_VALUE_FIELD_TYPES, ChoiceFieldType, FormSchema

logger = logging.getLogger(__name__)


class FormView(Protocol):
    """Read/write access to the rendered controls of one form instance."""

    def get_field_value(self, field_id: str) -> FieldValue: ...

    def is_field_hidden(self, field_id: str) -> bool: ...

    def set_choice_hidden(self, field_id: str, choice_value: str, hidden: bool) -> None: ...

    def is_choice_hidden(self, field_id: str, choice_value: str) -> bool: ...

    def set_option_disabled(self, field_id: str, choice_value: str, disabled: bool) -> None: ...

    def is_choice_selected(self, field_id: str, choice_value: str) -> bool: ...

    def set_choice_selected(self, field_id: str, choice_value: str, selected: bool) -> None: ...

    def selected_choices(self, field_id: str) -> list[str]: ...


# --- In-memory controls ---


class ChoiceControl(BaseModel):
    """State of one rendered choice (radio/checkbox item or <option>)."""

    value: str
    selected: bool = False
    hidden: bool = False
    disabled: bool = False


class FieldControl(BaseModel):
    """State of one rendered field."""

    field_id: str
    type: str
    value: str = ""
    hidden: bool = False
    choices: list[ChoiceControl] | None = None

    def get_choice(self, choice_value: str) -> ChoiceControl | None:
        for choice in self.choices or []:
            if choice.value == choice_value:
                return choice
        return None


class InMemoryFormView:
    """A form view holding control state in memory.

    Args:
        form: The host form definition to render.
        values: Initial (pre-populated) values keyed by field ID.
        hidden_fields: IDs of fields hidden by field-level logic.
    """

    def __init__(
        self,
        form: FormSchema,
        values: Mapping[str, Any] | None = None,
        hidden_fields: Iterable[str] = (),
    ):
        self.form_id = form.form_id
        self._controls: dict[str, FieldControl] = {}

        for field in form.fields:
            choices = None
            if field.choices is not None:
                choices = [ChoiceControl(value=c.value) for c in field.choices]
            self._controls[field.id] = FieldControl(
                field_id=field.id,
                type=field.type,
                choices=choices,
            )

        for field_id, value in (values or {}).items():
            self.set_field_value(field_id, value)

        self.set_hidden_fields(hidden_fields)

    # -----------------------------------------------------------------
    # Host-side mutations (user input, field-level logic)
    # -----------------------------------------------------------------

    def set_field_value(self, field_id: str, value: Any) -> None:
        """Apply a user input to a field, as the UI control would.

        Choice fields select the matching choice(s); single-choice fields
        (radio, select) keep only the last of several values.
        """
        control = self._controls.get(field_id)
        if control is None:
            logger.debug("Form %s has no field %s, ignoring value", self.form_id, field_id)
            return

        if control.choices is None:
            control.value = "" if value is None else str(value)
            return

        if value is None:
            wanted: list[str] = []
        elif isinstance(value, (list, tuple)):
            wanted = [str(v) for v in value]
        else:
            wanted = [str(value)]

        if control.type not in MULTI_VALUE_FIELD_TYPES and len(wanted) > 1:
            logger.debug(
                "Field %s (%s) takes one value, keeping %r of %r", field_id, control.type, wanted[-1], wanted
            )
            wanted = wanted[-1:]

        known = {choice.value for choice in control.choices}
        unknown = [v for v in wanted if v not in known]
        if unknown:
            logger.debug("Field %s has no choice(s) %r, ignoring them", field_id, unknown)

        for choice in control.choices:
            choice.selected = choice.value in wanted

    def set_hidden_fields(self, hidden_fields: Iterable[str]) -> None:
        """Replace the field-level hidden state."""
        hidden = set(hidden_fields)
        for field_id, control in self._controls.items():
            control.hidden = field_id in hidden

    # -----------------------------------------------------------------
    # FormView protocol
    # -----------------------------------------------------------------

    def get_field_value(self, field_id: str) -> FieldValue:
        """Read a field's current value.

        Radio and select fields return the selected value or "";
        checkbox, multi choice and multiselect fields return the list of
        selected values ([] if none); other fields return their text.
        Unknown fields read as "".
        """
        control = self._controls.get(field_id)
        if control is None:
            return ""

        if control.choices is None:
            return control.value

        selected = [c.value for c in control.choices if c.selected]

        if control.type in MULTI_VALUE_FIELD_TYPES:
            return selected

        return selected[0] if selected else ""

    def is_field_hidden(self, field_id: str) -> bool:
        # Fields that are not rendered count as hidden.
        control = self._controls.get(field_id)
        return control is None or control.hidden

    def set_choice_hidden(self, field_id: str, choice_value: str, hidden: bool) -> None:
        choice = self._get_choice(field_id, choice_value)
        if choice is not None:
            choice.hidden = hidden

    def is_choice_hidden(self, field_id: str, choice_value: str) -> bool:
        choice = self._get_choice(field_id, choice_value)
        return choice is not None and choice.hidden

    def set_option_disabled(self, field_id: str, choice_value: str, disabled: bool) -> None:
        choice = self._get_choice(field_id, choice_value)
        if choice is not None:
            choice.disabled = disabled

    def is_choice_selected(self, field_id: str, choice_value: str) -> bool:
        choice = self._get_choice(field_id, choice_value)
        return choice is not None and choice.selected

    def set_choice_selected(self, field_id: str, choice_value: str, selected: bool) -> None:
        control = self._controls.get(field_id)
        choice = self._get_choice(field_id, choice_value)
        if control is None or choice is None:
            return

        if selected and control.type in (ChoiceFieldType.RADIO, ChoiceFieldType.SELECT):
            for other in control.choices or []:
                other.selected = False

        choice.selected = selected

    def selected_choices(self, field_id: str) -> list[str]:
        control = self._controls.get(field_id)
        if control is None:
            return []
        return [c.value for c in control.choices or [] if c.selected]

    # -----------------------------------------------------------------
    # Inspection
    # -----------------------------------------------------------------

    def get_control(self, field_id: str) -> FieldControl | None:
        return self._controls.get(field_id)

    def choice_states(self) -> dict[str, dict[str, Any]]:
        """Snapshot of every field's rendered state, keyed by field ID."""
        states: dict[str, dict[str, Any]] = {}
        for field_id, control in self._controls.items():
            state: dict[str, Any] = {
                "type": control.type,
                "hidden": control.hidden,
                "value": self.get_field_value(field_id),
            }
            if control.choices is not None:
                state["choices"] = {
                    c.value: {"hidden": c.hidden, "disabled": c.disabled, "selected": c.selected}
                    for c in control.choices
                }
            states[field_id] = state
        return states

    def _get_choice(self, field_id: str, choice_value: str) -> ChoiceControl | None:
        control = self._controls.get(field_id)
        if control is None:
            return None
        return control.get_choice(choice_value)
