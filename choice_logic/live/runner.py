"""
Live evaluation runner.

Keeps the choices of one rendered form instance in sync with its current
values. Field changes are debounced (only the latest trigger matters);
render, page navigation and field-level logic events evaluate right
away. Every pass reads one snapshot of the trigger values, evaluates each
enabled choice with the shared visibility evaluator and applies the
result to the form view.

After render and page navigation a selection-sanity pass unchecks any
checkable choice that is still selected while hidden.
"""

import logging
from enum import Enum

from choice_logic.core.logic_map import LogicMap
from choice_logic.core.schema import CHECKABLE_FIELD_TYPES, ChoiceFieldType
from choice_logic.core.visibility import ChoiceEvaluator, is_choice_visible, lookup_from_mapping
from choice_logic.live.debounce import Debouncer
from choice_logic.live.view import FormView

logger = logging.getLogger(__name__)

# Quiet period before a field change is evaluated (avoids a pass per keystroke)
DEFAULT_DEBOUNCE_SECONDS = 0.05


class RunnerState(str, Enum):
    """Where the runner is between triggers."""

    IDLE = "idle"
    PENDING = "pending"
    EVALUATING = "evaluating"


class LiveEvaluationRunner:
    """Evaluates choice logic for one rendered form instance.

    Trigger methods must be called from inside the running event loop.
    A runner over an empty logic map does nothing.

    Args:
        logic_map: The form's logic map.
        view: The rendered form's controls.
        debounce_seconds: Quiet period for field change triggers.
        evaluate: The choice evaluator, shared with the submission guard.
    """

    def __init__(
        self,
        logic_map: LogicMap,
        view: FormView,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        evaluate: ChoiceEvaluator = is_choice_visible,
    ):
        self.logic_map = logic_map
        self.view = view
        self._evaluate = evaluate
        self._debouncer = Debouncer(debounce_seconds)
        self._evaluating = False
        self.pass_count = 0

    @property
    def is_active(self) -> bool:
        return not self.logic_map.is_empty

    @property
    def state(self) -> RunnerState:
        if self._evaluating:
            return RunnerState.EVALUATING
        if self._debouncer.pending:
            return RunnerState.PENDING
        return RunnerState.IDLE

    # -----------------------------------------------------------------
    # Triggers
    # -----------------------------------------------------------------

    def start(self) -> None:
        """Initial pass on first display, clearing invalid pre-populated selections."""
        if not self.is_active:
            return
        self.evaluate_all()
        self.clear_hidden_selections()

    def on_field_change(self, field_id: str | None = None) -> None:
        """A value changed: schedule a debounced pass, replacing any pending one."""
        if not self.is_active:
            return
        logger.debug("Form %s: change on field %s, scheduling evaluation", self.logic_map.form_id, field_id)
        self._debouncer.schedule(self.evaluate_all)

    def on_render(self, form_id: str) -> None:
        """The form was (re-)rendered."""
        if not self._is_own_form(form_id):
            return
        self._debouncer.cancel()
        self.evaluate_all()
        self.clear_hidden_selections()

    def on_page_loaded(self, form_id: str, page: int | None = None) -> None:
        """A multi-page form navigated to another page."""
        if not self._is_own_form(form_id):
            return
        logger.debug("Form %s: page %s loaded", form_id, page)
        self._debouncer.cancel()
        self.evaluate_all()
        self.clear_hidden_selections()

    def on_conditional_logic(self, form_id: str) -> None:
        """The host recomputed its own field-level logic."""
        if not self._is_own_form(form_id):
            return
        self._debouncer.cancel()
        self.evaluate_all()

    async def wait_idle(self) -> None:
        """Wait for any pending debounced pass (and its follow-ups) to finish."""
        await self._debouncer.wait()

    def close(self) -> None:
        """Cancel any pending pass."""
        self._debouncer.cancel()

    # -----------------------------------------------------------------
    # Passes
    # -----------------------------------------------------------------

    def evaluate_all(self) -> dict[str, dict[str, bool]]:
        """Evaluate every enabled choice and apply the result to the view.

        Fields hidden by field-level logic are skipped entirely.

        Returns:
            {field_id: {choice_value: visible}} for the evaluated choices.
        """
        if not self.is_active:
            return {}

        self._evaluating = True
        try:
            snapshot = {
                field_id: self.view.get_field_value(field_id)
                for field_id in self.logic_map.referenced_field_ids()
            }
            lookup = lookup_from_mapping(snapshot)
            results: dict[str, dict[str, bool]] = {}

            for field_id, field_logic in self.logic_map.fields.items():
                if self.view.is_field_hidden(field_id):
                    continue

                for choice_value, logic in field_logic.choices.items():
                    if not logic.enabled:
                        continue

                    visible = self._evaluate(logic, lookup)
                    self._apply(field_id, field_logic.type, choice_value, visible)
                    results.setdefault(field_id, {})[choice_value] = visible

            self.pass_count += 1
            logger.debug("Form %s: evaluation pass %d: %s", self.logic_map.form_id, self.pass_count, results)
            return results
        finally:
            self._evaluating = False

    def clear_hidden_selections(self) -> list[tuple[str, str]]:
        """Uncheck checkable choices that are selected but hidden.

        Select options are already deselected when they are hidden.

        Returns:
            The (field_id, choice_value) pairs that were unchecked.
        """
        if not self.is_active:
            return []

        cleared = []
        for field_id, field_logic in self.logic_map.fields.items():
            if field_logic.type not in CHECKABLE_FIELD_TYPES:
                continue

            for choice_value in self.view.selected_choices(field_id):
                if self.view.is_choice_hidden(field_id, choice_value):
                    self.view.set_choice_selected(field_id, choice_value, False)
                    cleared.append((field_id, choice_value))

        if cleared:
            logger.debug("Form %s: cleared hidden selections %s", self.logic_map.form_id, cleared)
            self.on_field_change()

        return cleared

    # -----------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------

    def _apply(self, field_id: str, field_type: str, choice_value: str, visible: bool) -> None:
        match field_type:
            case ChoiceFieldType.RADIO | ChoiceFieldType.CHECKBOX | ChoiceFieldType.MULTI_CHOICE:
                self.view.set_choice_hidden(field_id, choice_value, not visible)

            case ChoiceFieldType.SELECT | ChoiceFieldType.MULTISELECT:
                self.view.set_choice_hidden(field_id, choice_value, not visible)
                self.view.set_option_disabled(field_id, choice_value, not visible)

                if not visible and self.view.is_choice_selected(field_id, choice_value):
                    self.view.set_choice_selected(field_id, choice_value, False)
                    # Dependent choices must see the cleared value
                    self.on_field_change(field_id)

    def _is_own_form(self, form_id: str) -> bool:
        return self.is_active and str(form_id) == self.logic_map.form_id
