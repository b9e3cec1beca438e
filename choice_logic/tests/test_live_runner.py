"""
Tests for the live evaluation runner, its debouncer and the in-memory view.

Tests cover:
- Initial pass on start, including the selection-sanity pass
- Debounced field changes: coalescing and stale-pass cancellation
- Select / multiselect options disabled and deselected when hidden
- Deselection re-triggers evaluation for dependent choices
- Immediate render / page / field-logic events
- Fields hidden by field-level logic are skipped
- Empty logic maps and foreign form IDs do nothing
- One value snapshot per pass
- Runner states (idle, pending, evaluating)
- Debug logs for inputs the view drops
"""

import asyncio
import logging

import pytest

from choice_logic.core.logic_map import build_logic_map
from choice_logic.core.schema import FormSchema
from choice_logic.live.debounce import Debouncer
from choice_logic.live.runner import LiveEvaluationRunner, RunnerState
from choice_logic.live.view import InMemoryFormView

DEBOUNCE = 0.01


def make_runner(form: FormSchema, values=None, hidden_fields=(), **kwargs):
    view = InMemoryFormView(form, values=values, hidden_fields=hidden_fields)
    runner = LiveEvaluationRunner(build_logic_map(form), view, debounce_seconds=DEBOUNCE, **kwargs)
    return runner, view


def choice_state(view: InMemoryFormView, field_id: str, value: str):
    return view.get_control(field_id).get_choice(value)


class CountingView(InMemoryFormView):
    """Counts value reads."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.reads: list[str] = []

    def get_field_value(self, field_id):
        self.reads.append(field_id)
        return super().get_field_value(field_id)


# =============================================================
# Test: In-memory view
# =============================================================


class TestInMemoryFormView:
    """Reference FormView behavior."""

    def test_multi_value_fields_read_as_lists(self, pizza_form):
        view = InMemoryFormView(pizza_form)
        assert view.get_field_value("3") == []
        assert view.get_field_value("5") == []

    def test_single_value_fields_read_as_strings(self, pizza_form):
        view = InMemoryFormView(pizza_form, values={"2": "thin", "4": 7})
        assert view.get_field_value("1") == ""
        assert view.get_field_value("2") == "thin"
        assert view.get_field_value("4") == "7"

    def test_unknown_field(self, pizza_form):
        view = InMemoryFormView(pizza_form)
        assert view.get_field_value("99") == ""
        assert view.is_field_hidden("99") is True

    def test_single_choice_keeps_last_value(self, pizza_form):
        view = InMemoryFormView(pizza_form, values={"1": ["small", "large"]})
        assert view.get_field_value("1") == "large"

    def test_dropped_values_are_logged(self, pizza_form, caplog):
        view = InMemoryFormView(pizza_form)
        with caplog.at_level(logging.DEBUG, logger="choice_logic.live.view"):
            view.set_field_value("1", ["small", "large"])
            view.set_field_value("2", "deep_dish")
            view.set_field_value("99", "x")
        assert "keeping 'large'" in caplog.text
        assert "no choice(s) ['deep_dish']" in caplog.text
        assert "has no field 99" in caplog.text
        assert view.get_field_value("2") == ""

    def test_radio_selection_is_exclusive(self, pizza_form):
        view = InMemoryFormView(pizza_form, values={"2": "thin"})
        view.set_choice_selected("2", "regular", True)
        assert view.selected_choices("2") == ["regular"]

    def test_checkbox_selection_accumulates(self, pizza_form):
        view = InMemoryFormView(pizza_form, values={"3": ["pepperoni"]})
        view.set_choice_selected("3", "mushrooms", True)
        assert view.get_field_value("3") == ["pepperoni", "mushrooms"]

    def test_hidden_fields(self, pizza_form):
        view = InMemoryFormView(pizza_form, hidden_fields=["2"])
        assert view.is_field_hidden("2") is True
        view.set_hidden_fields([])
        assert view.is_field_hidden("2") is False

    def test_choice_states(self, scenario_form):
        view = InMemoryFormView(scenario_form, values={"F2": "b"})
        states = view.choice_states()
        assert states["F2"]["value"] == "b"
        assert states["F1"]["choices"]["c"] == {"hidden": False, "disabled": False, "selected": False}


# =============================================================
# Test: Debouncer
# =============================================================


class TestDebouncer:
    """Cancel-and-restart timer."""

    @pytest.mark.asyncio
    async def test_only_latest_call_runs(self):
        calls = []
        debouncer = Debouncer(DEBOUNCE)
        for i in range(3):
            debouncer.schedule(lambda i=i: calls.append(i))
        await debouncer.wait()
        assert calls == [2]
        assert debouncer.pending is False

    @pytest.mark.asyncio
    async def test_cancel(self):
        calls = []
        debouncer = Debouncer(DEBOUNCE)
        debouncer.schedule(lambda: calls.append(1))
        assert debouncer.pending is True
        debouncer.cancel()
        await asyncio.sleep(DEBOUNCE * 3)
        assert calls == []

    @pytest.mark.asyncio
    async def test_wait_follows_rescheduled_calls(self):
        calls = []
        debouncer = Debouncer(DEBOUNCE)

        def first():
            calls.append("first")
            debouncer.schedule(lambda: calls.append("second"))

        debouncer.schedule(first)
        await debouncer.wait()
        assert calls == ["first", "second"]

    @pytest.mark.asyncio
    async def test_callback_errors_are_logged(self, caplog):
        debouncer = Debouncer(0)
        with caplog.at_level(logging.ERROR, logger="choice_logic.live.debounce"):
            debouncer.schedule(lambda: 1 / 0)
            await debouncer.wait()
        assert "Debounced callback failed" in caplog.text

    @pytest.mark.asyncio
    async def test_wait_without_pending_call(self):
        await Debouncer(DEBOUNCE).wait()


# =============================================================
# Test: Initial pass
# =============================================================


class TestStart:
    """First display of the form."""

    @pytest.mark.asyncio
    async def test_start_applies_visibility(self, pizza_form):
        runner, view = make_runner(pizza_form, values={"1": "medium"})
        runner.start()
        assert choice_state(view, "2", "stuffed").hidden is True
        assert choice_state(view, "3", "extra_cheese").hidden is False
        platter = choice_state(view, "5", "party_platter")
        assert platter.hidden is True
        assert platter.disabled is True
        assert runner.pass_count == 1
        assert runner.state == RunnerState.IDLE

    @pytest.mark.asyncio
    async def test_radio_choices_are_hidden_not_disabled(self, pizza_form):
        runner, view = make_runner(pizza_form, values={"1": "small"})
        runner.start()
        assert choice_state(view, "2", "stuffed").disabled is False

    @pytest.mark.asyncio
    async def test_start_clears_hidden_radio_selection(self, pizza_form):
        runner, view = make_runner(pizza_form, values={"1": "small", "2": "stuffed"})
        runner.start()
        assert view.get_field_value("2") == ""
        # The cleared value is re-evaluated for dependent choices
        assert runner.state == RunnerState.PENDING
        await runner.wait_idle()
        assert runner.pass_count == 2

    @pytest.mark.asyncio
    async def test_start_clears_hidden_checkbox_selection(self, pizza_form):
        runner, view = make_runner(
            pizza_form,
            values={"1": "large", "2": "stuffed", "3": ["pepperoni", "extra_cheese"]},
        )
        runner.start()
        assert view.get_field_value("3") == ["pepperoni"]
        assert view.get_field_value("2") == "stuffed"
        await runner.wait_idle()

    @pytest.mark.asyncio
    async def test_start_with_valid_selections_schedules_nothing(self, pizza_form):
        runner, view = make_runner(pizza_form, values={"1": "large", "2": "stuffed"})
        runner.start()
        assert runner.state == RunnerState.IDLE
        assert view.get_field_value("2") == "stuffed"


# =============================================================
# Test: Field changes
# =============================================================


class TestFieldChanges:
    """Debounced evaluation on value changes."""

    @pytest.mark.asyncio
    async def test_change_is_debounced(self, pizza_form):
        runner, view = make_runner(pizza_form, values={"1": "medium"})
        runner.start()

        view.set_field_value("1", "large")
        runner.on_field_change("1")
        assert runner.state == RunnerState.PENDING
        assert choice_state(view, "2", "stuffed").hidden is True

        await runner.wait_idle()
        assert choice_state(view, "2", "stuffed").hidden is False
        assert runner.state == RunnerState.IDLE

    @pytest.mark.asyncio
    async def test_burst_of_changes_runs_one_pass(self, pizza_form):
        runner, view = make_runner(pizza_form)
        runner.start()

        for guests in ("1", "12", "123"):
            view.set_field_value("4", guests)
            runner.on_field_change("4")
        await runner.wait_idle()

        assert runner.pass_count == 2
        assert choice_state(view, "5", "party_platter").hidden is False

    @pytest.mark.asyncio
    async def test_stale_pass_never_applies(self, pizza_form):
        runner, view = make_runner(pizza_form, values={"1": "medium"})
        runner.start()

        view.set_field_value("1", "large")
        runner.on_field_change("1")
        view.set_field_value("1", "small")
        runner.on_field_change("1")
        await runner.wait_idle()

        assert choice_state(view, "2", "stuffed").hidden is True
        assert runner.pass_count == 2

    @pytest.mark.asyncio
    async def test_change_does_not_uncheck_checkable_choices(self, pizza_form):
        runner, view = make_runner(pizza_form, values={"1": "large", "2": "stuffed"})
        runner.start()

        view.set_field_value("1", "medium")
        runner.on_field_change("1")
        await runner.wait_idle()

        assert choice_state(view, "2", "stuffed").hidden is True
        assert view.is_choice_selected("2", "stuffed") is True

    @pytest.mark.asyncio
    async def test_hidden_multiselect_option_deselected(self, pizza_form):
        runner, view = make_runner(pizza_form, values={"4": "12", "5": ["fries", "party_platter"]})
        runner.start()
        assert view.get_field_value("5") == ["fries", "party_platter"]

        view.set_field_value("4", "1")
        runner.on_field_change("4")
        await runner.wait_idle()

        platter = choice_state(view, "5", "party_platter")
        assert (platter.hidden, platter.disabled, platter.selected) == (True, True, False)
        assert view.get_field_value("5") == ["fries"]
        # The deselection scheduled a follow-up pass
        assert runner.pass_count == 3

    @pytest.mark.asyncio
    async def test_hidden_select_option_deselected(self, event_form):
        runner, view = make_runner(
            event_form,
            values={"attendee_type": "speaker", "company": "Acme", "dinner": "company_table"},
        )
        runner.start()
        assert view.get_field_value("dinner") == "company_table"

        view.set_field_value("company", "")
        runner.on_field_change("company")
        await runner.wait_idle()

        assert view.get_field_value("dinner") == ""
        assert choice_state(view, "dinner", "company_table").disabled is True

    @pytest.mark.asyncio
    async def test_option_re_enabled_when_visible_again(self, event_form):
        runner, view = make_runner(event_form, values={"attendee_type": "speaker"})
        runner.start()
        assert choice_state(view, "dinner", "company_table").disabled is True

        view.set_field_value("company", "Acme")
        runner.on_field_change("company")
        await runner.wait_idle()

        option = choice_state(view, "dinner", "company_table")
        assert (option.hidden, option.disabled) == (False, False)


# =============================================================
# Test: Immediate events
# =============================================================


class TestImmediateEvents:
    """Render, page navigation and field-level logic events."""

    @pytest.mark.asyncio
    async def test_render_clears_hidden_selections(self, pizza_form):
        runner, view = make_runner(pizza_form, values={"1": "large", "2": "stuffed"})
        runner.start()
        view.set_field_value("1", "medium")

        runner.on_render("3")
        assert view.get_field_value("2") == ""
        await runner.wait_idle()

    @pytest.mark.asyncio
    async def test_page_loaded_clears_hidden_selections(self, pizza_form):
        runner, view = make_runner(pizza_form, values={"1": "large", "2": "stuffed"})
        runner.start()
        view.set_field_value("1", "small")

        runner.on_page_loaded("3", page=2)
        assert view.get_field_value("2") == ""
        await runner.wait_idle()

    @pytest.mark.asyncio
    async def test_numeric_form_id_accepted(self, pizza_form):
        runner, _ = make_runner(pizza_form)
        runner.start()
        runner.on_render(3)
        assert runner.pass_count == 2

    @pytest.mark.asyncio
    async def test_other_form_ignored(self, pizza_form):
        runner, _ = make_runner(pizza_form)
        runner.start()
        runner.on_render("4")
        runner.on_page_loaded("4", page=2)
        runner.on_conditional_logic("4")
        assert runner.pass_count == 1

    @pytest.mark.asyncio
    async def test_immediate_event_cancels_pending_pass(self, pizza_form):
        runner, view = make_runner(pizza_form)
        runner.start()

        view.set_field_value("1", "large")
        runner.on_field_change("1")
        runner.on_render("3")
        assert runner.state == RunnerState.IDLE
        assert choice_state(view, "2", "stuffed").hidden is False

        await runner.wait_idle()
        assert runner.pass_count == 2

    @pytest.mark.asyncio
    async def test_conditional_logic_does_not_clear_selections(self, pizza_form):
        runner, view = make_runner(pizza_form, values={"1": "large", "2": "stuffed"})
        runner.start()
        view.set_field_value("1", "medium")

        runner.on_conditional_logic("3")
        assert choice_state(view, "2", "stuffed").hidden is True
        assert view.get_field_value("2") == "stuffed"


# =============================================================
# Test: Field-level hidden state
# =============================================================


class TestHiddenFields:
    """Fields hidden by the host's field-level logic are not evaluated."""

    @pytest.mark.asyncio
    async def test_hidden_field_skipped(self, pizza_form):
        runner, view = make_runner(pizza_form, values={"1": "medium"}, hidden_fields=["2"])
        results = runner.evaluate_all()
        assert "2" not in results
        assert choice_state(view, "2", "stuffed").hidden is False

    @pytest.mark.asyncio
    async def test_field_shown_by_field_logic(self, pizza_form):
        runner, view = make_runner(pizza_form, values={"1": "medium"}, hidden_fields=["2"])
        runner.start()

        view.set_hidden_fields([])
        runner.on_conditional_logic("3")
        assert choice_state(view, "2", "stuffed").hidden is True


# =============================================================
# Test: Pass mechanics
# =============================================================


class TestPassMechanics:
    """Results, snapshots and state."""

    @pytest.mark.asyncio
    async def test_evaluate_all_results(self, scenario_form):
        runner, view = make_runner(scenario_form, values={"F2": "b"})
        assert runner.evaluate_all() == {"F1": {"c": True}}
        view.set_field_value("F2", "a")
        assert runner.evaluate_all() == {"F1": {"c": False}}

    @pytest.mark.asyncio
    async def test_one_snapshot_per_pass(self, pizza_form):
        view = CountingView(pizza_form, values={"1": "large"})
        runner = LiveEvaluationRunner(build_logic_map(pizza_form), view, debounce_seconds=DEBOUNCE)
        runner.evaluate_all()
        assert sorted(view.reads) == ["1", "2", "3", "4"]

    @pytest.mark.asyncio
    async def test_state_is_evaluating_during_pass(self, scenario_form):
        seen = []

        def evaluate(logic, lookup):
            seen.append(runner.state)
            return True

        runner, _ = make_runner(scenario_form, evaluate=evaluate)
        runner.start()
        assert seen == [RunnerState.EVALUATING]
        assert runner.state == RunnerState.IDLE

    @pytest.mark.asyncio
    async def test_close_cancels_pending_pass(self, pizza_form):
        runner, view = make_runner(pizza_form)
        runner.start()
        view.set_field_value("1", "large")
        runner.on_field_change("1")
        runner.close()
        await asyncio.sleep(DEBOUNCE * 3)
        assert runner.pass_count == 1


class TestEmptyLogicMap:
    """Forms without choice logic get no runner work."""

    @pytest.fixture
    def plain_form(self) -> FormSchema:
        return FormSchema.model_validate({
            "id": 7,
            "fields": [{"id": 1, "type": "radio", "choices": [{"value": "a"}]}],
        })

    @pytest.mark.asyncio
    async def test_runner_is_inert(self, plain_form):
        runner, view = make_runner(plain_form, values={"1": "a"})
        assert runner.is_active is False
        runner.start()
        runner.on_field_change("1")
        runner.on_render("7")
        assert runner.state == RunnerState.IDLE
        assert runner.evaluate_all() == {}
        assert runner.clear_hidden_selections() == []
        assert runner.pass_count == 0
        assert view.get_field_value("1") == "a"
