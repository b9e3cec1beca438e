"""
Server-side submission guard for conditional choices.

Re-runs the same choice visibility evaluator as the live runner against
the submitted values, so that a choice hidden in the browser can never be
accepted or persisted:

- Validation: rejects submissions that select a hidden choice, and
  required fields left without any visible choice. All fields are
  checked; failures are accumulated into one report.
- Sanitization: independently strips hidden choice values from the
  submitted entry before it is stored.
"""

import logging
import re
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from choice_logic.core.rules import FieldValue
from choice_logic.core.schema import (
    DEFAULT_MESSAGES,
    SUB_INPUT_FIELD_TYPES,
    SUPPORTED_FIELD_TYPES,
    ChoiceField,
    FormSchema,
)
from choice_logic.core.visibility import ChoiceEvaluator, get_visible_choices, is_choice_visible

logger = logging.getLogger(__name__)

INPUT_PREFIX = "input_"


# --- Results ---


class FailureCode(str, Enum):
    """Reasons a choice field fails submission validation."""

    INVALID_SELECTION = "invalid_selection"
    NO_OPTIONS_AVAILABLE = "no_options_available"


_MESSAGE_KEYS = {
    FailureCode.INVALID_SELECTION: "invalidSelection",
    FailureCode.NO_OPTIONS_AVAILABLE: "noOptionsAvailable",
}


class FieldFailure(BaseModel):
    """A single field that failed choice validation."""

    field_id: str
    code: FailureCode
    message: str


class ValidationReport(BaseModel):
    """All choice validation failures of one submission."""

    failures: list[FieldFailure] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.failures

    @property
    def failed_field_ids(self) -> list[str]:
        return [f.field_id for f in self.failures]

    def failures_for(self, field_id: str) -> list[FieldFailure]:
        return [f for f in self.failures if f.field_id == field_id]

    def raise_if_invalid(self) -> None:
        """Raise SubmissionRejectedError if any field failed."""
        if not self.is_valid:
            raise SubmissionRejectedError(self)


class SubmissionResult(BaseModel):
    """Outcome of running both checkpoints on one submission."""

    report: ValidationReport
    sanitized: dict[str, Any]

    @property
    def is_valid(self) -> bool:
        return self.report.is_valid


class SubmissionRejectedError(Exception):
    """Raised when a submission selects hidden choices or has no options left."""

    def __init__(self, report: ValidationReport):
        self.report = report
        super().__init__(
            f"Submission rejected: {len(report.failures)} field(s) failed choice validation "
            f"({', '.join(report.failed_field_ids)})"
        )


# --- Submitted value reader ---


def _clean(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _sub_input_pattern(field_id: str) -> re.Pattern[str]:
    # input_5_1 / input_5.1 for choice 1 of field 5
    return re.compile(rf"^{re.escape(INPUT_PREFIX + field_id)}[._](\d+)$")


class SubmittedValues:
    """Field value lookup over a submitted entry.

    Values are keyed by field ID; checkbox and multi choice sub-inputs are
    keyed as "{field_id}.{n}". Looking up a sub-input field collects its
    non-empty sub-values, and returns "" (not an empty list) when none
    were submitted.
    """

    def __init__(self, values: Mapping[str, FieldValue]):
        self._values = dict(values)

    @classmethod
    def from_posted(cls, form: FormSchema, posted: Mapping[str, Any]) -> "SubmittedValues":
        """Read every field of the form from the raw posted input names.

        Args:
            form: The host form definition.
            posted: The raw submitted mapping (input_{id}, input_{id}_{n}).

        Returns:
            A SubmittedValues lookup.
        """
        values: dict[str, FieldValue] = {}

        for field in form.fields:
            if field.type in SUB_INPUT_FIELD_TYPES:
                pattern = _sub_input_pattern(field.id)
                for key, raw in posted.items():
                    match = pattern.match(key)
                    if match:
                        values[f"{field.id}.{match.group(1)}"] = _clean(raw)
                continue

            input_name = INPUT_PREFIX + field.id
            if input_name not in posted:
                continue

            raw = posted[input_name]
            if isinstance(raw, (list, tuple)):
                values[field.id] = [_clean(v) for v in raw]
            else:
                values[field.id] = _clean(raw)

        return cls(values)

    def __call__(self, field_id: str) -> FieldValue:
        if field_id in self._values:
            return self._values[field_id]

        pattern = re.compile(rf"^{re.escape(field_id)}[._]\d+$")
        collected = [
            value for key, value in self._values.items()
            if pattern.match(key) and value
        ]

        if collected:
            return collected

        return ""

    def as_dict(self) -> dict[str, FieldValue]:
        return dict(self._values)


def submitted_field_values(field: ChoiceField, posted: Mapping[str, Any]) -> list[str]:
    """Return the non-empty values submitted for one field, as a list.

    Checkbox and multi choice fields are read from their sub-inputs and
    from a value posted directly under input_{id}.
    """
    values: list[str] = []
    if field.type in SUB_INPUT_FIELD_TYPES:
        pattern = _sub_input_pattern(field.id)
        values = [
            _clean(raw) for key, raw in posted.items()
            if pattern.match(key) and _clean(raw)
        ]

    raw = posted.get(INPUT_PREFIX + field.id)
    if raw is None:
        return values
    if isinstance(raw, (list, tuple)):
        return values + [v for v in (_clean(r) for r in raw) if v]

    value = _clean(raw)
    return values + [value] if value else values


# --- Guard ---


class SubmissionGuard:
    """Validates and sanitizes submitted choice values.

    Args:
        evaluate: The choice evaluator, shared with the live runner.
        messages: User-facing failure messages keyed like the logic map i18n.
    """

    def __init__(
        self,
        evaluate: ChoiceEvaluator = is_choice_visible,
        messages: Mapping[str, str] | None = None,
    ):
        self._evaluate = evaluate
        self._messages = dict(messages or DEFAULT_MESSAGES)

    # -----------------------------------------------------------------
    # Checkpoints
    # -----------------------------------------------------------------

    def validate(
        self,
        form: FormSchema,
        posted: Mapping[str, Any],
        hidden_field_ids: Iterable[str] = (),
    ) -> ValidationReport:
        """Validate that every submitted choice is currently visible.

        Fields hidden by the host's field-level logic are skipped.

        Args:
            form: The host form definition.
            posted: The raw submitted mapping.
            hidden_field_ids: IDs of fields hidden by field-level logic.

        Returns:
            A ValidationReport with one failure per failing field.
        """
        hidden = set(hidden_field_ids)
        lookup = SubmittedValues.from_posted(form, posted)
        failures: list[FieldFailure] = []

        for field in self._choice_fields(form):
            if field.id in hidden:
                continue

            visible = get_visible_choices(field, lookup, self._evaluate)

            if field.is_required and not visible:
                failures.append(self._failure(field.id, FailureCode.NO_OPTIONS_AVAILABLE))
                continue

            for value in submitted_field_values(field, posted):
                if value not in visible:
                    failures.append(self._failure(field.id, FailureCode.INVALID_SELECTION))
                    break

        if failures:
            logger.info(
                "Form %s: %d field(s) failed choice validation: %s",
                form.form_id,
                len(failures),
                ", ".join(f"{f.field_id}={f.code.value}" for f in failures),
            )

        return ValidationReport(failures=failures)

    def sanitize(self, form: FormSchema, posted: Mapping[str, Any]) -> dict[str, Any]:
        """Return a copy of the submitted entry without hidden choice values.

        Runs regardless of validation: hidden scalar values and checkbox
        sub-inputs are blanked, hidden values are dropped from multi-value
        lists. The input mapping is not modified.

        Args:
            form: The host form definition.
            posted: The raw submitted mapping.

        Returns:
            The sanitized entry.
        """
        lookup = SubmittedValues.from_posted(form, posted)
        sanitized = dict(posted)
        stripped = 0

        for field in self._choice_fields(form):
            visible = set(get_visible_choices(field, lookup, self._evaluate))

            if field.type in SUB_INPUT_FIELD_TYPES:
                pattern = _sub_input_pattern(field.id)
                for key, raw in posted.items():
                    if pattern.match(key) and _clean(raw) not in visible:
                        if _clean(raw):
                            stripped += 1
                        sanitized[key] = ""

            # Also covers checkbox values posted directly under input_{id}
            input_name = INPUT_PREFIX + field.id
            if input_name not in posted:
                continue

            raw = posted[input_name]
            if isinstance(raw, (list, tuple)):
                kept = [v for v in (_clean(r) for r in raw) if v in visible]
                stripped += len(raw) - len(kept)
                sanitized[input_name] = kept
            elif _clean(raw) not in visible:
                if _clean(raw):
                    stripped += 1
                sanitized[input_name] = ""

        if stripped:
            logger.info("Form %s: stripped %d hidden choice value(s)", form.form_id, stripped)

        return sanitized

    def process(
        self,
        form: FormSchema,
        posted: Mapping[str, Any],
        hidden_field_ids: Iterable[str] = (),
    ) -> SubmissionResult:
        """Run both checkpoints against the same submitted entry."""
        report = self.validate(form, posted, hidden_field_ids)
        sanitized = self.sanitize(form, posted)
        return SubmissionResult(report=report, sanitized=sanitized)

    # -----------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------

    def _choice_fields(self, form: FormSchema) -> list[ChoiceField]:
        return [
            field for field in form.fields
            if field.type in SUPPORTED_FIELD_TYPES and field.choices is not None
        ]

    def _failure(self, field_id: str, code: FailureCode) -> FieldFailure:
        return FieldFailure(
            field_id=field_id,
            code=code,
            message=self._messages.get(_MESSAGE_KEYS[code], DEFAULT_MESSAGES[_MESSAGE_KEYS[code]]),
        )
