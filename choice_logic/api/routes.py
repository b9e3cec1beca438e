"""
FastAPI routes for the choice logic backend.

Endpoints:
- GET  /health                     — health check
- GET  /operators                  — operators and field type tags for rule editors
- GET  /schemas                    — list bundled example forms
- GET  /schemas/{filename}         — get a bundled example form
- POST /trigger-fields             — fields of a form that rules may reference
- POST /logic-map                  — build the live logic map of a form
- POST /render                     — render a form and evaluate its choices
- POST /render/{session_id}/events — apply a live event to a rendered form
- POST /sessions/reset             — delete a render session
- POST /submissions/validate       — validate and sanitize a submission (report only)
- POST /submissions                — accept a submission or reject it with 422
"""

import logging
from pathlib import Path
from typing import Any, Literal

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field, field_validator

from choice_logic.core.loader import FormDefinitionError, list_form_files, load_form_schema
from choice_logic.core.logic_map import build_logic_map
from choice_logic.core.rules import OPERATOR_LABELS
from choice_logic.core.schema import SUPPORTED_FIELD_TYPES, TRIGGER_FIELD_TYPES, FormSchema
from choice_logic.core.session import RenderSession

logger = logging.getLogger(__name__)

router = APIRouter()

# These will be injected by the app factory
_session_store = None
_guard = None

SCHEMAS_DIR = Path(__file__).parent.parent / "schemas"


def configure_routes(session_store, guard):
    """Inject the render session store and submission guard into the routes module.

    Called by the app factory during startup.
    """
    global _session_store, _guard
    _session_store = session_store
    _guard = guard


# --- Request / Response Models ---


def _stringify(value: Any) -> Any:
    # Number, quantity and total fields arrive as JSON numbers
    if isinstance(value, (list, tuple)):
        return [_stringify(v) for v in value]
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class FormRequest(BaseModel):
    """Request body carrying a host form definition."""

    form: FormSchema


class RenderRequest(BaseModel):
    """Request body for the /render endpoint."""

    form: FormSchema
    values: dict[str, str | list[str]] = Field(default_factory=dict)
    hidden_fields: list[str] = Field(default_factory=list)

    @field_validator("values", mode="before")
    @classmethod
    def stringify_values(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: _stringify(v) for k, v in value.items()}
        return value


class RenderEvent(BaseModel):
    """A live event for a rendered form."""

    type: Literal["change", "render", "page_loaded", "conditional_logic"]
    field_id: str | None = None
    value: str | list[str] | None = None
    page: int | None = None
    hidden_fields: list[str] | None = None

    @field_validator("value", mode="before")
    @classmethod
    def stringify_value(cls, value: Any) -> Any:
        return _stringify(value)


class RenderResponse(BaseModel):
    """Choice state of a rendered form."""

    session_id: str
    form_id: str
    runner_state: str
    fields: dict[str, dict[str, Any]]


class ResetRequest(BaseModel):
    """Request body for the /sessions/reset endpoint."""

    session_id: str


class SubmissionRequest(BaseModel):
    """Request body for the submission endpoints."""

    form: FormSchema
    entry: dict[str, Any]
    hidden_fields: list[str] = Field(default_factory=list)


# --- Helpers ---


def _require(dependency, name: str):
    if dependency is None:
        raise HTTPException(status_code=500, detail=f"Server not properly configured ({name})")
    return dependency


def _render_response(session_id: str, session: RenderSession) -> RenderResponse:
    return RenderResponse(
        session_id=session_id,
        form_id=session.form.form_id,
        runner_state=session.runner.state.value,
        fields=session.view.choice_states(),
    )


# --- Endpoints ---


@router.get("/operators")
async def list_operators():
    """Operators, trigger field types and supported field types."""
    return {
        "operators": [
            {"value": operator.value, "label": label}
            for operator, label in OPERATOR_LABELS.items()
        ],
        "trigger_types": sorted(TRIGGER_FIELD_TYPES),
        "supported_types": sorted(SUPPORTED_FIELD_TYPES),
    }


@router.get("/schemas")
async def list_schemas():
    """List bundled example form definitions."""
    schemas = []
    for path in list_form_files(SCHEMAS_DIR):
        try:
            form = load_form_schema(path)
        except FormDefinitionError as e:
            logger.warning("Skipping example form: %s", e)
            continue
        schemas.append({
            "filename": path.name,
            "form_id": form.form_id,
            "title": form.title or path.stem,
            "field_count": len(form.fields),
        })
    return {"schemas": schemas}


@router.get("/schemas/{filename}")
async def get_schema(filename: str):
    """Get a bundled example form definition by filename."""
    path = SCHEMAS_DIR / filename
    if Path(filename).name != filename or not path.exists():
        raise HTTPException(status_code=404, detail=f"Schema '{filename}' not found")

    try:
        form = load_form_schema(path)
    except FormDefinitionError as e:
        raise HTTPException(status_code=500, detail=e.message)

    return {"filename": filename, "form": form.model_dump(mode="json", by_alias=True)}


@router.post("/trigger-fields")
async def trigger_fields(request: FormRequest):
    """Fields of the form that choice rules may reference."""
    return {
        "fields": [
            {"id": f.id, "type": f.type, "label": f.label}
            for f in request.form.trigger_fields()
        ],
    }


@router.post("/logic-map")
async def logic_map(request: FormRequest):
    """Build the logic map the live runner needs for this form."""
    return build_logic_map(request.form).to_payload()


@router.post("/render", response_model=RenderResponse)
async def render(request: RenderRequest):
    """Render a form, run the initial choice evaluation and return its state."""
    store = _require(_session_store, "session store")
    session_id, session = store.create_session(
        request.form,
        values=request.values,
        hidden_fields=request.hidden_fields,
    )
    await session.runner.wait_idle()
    return _render_response(session_id, session)


@router.post("/render/{session_id}/events", response_model=RenderResponse)
async def render_event(session_id: str, event: RenderEvent):
    """Apply a live event to a rendered form and return the resulting state.

    A "change" event sets the field's value and waits for the debounced
    evaluation; the other events evaluate immediately.
    """
    store = _require(_session_store, "session store")
    session = store.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Render session '{session_id}' not found")

    if event.hidden_fields is not None:
        session.view.set_hidden_fields(event.hidden_fields)

    form_id = session.form.form_id
    runner = session.runner

    match event.type:
        case "change":
            if not event.field_id:
                raise HTTPException(status_code=400, detail="field_id is required for change events")
            session.view.set_field_value(event.field_id, event.value)
            runner.on_field_change(event.field_id)
        case "render":
            runner.on_render(form_id)
        case "page_loaded":
            runner.on_page_loaded(form_id, event.page)
        case "conditional_logic":
            runner.on_conditional_logic(form_id)

    await runner.wait_idle()
    return _render_response(session_id, session)


@router.post("/sessions/reset")
async def reset_session(request: ResetRequest):
    """Delete a render session."""
    store = _require(_session_store, "session store")
    deleted = store.delete_session(request.session_id)
    return {
        "success": deleted,
        "message": "Session reset" if deleted else "Session not found",
    }


@router.post("/submissions/validate")
async def validate_submission(request: SubmissionRequest):
    """Validate and sanitize a submission without rejecting it."""
    guard = _require(_guard, "submission guard")
    result = guard.process(request.form, request.entry, request.hidden_fields)
    return {
        "valid": result.is_valid,
        "failures": [f.model_dump(mode="json") for f in result.report.failures],
        "sanitized": result.sanitized,
    }


@router.post("/submissions")
async def submit(request: SubmissionRequest):
    """Accept a submission, returning the sanitized entry to persist."""
    guard = _require(_guard, "submission guard")
    result = guard.process(request.form, request.entry, request.hidden_fields)

    if not result.is_valid:
        logger.warning(
            "Rejected submission for form %s: %s",
            request.form.form_id,
            result.report.failed_field_ids,
        )
        raise HTTPException(
            status_code=422,
            detail={"failures": [f.model_dump(mode="json") for f in result.report.failures]},
        )

    return {"entry": result.sanitized}


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    session_count = _session_store.count() if _session_store else 0
    return {
        "status": "healthy",
        "active_sessions": session_count,
    }
