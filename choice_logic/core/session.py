"""
Render session store.

Each render session holds one rendered form instance: its in-memory view
and the live runner attached to it. Sessions are created when a form is
rendered and cleaned up after a timeout.
"""

import logging
import threading
import time
import uuid
from collections.abc import Iterable, Mapping
from typing import Any

from choice_logic.core.logic_map import build_logic_map
from choice_logic.core.schema import FormSchema
from choice_logic.core.visibility import ChoiceEvaluator, is_choice_visible
from choice_logic.live.runner import DEFAULT_DEBOUNCE_SECONDS, LiveEvaluationRunner
from choice_logic.live.view import InMemoryFormView

logger = logging.getLogger(__name__)

# Default session timeout: 30 minutes
DEFAULT_SESSION_TIMEOUT_SECONDS = 30 * 60


class RenderSession:
    """A single rendered form instance."""

    def __init__(self, form: FormSchema, view: InMemoryFormView, runner: LiveEvaluationRunner):
        self.form = form
        self.view = view
        self.runner = runner
        self.created_at: float = time.time()
        self.last_accessed_at: float = time.time()

    def touch(self) -> None:
        """Update the last accessed timestamp."""
        self.last_accessed_at = time.time()

    def is_expired(self, timeout_seconds: int = DEFAULT_SESSION_TIMEOUT_SECONDS) -> bool:
        """Check if the session has expired."""
        return (time.time() - self.last_accessed_at) > timeout_seconds

    def close(self) -> None:
        self.runner.close()


class RenderSessionStore:
    """In-memory store for render sessions.

    Thread-safe for basic use. Sessions hold live asyncio state, so they
    are not persisted.
    """

    def __init__(
        self,
        timeout_seconds: int = DEFAULT_SESSION_TIMEOUT_SECONDS,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        evaluate: ChoiceEvaluator = is_choice_visible,
    ):
        self._sessions: dict[str, RenderSession] = {}
        self._timeout_seconds = timeout_seconds
        self._debounce_seconds = debounce_seconds
        self._evaluate = evaluate
        self._lock = threading.RLock()

    def create_session(
        self,
        form: FormSchema,
        values: Mapping[str, Any] | None = None,
        hidden_fields: Iterable[str] = (),
        session_id: str | None = None,
    ) -> tuple[str, RenderSession]:
        """Render a form and run its initial choice evaluation.

        Builds a fresh logic map, an in-memory view pre-populated with
        `values`, and a live runner. Must be called from inside the
        running event loop.

        Args:
            form: The host form definition.
            values: Pre-populated values keyed by field ID.
            hidden_fields: IDs of fields hidden by field-level logic.
            session_id: Optional custom ID. Auto-generated if not provided.

        Returns:
            Tuple of (session_id, RenderSession).
        """
        if session_id is None:
            session_id = str(uuid.uuid4())

        logic_map = build_logic_map(form)
        view = InMemoryFormView(form, values=values, hidden_fields=hidden_fields)
        runner = LiveEvaluationRunner(
            logic_map,
            view,
            debounce_seconds=self._debounce_seconds,
            evaluate=self._evaluate,
        )
        runner.start()

        session = RenderSession(form, view, runner)
        with self._lock:
            previous = self._sessions.pop(session_id, None)
            self._sessions[session_id] = session
        if previous is not None:
            previous.close()

        logger.info(
            "Render session %s created for form %s (%d field(s) with choice logic)",
            session_id,
            form.form_id,
            len(logic_map.fields),
        )
        return session_id, session

    def get_session(self, session_id: str) -> RenderSession | None:
        """Retrieve a session by ID.

        Returns None if the session doesn't exist or has expired.
        Automatically cleans up expired sessions.
        """
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            return None

        if session.is_expired(self._timeout_seconds):
            self.delete_session(session_id)
            return None

        session.touch()
        return session

    def delete_session(self, session_id: str) -> bool:
        """Delete a session. Returns True if it existed."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.close()
        return True

    def cleanup_expired(self) -> int:
        """Remove all expired sessions. Returns the count of removed sessions."""
        with self._lock:
            expired = [
                sid for sid, session in self._sessions.items()
                if session.is_expired(self._timeout_seconds)
            ]
            removed = [self._sessions.pop(sid) for sid in expired]
        for session in removed:
            session.close()
        return len(removed)

    def count(self) -> int:
        """Return the number of active sessions."""
        with self._lock:
            return len(self._sessions)

    def list_session_ids(self) -> list[str]:
        """Return all active session IDs."""
        with self._lock:
            return list(self._sessions.keys())
