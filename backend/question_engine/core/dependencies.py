"""FastAPI dependencies for the selection service."""

from question_engine.db.session import get_session_factory
from question_engine.selection.ledger import DatabaseLedger
from question_engine.selection.repo import QuestionStore
from question_engine.selection.service import SelectionService

_selection_service: SelectionService | None = None


def build_selection_service() -> SelectionService:
    """Service wired to the configured database. Guests are not served over HTTP."""
    session_factory = get_session_factory()
    return SelectionService(
        store=QuestionStore(session_factory),
        database_ledger=DatabaseLedger(session_factory),
    )


def get_selection_service() -> SelectionService:
    """Dependency returning the process-wide selection service."""
    global _selection_service
    if _selection_service is None:
        _selection_service = build_selection_service()
    return _selection_service


async def shutdown_selection_service() -> None:
    """Flush background ledger writes before the process exits."""
    global _selection_service
    if _selection_service is not None:
        await _selection_service.drain()
        _selection_service = None
