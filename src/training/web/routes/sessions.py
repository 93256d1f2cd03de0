"""Session endpoints.

Errors raised by the session manager are mapped to HTTP statuses by the
handlers registered in training.web.api.
"""

from typing import Any

from fastapi import APIRouter, status

from training.core.session_manager import CreateSessionConfig
from training.web.schemas import (
    ActiveSessionListResponse,
    ActiveSessionResponse,
    AnswerRequest,
    CleanupRequest,
    CleanupResponse,
    CompleteRequest,
    HintRequest,
    NotesRequest,
    PauseRequest,
    SessionCreatedResponse,
    SessionCreateRequest,
    SessionStatusResponse,
    SkipRequest,
)
from training.web.sessions import get_session_manager

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@router.post("", response_model=SessionCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_session(request: SessionCreateRequest) -> SessionCreatedResponse:
    """Start a new training session."""
    created = await get_session_manager().create(
        CreateSessionConfig(
            student_id=request.student_id,
            curriculum=request.curriculum,
            level=request.level,
            trainer_id=request.trainer_id,
            age_group=request.age_group,
            session_type=request.session_type,
            custom_settings=request.custom_settings,
        )
    )
    return SessionCreatedResponse(**created)


@router.get("", response_model=ActiveSessionListResponse)
async def list_active_sessions() -> ActiveSessionListResponse:
    """List sessions currently live in this process."""
    sessions = await get_session_manager().list_active()
    return ActiveSessionListResponse(
        sessions=[ActiveSessionResponse(**s) for s in sessions], count=len(sessions)
    )


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_inactive(request: CleanupRequest) -> CleanupResponse:
    """Force-complete sessions idle for longer than the threshold."""
    cleaned = await get_session_manager().cleanup_inactive(request.threshold_seconds)
    return CleanupResponse(cleaned=cleaned)


@router.get("/{session_id}", response_model=SessionStatusResponse)
async def get_session_status(session_id: str) -> SessionStatusResponse:
    """Get session status, live or persisted."""
    return SessionStatusResponse(**await get_session_manager().get_status(session_id))


@router.get("/{session_id}/exercise")
async def get_current_exercise(session_id: str) -> dict[str, Any]:
    return await get_session_manager().get_current_exercise(session_id)


@router.post("/{session_id}/answer")
async def submit_answer(session_id: str, request: AnswerRequest) -> dict[str, Any]:
    return await get_session_manager().submit_answer(
        session_id, request.answer, request.time_spent
    )


@router.post("/{session_id}/skip")
async def skip_exercise(session_id: str, request: SkipRequest) -> dict[str, Any]:
    return await get_session_manager().skip(session_id, request.reason)


@router.post("/{session_id}/hint")
async def request_hint(session_id: str, request: HintRequest) -> dict[str, Any]:
    return await get_session_manager().request_hint(session_id, request.hint_index)


@router.post("/{session_id}/pause")
async def pause_session(session_id: str, request: PauseRequest) -> dict[str, Any]:
    return await get_session_manager().pause(session_id, request.reason)


@router.post("/{session_id}/resume")
async def resume_session(session_id: str) -> dict[str, Any]:
    return await get_session_manager().resume(session_id)


@router.post("/{session_id}/complete")
async def complete_session(session_id: str, request: CompleteRequest) -> dict[str, Any]:
    """Finish a session. Repeated calls return the same summary."""
    return await get_session_manager().complete(session_id, request.reason)


@router.post("/{session_id}/heartbeat")
async def heartbeat(session_id: str) -> dict[str, Any]:
    return await get_session_manager().heartbeat(session_id)


@router.post("/{session_id}/notes", response_model=SessionStatusResponse)
async def add_trainer_notes(session_id: str, request: NotesRequest) -> SessionStatusResponse:
    """Attach trainer notes; works on completed sessions."""
    view = await get_session_manager().add_trainer_notes(session_id, request.notes)
    return SessionStatusResponse(**view)
