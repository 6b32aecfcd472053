"""
FastAPI Dependency Injection
============================

Reusable dependencies for the application singletons that the lifespan
manager stores on `app.state` (orchestrator, store, file storage, follow-up
service) and for the caller's identity.

Example:
    @router.post("/cancel-generation")
    async def cancel(body: CancelGenerationRequest, orchestrator: OrchestratorDep, user_id: UserIdDep):
        ...

Tests build the app with their own settings and HTTP transport
(`create_app(settings, transport=...)`) instead of patching these functions.
"""

from typing import Annotated

from fastapi import Depends, Request

from nanochat.core.config.constants import HEADER_USER_ID
from nanochat.core.config.settings import Settings, get_settings
from nanochat.core.exceptions import UnauthenticatedError
from nanochat.core.interfaces import ChatStore, FileStorage
from nanochat.llm_stream.services import GenerationOrchestrator
from nanochat.services.follow_up import FollowUpService


def _state(request: Request, name: str):
    component = getattr(request.app.state, name, None)
    if component is None:
        raise RuntimeError(
            f"{name} not initialized in app.state. "
            "This indicates the application lifespan startup didn't complete properly."
        )
    return component


def get_orchestrator(request: Request) -> GenerationOrchestrator:
    """Retrieve the GenerationOrchestrator singleton from application state."""
    return _state(request, "orchestrator")


def get_store(request: Request) -> ChatStore:
    return _state(request, "store")


def get_file_storage(request: Request) -> FileStorage:
    return _state(request, "file_storage")


def get_follow_up_service(request: Request) -> FollowUpService:
    return _state(request, "follow_up")


def get_app_settings(request: Request) -> Settings:
    """Settings the app was built with (the global settings when none were given)."""
    return getattr(request.app.state, "settings", None) or get_settings()


def get_user_id(request: Request) -> str:
    """
    Identify the caller from the `X-User-ID` header.

    Authentication happens upstream; this service only trusts the identity it
    is handed.

    Raises:
        UnauthenticatedError: Header missing or empty (401)
    """
    user_id = (request.headers.get(HEADER_USER_ID) or "").strip()
    if not user_id:
        raise UnauthenticatedError("Unauthorized")
    return user_id


# ============================================================================
# TYPE ALIASES
# ============================================================================

OrchestratorDep = Annotated[GenerationOrchestrator, Depends(get_orchestrator)]

StoreDep = Annotated[ChatStore, Depends(get_store)]

FileStorageDep = Annotated[FileStorage, Depends(get_file_storage)]

FollowUpDep = Annotated[FollowUpService, Depends(get_follow_up_service)]

SettingsDep = Annotated[Settings, Depends(get_app_settings)]

UserIdDep = Annotated[str, Depends(get_user_id)]
