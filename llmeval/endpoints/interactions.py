# Endpoints the chat host calls after every generation attempt
# llmeval/endpoints/interactions.py
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from llmeval.dependencies import get_interaction_logger, get_preferences_store
from llmeval.models.enums import InteractionStatus
from llmeval.services.generation_recorder import build_model_info
from llmeval.services.interaction_logger import BaseInteractionLogger
from llmeval.services.preferences_service import PreferencesStore
from llmeval.utils.config import settings
from llmeval.utils.logger import logger

router = APIRouter()
sessions_router = APIRouter()

class InteractionRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=(), allow_inf_nan=False)

    user_prompt: str
    model_response: str = ""
    model_info: str | None = None # Built from the teacher preferences when omitted
    status: InteractionStatus = InteractionStatus.COMPLETE
    error_reason: str | None = None
    tokens_per_second: float = Field(0.0, ge=0)
    prompt_tokens: int = Field(0, ge=0)
    response_tokens: int = Field(0, ge=0)
    processing_time: float = Field(0.0, ge=0)

class InteractionAccepted(BaseModel):
    accepted: bool
    session_id: str

class SessionResponse(BaseModel):
    session_id: str
    user_id: str

@router.post("/", response_model=InteractionAccepted, status_code=202)
async def record_interaction(
    request: InteractionRequest,
    interaction_logger: BaseInteractionLogger = Depends(get_interaction_logger),
    preferences_store: PreferencesStore = Depends(get_preferences_store),
):
    """Queues one exchange for the teacher log. Writing happens in the background."""
    model_info = request.model_info or build_model_info(settings.base_model_info, preferences_store.preferences)
    logger.debug(f"Recording '{request.status.value}' interaction for session {interaction_logger.session_id}")
    interaction_logger.log_interaction(
        user_prompt=request.user_prompt,
        model_response=request.model_response,
        model_info=model_info,
        tokens_per_second=request.tokens_per_second,
        prompt_tokens=request.prompt_tokens,
        response_tokens=request.response_tokens,
        processing_time=request.processing_time,
        status=request.status,
        error_reason=request.error_reason,
    )
    return InteractionAccepted(accepted=True, session_id=interaction_logger.session_id)

@sessions_router.get("/current", response_model=SessionResponse)
async def current_session(interaction_logger: BaseInteractionLogger = Depends(get_interaction_logger)):
    return SessionResponse(session_id=interaction_logger.session_id, user_id=interaction_logger.user_id)

@sessions_router.post("/", response_model=SessionResponse)
async def start_new_session(interaction_logger: BaseInteractionLogger = Depends(get_interaction_logger)):
    """Starts a new conversation session; earlier entries keep their session id."""
    session_id = interaction_logger.start_new_session()
    return SessionResponse(session_id=session_id, user_id=interaction_logger.user_id)
