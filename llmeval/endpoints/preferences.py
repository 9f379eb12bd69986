# llmeval/endpoints/preferences.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict

from llmeval.dependencies import get_preferences_store, require_teacher
from llmeval.models.preferences import AGE_PRESETS, TeacherPreferences
from llmeval.services.generation_recorder import build_model_info
from llmeval.services.preferences_service import PreferencesStore
from llmeval.utils.config import settings
from llmeval.utils.logger import logger

router = APIRouter(
    tags=["Teacher Preferences"]
)

class PreferencesUpdate(BaseModel):
    system_message: str | None = None
    student_age_range: str | None = None
    school_name: str | None = None
    teacher_name: str | None = None
    default_prompt: str | None = None

class ModelInfoResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_info: str

@router.get("/", response_model=TeacherPreferences)
async def get_preferences(store: PreferencesStore = Depends(get_preferences_store)):
    """Current classroom settings; the chat host reads these before each prompt."""
    return store.preferences

@router.get("/age-presets", response_model=List[str])
async def get_age_presets():
    return AGE_PRESETS

@router.get("/model-info", response_model=ModelInfoResponse)
async def get_model_info(store: PreferencesStore = Depends(get_preferences_store)):
    return ModelInfoResponse(model_info=build_model_info(settings.base_model_info, store.preferences))

def _persist(action):
    try:
        return action()
    except OSError as e:
        logger.exception(f"Could not save teacher preferences: {e}")
        raise HTTPException(status_code=500, detail="Could not save preferences")

@router.put("/", response_model=TeacherPreferences, dependencies=[Depends(require_teacher)])
async def update_preferences(update: PreferencesUpdate, store: PreferencesStore = Depends(get_preferences_store)):
    """Updates only the fields present in the request."""
    changes = update.model_dump(exclude_none=True)
    if not changes:
        return store.preferences
    return _persist(lambda: store.update(**changes))

@router.post("/reset", response_model=TeacherPreferences, dependencies=[Depends(require_teacher)])
async def reset_preferences(store: PreferencesStore = Depends(get_preferences_store)):
    return _persist(store.reset_to_defaults)

@router.post("/system-message/from-age", response_model=TeacherPreferences, dependencies=[Depends(require_teacher)])
async def system_message_from_age(store: PreferencesStore = Depends(get_preferences_store)):
    """Regenerates the system message from the current student age range."""
    return _persist(store.update_system_message_from_age)
