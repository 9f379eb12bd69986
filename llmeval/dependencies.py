# FastAPI dependency providers; the instances themselves are built in main.lifespan
# llmeval/dependencies.py
from fastapi import Depends, HTTPException, Request

from llmeval.services.auth_gate import TeacherAuthGate
from llmeval.services.interaction_logger import BaseInteractionLogger
from llmeval.services.preferences_service import PreferencesStore


def get_interaction_logger(request: Request) -> BaseInteractionLogger:
    return request.app.state.interaction_logger


def get_auth_gate(request: Request) -> TeacherAuthGate:
    return request.app.state.auth_gate


def get_preferences_store(request: Request) -> PreferencesStore:
    return request.app.state.preferences_store


def get_login_throttle(request: Request):
    return request.app.state.login_throttle


def require_teacher(gate: TeacherAuthGate = Depends(get_auth_gate)) -> TeacherAuthGate:
    """Rejects the request unless the teacher is logged in; otherwise counts as activity."""
    if not gate.is_authenticated:
        raise HTTPException(status_code=401, detail="Teacher authentication required")
    gate.record_activity()
    return gate
