# Teacher login/logout over the shared access gate
# llmeval/endpoints/auth.py
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from llmeval.dependencies import get_auth_gate, get_login_throttle
from llmeval.models.enums import GateState
from llmeval.services.auth_gate import LoginThrottle, TeacherAuthGate, attempt_login

router = APIRouter(
    tags=["Teacher Access"]
)

class LoginRequest(BaseModel):
    password: str

class AuthStatus(BaseModel):
    state: GateState
    authenticated: bool
    failed_attempts: int
    seconds_remaining: float | None = None

def _status(gate: TeacherAuthGate) -> AuthStatus:
    state = gate.state
    return AuthStatus(
        state=state,
        authenticated=state == GateState.AUTHENTICATED,
        failed_attempts=gate.failed_attempts,
        seconds_remaining=gate.seconds_remaining,
    )

@router.get("/status", response_model=AuthStatus)
async def auth_status(gate: TeacherAuthGate = Depends(get_auth_gate)):
    return _status(gate)

@router.post("/request-access", response_model=AuthStatus)
async def request_access(gate: TeacherAuthGate = Depends(get_auth_gate)):
    gate.request_access()
    return _status(gate)

@router.post("/login", response_model=AuthStatus)
async def login(
    request: LoginRequest,
    gate: TeacherAuthGate = Depends(get_auth_gate),
    throttle: LoginThrottle = Depends(get_login_throttle),
):
    result = attempt_login(gate, throttle, request.password)
    if result.retry_after is not None:
        raise HTTPException(
            status_code=429,
            detail="Too many failed attempts. Try again later.",
            headers={"Retry-After": str(int(result.retry_after) + 1)},
        )
    if result.authenticated:
        return _status(gate)
    raise HTTPException(status_code=401, detail="Wrong password")

@router.post("/cancel", response_model=AuthStatus)
async def cancel_prompt(gate: TeacherAuthGate = Depends(get_auth_gate)):
    gate.cancel()
    return _status(gate)

@router.post("/logout", response_model=AuthStatus)
async def logout(gate: TeacherAuthGate = Depends(get_auth_gate)):
    gate.logout()
    return _status(gate)
