# FastAPI entry point; composition root for the teacher log services
# llmeval/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from llmeval.endpoints import (
    interactions as interactions_router,
    logs as logs_router,
    auth as auth_router,
    preferences as preferences_router,
)
from llmeval.services.auth_gate import LoginThrottle, TeacherAuthGate
from llmeval.services.interaction_logger import InteractionLogger
from llmeval.services.preferences_service import PreferencesStore
from llmeval.utils.config import settings
from llmeval.utils.errors import LogReadError
from llmeval.utils.logger import logger

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Builds the single logger, access gate and preferences store for the process
    and releases them on shutdown.
    """
    logger.info("LLMEval teacher log API starting up...")
    app.state.interaction_logger = InteractionLogger(settings.logs_directory, user_id=settings.student_user_id)
    app.state.auth_gate = TeacherAuthGate(settings.teacher_password_hash, settings.auth_timeout_seconds)
    app.state.preferences_store = PreferencesStore(settings.preferences_path)
    app.state.login_throttle = LoginThrottle(settings.max_login_attempts, settings.login_lockout_seconds)
    logger.info(f"Writing teacher logs to {settings.logs_directory}")
    logger.info("Startup complete.")
    yield
    logger.info("LLMEval teacher log API shutting down...")
    app.state.auth_gate.logout()
    # Queued writes still complete before the process exits.
    app.state.interaction_logger.close()

# --- FastAPI App Initialization ---
app = FastAPI(
    title=settings.app_title,
    description="Records student/model chat interactions and serves them to the teacher.",
    version="0.3.0",
    lifespan=lifespan
)

# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://127.0.0.1"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Error Handling ---
@app.exception_handler(LogReadError)
async def log_read_error_handler(request: Request, exc: LogReadError):
    # Distinct from an empty log: the file is there but unreadable. Clients should offer a retry.
    logger.error(f"Log read failed for {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": "The teacher log exists but could not be read.", "retryable": True},
    )

# --- API Routers ---
app.include_router(interactions_router.router, prefix="/interactions", tags=["Interactions"])
app.include_router(interactions_router.sessions_router, prefix="/sessions", tags=["Sessions"])
app.include_router(auth_router.router, prefix="/auth")
app.include_router(logs_router.router, prefix="/logs", tags=["Teacher Logs"])
app.include_router(preferences_router.router, prefix="/preferences")

# --- Root Endpoint ---
@app.get("/")
async def root():
    return {"message": "Welcome to the LLMEval Teacher Log API"}

def main() -> None:
    import uvicorn

    uvicorn.run("llmeval.main:app", host=settings.host, port=settings.port)

if __name__ == "__main__":
    main()
