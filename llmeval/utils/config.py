# llmeval/utils/config.py
import os
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env file before defining settings
load_dotenv()

class Settings(BaseSettings):
    app_title: str = "LLMEval Teacher Log"
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    host: str = "127.0.0.1"
    port: int = 8000

    # --- Storage ---
    # Logs live under <storage_root>/LLMEval/TeacherLogs
    storage_root: str = os.getenv("LLMEVAL_STORAGE_ROOT", os.path.expanduser("~/.local/share"))
    app_directory_name: str = "LLMEval"
    logs_directory_name: str = "TeacherLogs"
    preferences_file_name: str = "teacher_preferences.json"

    # Overrides the OS account name recorded as the student's user id
    student_user_id: str | None = os.getenv("LLMEVAL_STUDENT_USER_ID")

    # --- Teacher access ---
    # pbkdf2_sha256$<iterations>$<salt>$<hash>, see llmeval/utils/security.py
    teacher_password_hash: str | None = os.getenv("TEACHER_PASSWORD_HASH")
    auth_timeout_seconds: int = 15 * 60
    max_login_attempts: int = 5
    login_lockout_seconds: int = 60

    # --- Model description recorded with every interaction ---
    base_model_info: str = os.getenv("LLMEVAL_MODEL_INFO", "Phi-3.5-mini (offline)")

    @property
    def app_directory(self) -> str:
        return os.path.join(self.storage_root, self.app_directory_name)

    @property
    def logs_directory(self) -> str:
        return os.path.join(self.app_directory, self.logs_directory_name)

    @property
    def preferences_path(self) -> str:
        return os.path.join(self.app_directory, self.preferences_file_name)

settings = Settings()

if settings.auth_timeout_seconds <= 0:
    raise ValueError("auth_timeout_seconds must be positive")
