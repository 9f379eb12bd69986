# llmeval/models/preferences.py
from pydantic import BaseModel, ConfigDict

DEFAULT_AGE_RANGE = "8-9 year olds (Grade 2-3)"
DEFAULT_SYSTEM_MESSAGE = "You are an age appropriate assistant for 8-9 year olds"
DEFAULT_PROMPT = "What would you like to learn about today?"
CUSTOM_AGE_RANGE = "Custom Age Range"

AGE_PRESETS = [
    "5-6 year olds (Kindergarten)",
    "7-8 year olds (Grade 1-2)",
    "8-9 year olds (Grade 2-3)",
    "9-10 year olds (Grade 3-4)",
    "10-11 year olds (Grade 4-5)",
    "11-12 year olds (Grade 5-6)",
    "12-13 year olds (Middle School)",
    CUSTOM_AGE_RANGE,
]


def system_message_for_age(age_range: str) -> str:
    return f"You are an age appropriate assistant for {age_range.lower()}"


class TeacherPreferences(BaseModel):
    """Classroom settings chosen by the teacher; the chat host reads them for every prompt."""
    model_config = ConfigDict(frozen=True)

    system_message: str = DEFAULT_SYSTEM_MESSAGE
    student_age_range: str = DEFAULT_AGE_RANGE
    school_name: str = ""
    teacher_name: str = ""
    default_prompt: str = DEFAULT_PROMPT
