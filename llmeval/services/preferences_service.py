# llmeval/services/preferences_service.py
import json
import os
import tempfile
import threading
from pathlib import Path

from pydantic import ValidationError

from llmeval.models.preferences import TeacherPreferences, system_message_for_age
from llmeval.utils.logger import logger

EDITABLE_FIELDS = set(TeacherPreferences.model_fields)


class PreferencesStore:
    """Holds the teacher's classroom settings. Every setter persists immediately."""

    def __init__(self, path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._preferences = self._load()
        logger.info(f"Loaded preferences - Age: {self._preferences.student_age_range}, "
                    f"Message: {self._preferences.system_message}")

    @property
    def preferences(self) -> TeacherPreferences:
        return self._preferences

    def _load(self) -> TeacherPreferences:
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                raw = json.load(handle)
            return TeacherPreferences.model_validate(raw)
        except FileNotFoundError:
            return TeacherPreferences()
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Could not read preferences from {self.path}, using defaults: {e}")
            return TeacherPreferences()

    def _save(self, preferences: TeacherPreferences) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".prefs-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(preferences.model_dump(), handle, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def update(self, **changes) -> TeacherPreferences:
        """Applies a partial update and writes the result to disk."""
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown preference fields: {sorted(unknown)}")
        with self._lock:
            updated = self._preferences.model_copy(update=changes)
            # model_copy skips validation; round-trip to reject bad types.
            updated = TeacherPreferences.model_validate(updated.model_dump())
            self._save(updated)
            self._preferences = updated
        logger.info(f"Updated teacher preferences: {sorted(changes)}")
        return updated

    def set_system_message(self, value: str) -> TeacherPreferences:
        return self.update(system_message=value)

    def set_student_age_range(self, value: str) -> TeacherPreferences:
        return self.update(student_age_range=value)

    def set_school_name(self, value: str) -> TeacherPreferences:
        return self.update(school_name=value)

    def set_teacher_name(self, value: str) -> TeacherPreferences:
        return self.update(teacher_name=value)

    def set_default_prompt(self, value: str) -> TeacherPreferences:
        return self.update(default_prompt=value)

    def update_system_message_from_age(self) -> TeacherPreferences:
        return self.update(system_message=system_message_for_age(self._preferences.student_age_range))

    def reset_to_defaults(self) -> TeacherPreferences:
        defaults = TeacherPreferences()
        with self._lock:
            self._save(defaults)
            self._preferences = defaults
        logger.info("Teacher preferences reset to defaults.")
        return defaults
