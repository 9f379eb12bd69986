# llmeval/services/generation_recorder.py
import time
from typing import Callable, Optional

from llmeval.models.enums import InteractionStatus
from llmeval.models.preferences import TeacherPreferences
from llmeval.services.interaction_logger import BaseInteractionLogger
from llmeval.utils.logger import logger


def build_model_info(base: str, preferences: TeacherPreferences) -> str:
    """Describes the model plus the classroom it is configured for."""
    info = base
    if preferences.teacher_name:
        info += f" | Teacher: {preferences.teacher_name}"
    if preferences.school_name:
        info += f" | {preferences.school_name}"
    info += f" | {preferences.student_age_range}"
    return info


class GenerationRecorder:
    """
    Follows one generation attempt at a time and writes exactly one log entry for it,
    whether it completes, fails or is cancelled.
    """

    def __init__(self, interaction_logger: BaseInteractionLogger, model_info: str,
                 clock: Callable[[], float] = time.monotonic):
        self.interaction_logger = interaction_logger
        self.model_info = model_info
        self._clock = clock
        self._reset()

    def _reset(self):
        self.prompt: Optional[str] = None
        self.accumulated_response = ""
        self._started_at: Optional[float] = None
        self._tokens_per_second = 0.0
        self._prompt_tokens = 0
        self._response_tokens = 0

    @property
    def running(self) -> bool:
        return self.prompt is not None

    def start(self, prompt: str) -> None:
        if self.running:
            raise RuntimeError("A generation is already in progress")
        self._reset()
        self.prompt = prompt
        self._started_at = self._clock()

    def append(self, chunk: str) -> None:
        if self.running:
            self.accumulated_response += chunk

    def update_stats(self, tokens_per_second: float | None = None, prompt_tokens: int | None = None,
                     response_tokens: int | None = None) -> None:
        if tokens_per_second is not None:
            self._tokens_per_second = tokens_per_second
        if prompt_tokens is not None:
            self._prompt_tokens = prompt_tokens
        if response_tokens is not None:
            self._response_tokens = response_tokens

    def _processing_time(self) -> float:
        if self._started_at is None:
            return 0.0
        return max(0.0, self._clock() - self._started_at)

    def _finish(self, status: InteractionStatus, error_reason: str | None = None) -> bool:
        if not self.running:
            logger.debug(f"Ignoring '{status.value}' outcome: no generation in progress.")
            return False
        self.interaction_logger.log_interaction(
            user_prompt=self.prompt,
            model_response=self.accumulated_response,
            model_info=self.model_info,
            tokens_per_second=self._tokens_per_second,
            prompt_tokens=self._prompt_tokens,
            response_tokens=self._response_tokens,
            processing_time=self._processing_time(),
            status=status,
            error_reason=error_reason,
        )
        self._reset()
        return True

    def complete(self, tokens_per_second: float | None = None, prompt_tokens: int | None = None,
                 response_tokens: int | None = None) -> bool:
        self.update_stats(tokens_per_second, prompt_tokens, response_tokens)
        return self._finish(InteractionStatus.COMPLETE)

    def fail(self, error: BaseException | str) -> bool:
        logger.warning(f"Generation failed: {error}")
        return self._finish(InteractionStatus.ERRORED, error_reason=str(error))

    def cancel(self) -> bool:
        if self.running:
            logger.info(f"Cancelling generation with {len(self.accumulated_response)} characters accumulated.")
        return self._finish(InteractionStatus.CANCELLED)
