"""Provider-neutral plumbing shared by every AI model client.

Each concrete client only knows how to turn (system, user, model, temperature,
max_tokens) into (text, input_tokens, output_tokens) for its provider. Retry
with backoff, failure classification, cost estimation and JSON extraction live
here, so every client returns the same PromptResponse shape.
"""
import random
import time
from typing import Callable, Dict, Optional, Protocol, Tuple, runtime_checkable

import structlog

from taskengine.config import (
    LLM_MAX_RETRIES,
    LLM_RETRY_BASE_DELAY_S,
    LLM_RETRY_JITTER_S,
    LLM_TIMEOUT_S,
)
from taskengine.errors import JSONExtractionError
from taskengine.llm.json_extraction import extract_json
from taskengine.models.enums import ModelComplexity, ModelProvider
from taskengine.schemas.responses import PromptResponse, TokenUsage

logger = structlog.get_logger(__name__)

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 4096

NON_RETRYABLE_STATUS_CODES = frozenset({400, 401, 403, 404})
OVERLOADED_STATUS_CODES = frozenset({529})
INVALID_CREDENTIAL_MARKERS = ("invalid api key", "unauthorized", "api key not valid", "api_key_invalid")


@runtime_checkable
class LLMClient(Protocol):
    """What the prompt library needs from a provider client."""

    provider: ModelProvider

    @property
    def default_model(self) -> str: ...

    def select_model(self, complexity: ModelComplexity) -> str: ...

    def execute_raw(
        self,
        system_prompt: str,
        user_prompt: str,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> PromptResponse: ...

    def execute_prompt_for_json(
        self,
        system_prompt: str,
        user_prompt: str,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> PromptResponse: ...


def error_status(exc: BaseException) -> Optional[int]:
    # anthropic/openai expose status_code, google-genai exposes code
    for attr in ("status_code", "status", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


class BaseLLMClient:
    provider: ModelProvider
    MODEL_MAP: Dict[ModelComplexity, str] = {}
    # USD per 1M tokens: (input, output)
    MODEL_COSTS: Dict[str, Tuple[float, float]] = {}
    DEFAULT_MODEL: str = ""
    # SDK exception types that can never succeed on retry (auth, permission)
    NON_RETRYABLE_EXCEPTIONS: Tuple[type, ...] = ()

    def __init__(
        self,
        api_key: str,
        default_model: Optional[str] = None,
        base_url: Optional[str] = None,
        max_retries: int = LLM_MAX_RETRIES,
        timeout_s: float = LLM_TIMEOUT_S,
        retry_base_delay_s: float = LLM_RETRY_BASE_DELAY_S,
        retry_jitter_s: float = LLM_RETRY_JITTER_S,
        client=None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.api_key = api_key
        self._default_model = default_model or self.DEFAULT_MODEL
        self.base_url = base_url
        self.max_retries = max_retries
        self.timeout_s = timeout_s
        self.retry_base_delay_s = retry_base_delay_s
        self.retry_jitter_s = retry_jitter_s
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.client = client if client is not None else self._build_client()

    @property
    def default_model(self) -> str:
        return self._default_model

    def _build_client(self):
        raise NotImplementedError

    def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        temperature: float,
        max_tokens: int,
        json_mode: bool,
    ) -> Tuple[str, int, int]:
        """One provider call. Returns (text, input_tokens, output_tokens) or raises."""
        raise NotImplementedError

    def select_model(self, complexity: ModelComplexity) -> str:
        return self.MODEL_MAP[ModelComplexity(complexity)]

    def calculate_cost(self, model: str, input_tokens: int, output_tokens: int) -> float:
        costs = self.MODEL_COSTS.get(model)
        if not costs:
            return 0.0
        input_rate, output_rate = costs
        return (input_tokens / 1_000_000) * input_rate + (output_tokens / 1_000_000) * output_rate

    def is_non_retryable(self, exc: BaseException) -> bool:
        if self.NON_RETRYABLE_EXCEPTIONS and isinstance(exc, self.NON_RETRYABLE_EXCEPTIONS):
            return True
        if error_status(exc) in NON_RETRYABLE_STATUS_CODES:
            return True
        message = str(exc).lower()
        return any(marker in message for marker in INVALID_CREDENTIAL_MARKERS)

    @staticmethod
    def is_overloaded(exc: BaseException) -> bool:
        return error_status(exc) in OVERLOADED_STATUS_CODES or "overloaded" in str(exc).lower()

    def backoff_delay(self, attempt: int, exc: BaseException) -> float:
        delay = self.retry_base_delay_s * (2 ** attempt)
        if self.is_overloaded(exc):
            delay *= 2
        if self.retry_jitter_s:
            delay += self._rng.uniform(0, self.retry_jitter_s)
        return delay

    def _retry_with_backoff(self, fn: Callable):
        """Run fn, retrying up to max_retries more times on retryable failures."""
        for attempt in range(self.max_retries + 1):
            try:
                return fn()
            except Exception as exc:
                if self.is_non_retryable(exc) or attempt == self.max_retries:
                    raise
                delay = self.backoff_delay(attempt, exc)
                logger.warning(
                    "llm_call_retry",
                    provider=self.provider.value,
                    attempt=attempt + 1,
                    delay_s=delay,
                    error=str(exc),
                )
                self._sleep(delay)

    def _execute(
        self,
        system_prompt: str,
        user_prompt: str,
        model: Optional[str],
        temperature: Optional[float],
        max_tokens: Optional[int],
        json_mode: bool,
    ) -> PromptResponse:
        t0 = time.monotonic()
        model_to_use = model or self.default_model
        temperature = DEFAULT_TEMPERATURE if temperature is None else temperature
        max_tokens = max_tokens or DEFAULT_MAX_TOKENS

        try:
            text, input_tokens, output_tokens = self._retry_with_backoff(
                lambda: self._complete(system_prompt, user_prompt, model_to_use, temperature, max_tokens, json_mode)
            )
        except Exception as exc:
            duration_ms = int((time.monotonic() - t0) * 1000)
            logger.error("llm_call_failed", provider=self.provider.value, model=model_to_use, error=str(exc))
            return PromptResponse(
                success=False,
                error=str(exc) or exc.__class__.__name__,
                duration_ms=duration_ms,
                model=model_to_use,
                status_code=error_status(exc),
            )

        duration_ms = int((time.monotonic() - t0) * 1000)
        return PromptResponse(
            success=True,
            data=text,
            raw_response=text,
            tokens_used=TokenUsage(input=input_tokens, output=output_tokens),
            cost_estimate=self.calculate_cost(model_to_use, input_tokens, output_tokens),
            duration_ms=duration_ms,
            model=model_to_use,
        )

    def execute_raw(
        self,
        system_prompt: str,
        user_prompt: str,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> PromptResponse:
        return self._execute(system_prompt, user_prompt, model, temperature, max_tokens, json_mode=False)

    def execute_prompt_for_json(
        self,
        system_prompt: str,
        user_prompt: str,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> PromptResponse:
        response = self._execute(system_prompt, user_prompt, model, temperature, max_tokens, json_mode=True)
        if not response.success:
            return response
        try:
            response.data = extract_json(response.raw_response)
        except JSONExtractionError as e:
            response.success = False
            response.data = None
            response.error = f"Failed to parse JSON: {e}"
        return response
