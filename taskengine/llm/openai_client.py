from typing import Tuple

import httpx
import openai
from openai import OpenAI

from taskengine.config import DEEPSEEK_DEFAULT_BASE_URL
from taskengine.llm.base import BaseLLMClient
from taskengine.models.enums import ModelComplexity, ModelProvider


class OpenAIClient(BaseLLMClient):
    provider = ModelProvider.OPENAI
    MODEL_MAP = {
        ModelComplexity.SIMPLE: "gpt-4o-mini",
        ModelComplexity.STANDARD: "gpt-4o",
        ModelComplexity.COMPLEX: "gpt-4-turbo",
    }
    MODEL_COSTS = {
        "gpt-4": (30.0, 60.0),
        "gpt-4-turbo": (10.0, 30.0),
        "gpt-3.5-turbo": (0.5, 1.5),
        "gpt-4o": (5.0, 15.0),
        "gpt-4o-mini": (0.15, 0.6),
    }
    DEFAULT_MODEL = "gpt-4"
    NON_RETRYABLE_EXCEPTIONS = (openai.AuthenticationError, openai.PermissionDeniedError)

    def _build_client(self):
        return OpenAI(
            api_key=self.api_key,
            base_url=self.base_url or None,
            max_retries=0,
            timeout=httpx.Timeout(self.timeout_s, connect=10.0),
        )

    def _complete(self, system_prompt, user_prompt, model, temperature, max_tokens, json_mode) -> Tuple[str, int, int]:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        response = self.client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )

        text = ""
        if response.choices:
            text = response.choices[0].message.content or ""
        usage = response.usage
        if usage is None:
            return text, 0, 0
        return text, usage.prompt_tokens or 0, usage.completion_tokens or 0


class DeepSeekClient(OpenAIClient):
    """DeepSeek speaks the OpenAI chat-completions protocol on its own base URL.

    Costs come from the OpenAI price table, so DeepSeek model names estimate to 0.
    """

    provider = ModelProvider.DEEPSEEK
    DEFAULT_MODEL = "deepseek-reasoner"

    def __init__(self, api_key: str, base_url=None, **kwargs):
        super().__init__(api_key, base_url=base_url or DEEPSEEK_DEFAULT_BASE_URL, **kwargs)
