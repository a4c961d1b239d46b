from typing import Tuple

import anthropic
import httpx

from taskengine.llm.base import BaseLLMClient
from taskengine.models.enums import ModelComplexity, ModelProvider


class ClaudeClient(BaseLLMClient):
    provider = ModelProvider.ANTHROPIC
    MODEL_MAP = {
        ModelComplexity.SIMPLE: "claude-haiku-4-5-20251001",
        ModelComplexity.STANDARD: "claude-sonnet-4-5-20250929",
        ModelComplexity.COMPLEX: "claude-opus-4-1-20250514",
    }
    MODEL_COSTS = {
        "claude-haiku-4-5-20251001": (0.80, 4.00),
        "claude-sonnet-4-5-20250929": (3.00, 15.00),
        "claude-opus-4-1-20250514": (15.00, 75.00),
    }
    DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
    NON_RETRYABLE_EXCEPTIONS = (anthropic.AuthenticationError, anthropic.PermissionDeniedError)

    def _build_client(self):
        # Retries are ours, so the SDK's own are switched off
        return anthropic.Anthropic(
            api_key=self.api_key,
            base_url=self.base_url or None,
            max_retries=0,
            timeout=httpx.Timeout(self.timeout_s, connect=10.0),
        )

    def _complete(self, system_prompt, user_prompt, model, temperature, max_tokens, json_mode) -> Tuple[str, int, int]:
        kwargs = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        response = self.client.messages.create(**kwargs)

        text = ""
        for block in response.content or []:
            if getattr(block, "type", None) == "text":
                text += block.text
        usage = response.usage
        return text, usage.input_tokens or 0, usage.output_tokens or 0
