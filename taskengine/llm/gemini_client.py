from typing import Tuple

from google import genai
from google.genai import types

from taskengine.llm.base import BaseLLMClient
from taskengine.models.enums import ModelComplexity, ModelProvider

JSON_ONLY_INSTRUCTION = "IMPORTANT: Respond with valid JSON only."


class GeminiClient(BaseLLMClient):
    provider = ModelProvider.GEMINI
    MODEL_MAP = {
        ModelComplexity.SIMPLE: "gemini-1.5-flash",
        ModelComplexity.STANDARD: "gemini-pro",
        ModelComplexity.COMPLEX: "gemini-1.5-pro",
    }
    MODEL_COSTS = {
        "gemini-pro": (0.5, 1.5),
        "gemini-pro-vision": (0.25, 1.0),
        "gemini-1.5-pro": (1.25, 5.0),
        "gemini-1.5-flash": (0.075, 0.3),
    }
    DEFAULT_MODEL = "gemini-pro"

    def _build_client(self):
        # HttpOptions timeout is in milliseconds
        return genai.Client(
            api_key=self.api_key,
            http_options=types.HttpOptions(timeout=int(self.timeout_s * 1000)),
        )

    def _complete(self, system_prompt, user_prompt, model, temperature, max_tokens, json_mode) -> Tuple[str, int, int]:
        if json_mode:
            system_prompt = f"{system_prompt}\n\n{JSON_ONLY_INSTRUCTION}" if system_prompt else JSON_ONLY_INSTRUCTION

        config_kwargs = {"temperature": temperature, "max_output_tokens": max_tokens}
        if system_prompt:
            config_kwargs["system_instruction"] = system_prompt

        response = self.client.models.generate_content(
            model=model,
            contents=user_prompt,
            config=types.GenerateContentConfig(**config_kwargs),
        )

        text = response.text or ""
        usage = getattr(response, "usage_metadata", None)
        if usage is None:
            return text, 0, 0
        return text, usage.prompt_token_count or 0, usage.candidates_token_count or 0
