# krishi/core/generation.py - Gemini text generation client
import asyncio
import logging
from typing import Optional

import google.generativeai as genai

from krishi.core.errors import ValidationServiceUnavailable

logger = logging.getLogger(__name__)


class GenerationClient:
    """Thin wrapper over Gemini. Every failure surfaces as ValidationServiceUnavailable."""

    def __init__(
        self,
        api_key: str = "",
        model_name: str = "gemini-1.5-flash",
        temperature: float = 0.1,
        max_output_tokens: int = 800,
        timeout_seconds: float = 15.0,
    ):
        self.model_name = model_name
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.timeout_seconds = timeout_seconds
        self.model: Optional[genai.GenerativeModel] = None

        if api_key:
            try:
                genai.configure(api_key=api_key)
                self.model = genai.GenerativeModel(model_name)
                logger.info(f"Gemini configured with model {model_name}")
            except Exception as e:
                logger.error(f"Failed to configure Gemini: {e}")
                self.model = None
        else:
            logger.info("No GOOGLE_API_KEY set, generation service disabled")

    @classmethod
    def create(cls, settings) -> "GenerationClient":
        return cls(
            api_key=settings.GOOGLE_API_KEY,
            model_name=settings.LLM_MODEL_NAME,
            temperature=settings.LLM_TEMPERATURE,
            max_output_tokens=settings.LLM_MAX_OUTPUT_TOKENS,
            timeout_seconds=settings.GENERATION_TIMEOUT_SECONDS,
        )

    @property
    def available(self) -> bool:
        return self.model is not None

    async def generate(self, prompt: str) -> str:
        if self.model is None:
            raise ValidationServiceUnavailable("Generation service is not configured")

        try:
            response = await asyncio.wait_for(
                self.model.generate_content_async(
                    prompt,
                    generation_config={
                        "temperature": self.temperature,
                        "max_output_tokens": self.max_output_tokens,
                        "top_p": 0.95,
                        "top_k": 40,
                        "candidate_count": 1,
                    },
                ),
                timeout=self.timeout_seconds,
            )
            text = (response.text or "").strip()
        except asyncio.TimeoutError as e:
            logger.error(f"Generation timed out after {self.timeout_seconds}s")
            raise ValidationServiceUnavailable("Generation timed out") from e
        except Exception as e:
            logger.error(f"Generation failed: {e}")
            raise ValidationServiceUnavailable(str(e)) from e

        if len(text) < 10:
            raise ValidationServiceUnavailable("Generation returned an empty answer")
        return text

    async def close(self):
        self.model = None
