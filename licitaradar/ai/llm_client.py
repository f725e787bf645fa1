"""Thin async wrapper around the Google Gemini SDK.

All provider access goes through ``LLMClient`` so the pipeline can be
driven by test doubles implementing the same two coroutines. SDK errors
are translated into ``AIProviderError`` with the provider status code,
which the retry policy classifies.
"""

from typing import List, Optional, Protocol, Sequence, Union

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from licitaradar.core.exceptions import AIProviderError
from licitaradar.core.logging import get_logger
from licitaradar.settings import Settings, settings as default_settings

logger = get_logger("ai.llm_client")

Contents = Union[str, Sequence[str]]

# Procurement texts routinely mention weapons, prisons, health... keep the
# filters permissive so legitimate notices are not blocked.
SAFETY_CATEGORIES = [
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
]
SAFETY_THRESHOLD = "BLOCK_ONLY_HIGH"


class LLMClient(Protocol):
    """What the pipeline needs from a generative-AI provider."""

    async def generate(
        self,
        contents: Contents,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
        json_output: bool = False,
    ) -> str: ...

    async def embed(self, text: str, task_type: str) -> List[float]: ...


class GeminiClient:
    """Gemini implementation of ``LLMClient``."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[genai.Client] = None,
    ):
        """Initialize Gemini client.

        Args:
            settings: Optional settings instance
            client: Optional pre-built ``genai.Client``
        """
        self._settings = settings or default_settings
        self._client = client or genai.Client(api_key=self._settings.gemini_api_key)

    def _safety_settings(self) -> List[types.SafetySetting]:
        return [
            types.SafetySetting(category=category, threshold=SAFETY_THRESHOLD)
            for category in SAFETY_CATEGORIES
        ]

    async def generate(
        self,
        contents: Contents,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
        json_output: bool = False,
    ) -> str:
        """Single-turn generation; returns the response text ("" if blocked)."""
        model = model or self._settings.generation_model
        config = types.GenerateContentConfig(
            temperature=self._settings.ai_temperature if temperature is None else temperature,
            max_output_tokens=max_output_tokens or self._settings.ai_max_output_tokens,
            safety_settings=self._safety_settings(),
            response_mime_type="application/json" if json_output else None,
        )
        payload = contents if isinstance(contents, str) else list(contents)

        try:
            response = await self._client.aio.models.generate_content(
                model=model,
                contents=payload,
                config=config,
            )
        except genai_errors.APIError as e:
            logger.warning("Gemini (%s) falhou: %s %s", model, e.code, e.message)
            raise AIProviderError(
                f"Falha na comunicação com a IA Gemini: {e.message}",
                status_code=e.code,
                model=model,
            ) from e

        if response.usage_metadata:
            logger.debug(
                "AI-Usage: %s | %s+%s tokens",
                model,
                response.usage_metadata.prompt_token_count,
                response.usage_metadata.candidates_token_count,
            )
        return response.text or ""

    async def embed(self, text: str, task_type: str) -> List[float]:
        """Embed one text with the given task type."""
        model = self._settings.embedding_model
        try:
            result = await self._client.aio.models.embed_content(
                model=model,
                contents=text,
                config=types.EmbedContentConfig(task_type=task_type),
            )
        except genai_errors.APIError as e:
            raise AIProviderError(
                f"Falha na geração de embedding: {e.message}",
                status_code=e.code,
                model=model,
            ) from e

        if not result.embeddings:
            raise AIProviderError("Resposta de embedding vazia", model=model)
        return list(result.embeddings[0].values or [])
