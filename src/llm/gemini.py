"""
Gemini LLM Client Implementation

Uses the Google Gen AI SDK. With GEMINI_API_KEY set the client talks to
the Generative Language API directly; otherwise it goes through Vertex AI
with the GCP project/region.

The request body sent by the SDK is
{contents: [{parts: [{text: prompt}]}], generationConfig: {temperature, maxOutputTokens, ...}}.
"""

import logging
import os
from typing import Optional

from .base import BaseLLMClient, LLMProvider, GenerationConfig, LLMResponse
from .errors import LLMError, RateLimitError, is_quota_error, parse_retry_hint_ms

logger = logging.getLogger(__name__)


def classify_error(exc: Exception) -> LLMError:
    """
    Translate an SDK exception into a typed oracle error.

    google.genai.errors.APIError exposes ``code`` (HTTP status), ``status``
    (e.g. "RESOURCE_EXHAUSTED"), ``message`` and ``details``; other
    exceptions are classified from their string form.

    Args:
        exc: Exception raised by the SDK

    Returns:
        RateLimitError for 429 / quota signals, LLMError otherwise
    """
    if isinstance(exc, LLMError):
        return exc

    code = getattr(exc, "code", None)
    status_code = code if isinstance(code, int) else None
    status = getattr(exc, "status", None) or ""
    details = getattr(exc, "details", None)
    message = getattr(exc, "message", None) or str(exc)

    diagnostic = f"{status} {message}".strip()
    if is_quota_error(status_code, f"{diagnostic} {details or ''}"):
        retry_after_ms = parse_retry_hint_ms(message)
        if retry_after_ms is None:
            retry_after_ms = parse_retry_hint_ms(details)
        return RateLimitError(
            diagnostic,
            status_code=status_code or 429,
            retry_after_ms=retry_after_ms,
        )

    return LLMError(diagnostic, status_code=status_code)


class GeminiClient(BaseLLMClient):
    """
    Gemini client using Google Gen AI SDK.

    Performs a single call per generate(); retries and model fallback
    live in the fallback harness.
    """

    def __init__(
        self,
        model_id: str = "gemini-2.5-flash",
        project_id: str = None,
        region: str = "europe-west4",
        api_key: Optional[str] = None
    ):
        """
        Initialize Gemini client.

        Args:
            model_id: Gemini model ID (e.g., "gemini-2.5-flash", "gemini-2.0-flash")
            project_id: GCP project ID (uses GCP_PROJECT env var if None)
            region: GCP region (uses GCP_REGION env var if None)
            api_key: Gemini API key (uses GEMINI_API_KEY env var if None)
        """
        project_id = project_id or os.environ.get('GCP_PROJECT', 'learnspace')
        region = region or os.environ.get('GCP_REGION', 'europe-west4')

        super().__init__(model_id, project_id, region)
        self.api_key = api_key or os.environ.get('GEMINI_API_KEY')
        self._client = None

    @property
    def provider(self) -> LLMProvider:
        return LLMProvider.GEMINI

    def _initialize(self) -> None:
        """Initialize Google Gen AI client (API key or Vertex AI)."""
        from google import genai

        if self.api_key:
            logger.info(f"Initializing Gemini (API key): model={self.model_id}")
            self._client = genai.Client(api_key=self.api_key)
        else:
            logger.info(f"Initializing Gemini (Vertex AI): model={self.model_id}, project={self.project_id}, region={self.region}")
            self._client = genai.Client(
                vertexai=True,
                project=self.project_id,
                location=self.region
            )

        logger.info(f"Gemini client initialized: {self.model_id}")

    def generate(
        self,
        prompt: str,
        config: Optional[GenerationConfig] = None,
        system_prompt: Optional[str] = None
    ) -> LLMResponse:
        """
        Generate text using Gemini.

        Args:
            prompt: User prompt
            config: Generation configuration
            system_prompt: Optional system instruction

        Returns:
            LLMResponse with generated text (may be empty if the model
            returned no candidates)

        Raises:
            RateLimitError: On 429 / quota exhaustion
            LLMError: On any other API failure
        """
        self._ensure_initialized()

        from google.genai import types

        config = config or GenerationConfig()

        gen_config = types.GenerateContentConfig(
            temperature=config.temperature,
            max_output_tokens=config.max_output_tokens,
            top_p=config.top_p,
            top_k=config.top_k,
            **config.extra
        )

        if system_prompt:
            gen_config.system_instruction = system_prompt

        try:
            response = self._client.models.generate_content(
                model=self.model_id,
                contents=prompt,
                config=gen_config
            )
        except Exception as e:
            error = classify_error(e)
            logger.warning(f"Gemini call failed [model={self.model_id}]: {error.message[:300]}")
            raise error from e

        text = response.text or ""

        usage = getattr(response, 'usage_metadata', None)
        input_tokens = getattr(usage, 'prompt_token_count', None) if usage else None
        output_tokens = getattr(usage, 'candidates_token_count', None) if usage else None

        finish_reason = None
        if response.candidates:
            finish_reason = getattr(response.candidates[0], 'finish_reason', None)

        return LLMResponse(
            text=text,
            model=self.model_id,
            provider=self.provider,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            finish_reason=str(finish_reason) if finish_reason else None,
            raw_response=response
        )
