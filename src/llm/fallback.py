"""
Model fallback harness.

Walks an ordered list of models for one prompt and masks oracle
flakiness from callers:

- first non-empty response wins (no quality comparison across models)
- rate limit / quota: sleep min(hint, 30s) (25s without a hint), then
  move on to the next model
- empty response: move on to the next model
- any other error: abort immediately
"""

import logging
import time
from typing import List, Optional

from .base import GenerationConfig, LLMResponse
from .config import get_quota_backoff
from .errors import LLMExhaustedError, RateLimitError

logger = logging.getLogger(__name__)


def compute_backoff_ms(retry_after_ms: Optional[int]) -> int:
    """
    Compute how long to wait after a quota signal.

    Args:
        retry_after_ms: Hint parsed from the error payload, if any

    Returns:
        Delay in milliseconds, capped at the configured maximum
    """
    default_ms, max_ms = get_quota_backoff()
    if retry_after_ms is None:
        return min(default_ms, max_ms)
    return max(0, min(retry_after_ms, max_ms))


def generate_with_fallback(
    prompt: str,
    config: GenerationConfig,
    models: List[str],
    label: str = "llm",
) -> LLMResponse:
    """
    Generate text, falling back across models.

    Calls are strictly sequential; at most one request is outstanding.

    Args:
        prompt: Prompt text
        config: Generation configuration shared by every attempt
        models: Model names in priority order
        label: Caller label for logging

    Returns:
        LLMResponse from the first model that produced non-empty text

    Raises:
        LLMError: Non-quota failure from a model (not retried)
        LLMExhaustedError: Every model failed or was rate limited
    """
    # Deferred: the package __init__ imports this module
    from . import get_client

    if not models:
        raise LLMExhaustedError(f"[{label}] No models configured")

    last_message = None

    for index, model in enumerate(models):
        client = get_client(model)
        logger.info(f"[{label}] Calling {model} ({index + 1}/{len(models)})")

        try:
            response = client.generate(prompt, config)
        except RateLimitError as e:
            last_message = e.message
            delay_ms = compute_backoff_ms(e.retry_after_ms)
            logger.warning(
                f"[{label}] Quota/rate limit on {model}; waiting {delay_ms / 1000:.1f}s "
                f"before next model (hint={e.retry_after_ms}ms)"
            )
            time.sleep(delay_ms / 1000)
            continue

        if response.text and response.text.strip():
            logger.info(f"[{label}] Got response from {model} ({len(response.text)} chars)")
            return response

        last_message = f"No content generated from {model} (finish_reason={response.finish_reason})"
        logger.warning(f"[{label}] {last_message}")

    raise LLMExhaustedError(
        f"[{label}] All models exhausted ({', '.join(models)}): {last_message}",
        last_message=last_message,
    )
