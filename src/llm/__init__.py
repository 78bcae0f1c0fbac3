"""
LLM Provider Abstraction Layer

Unified interface for the Gemini text-generation oracle plus the model
fallback harness shared by IR extraction and clustering.

Usage:
    # Single model
    from src.llm import get_client
    client = get_client("flash")
    response = client.generate("Summarize this text...")

    # Fallback chain for a caller (clustering tries the strongest model first)
    from src.llm import GenerationConfig, generate_with_fallback, get_fallback_models
    response = generate_with_fallback(
        prompt,
        GenerationConfig(temperature=0.3, max_output_tokens=8192),
        get_fallback_models("clustering"),
    )

Environment Variables:
    GEMINI_API_KEY: Gemini API key (Vertex AI is used when unset)
    LLM_FALLBACK_CLUSTERING / LLM_FALLBACK_EXTRACTION: Comma-separated model chains
    LLM_QUOTA_BACKOFF_MS: Wait after a quota error without retry hint (default: 25000)
    LLM_QUOTA_BACKOFF_MAX_MS: Upper bound for any quota wait (default: 30000)
    GCP_PROJECT: GCP project ID (Vertex AI mode)
    GCP_REGION: GCP region (Vertex AI mode)
"""

import logging
from typing import Dict, Optional

from .base import BaseLLMClient, GenerationConfig, LLMProvider, LLMResponse
from .config import (
    FALLBACK_CHAINS,
    MODEL_ALIASES,
    MODEL_REGISTRY,
    ModelInfo,
    get_fallback_models,
    get_gcp_config,
    get_model_info,
    resolve_model_name,
)
from .errors import LLMError, LLMExhaustedError, RateLimitError
from .fallback import compute_backoff_ms, generate_with_fallback

logger = logging.getLogger(__name__)

# Client cache for reuse
_client_cache: Dict[str, BaseLLMClient] = {}


def get_client(
    model: str,
    project_id: Optional[str] = None,
    region: Optional[str] = None,
    cache: bool = True,
) -> BaseLLMClient:
    """
    Get an LLM client for the specified model.

    Args:
        model: Model name or alias (e.g., "gemini-2.5-flash", "flash-lite")
        project_id: GCP project ID (uses GCP_PROJECT env var if None)
        region: GCP region (uses GCP_REGION env var if None)
        cache: Whether to cache and reuse client instances (default: True)

    Returns:
        Configured LLM client

    Raises:
        ValueError: If model is not supported
    """
    model_name = resolve_model_name(model)

    cache_key = f"{model_name}:{project_id}:{region}"
    if cache and cache_key in _client_cache:
        return _client_cache[cache_key]

    model_info = get_model_info(model_name)
    if not model_info:
        available = ", ".join(list(MODEL_REGISTRY.keys()) + list(MODEL_ALIASES.keys()))
        raise ValueError(f"Unknown model: {model_name}. Available: {available}")

    default_project, default_region = get_gcp_config()

    if model_info.provider == LLMProvider.GEMINI:
        from .gemini import GeminiClient

        client = GeminiClient(
            model_id=model_info.model_id,
            project_id=project_id or default_project,
            region=region or default_region,
        )
    else:
        raise ValueError(f"Unsupported provider: {model_info.provider}")

    if cache:
        _client_cache[cache_key] = client

    logger.info(f"Created LLM client: {client}")
    return client


def clear_cache() -> None:
    """Clear the client cache."""
    _client_cache.clear()
    logger.info("LLM client cache cleared")


__all__ = [
    # Main factory
    "get_client",
    "generate_with_fallback",
    "compute_backoff_ms",
    # Types
    "BaseLLMClient",
    "LLMProvider",
    "GenerationConfig",
    "LLMResponse",
    "ModelInfo",
    # Errors
    "LLMError",
    "RateLimitError",
    "LLMExhaustedError",
    # Config utilities
    "FALLBACK_CHAINS",
    "get_model_info",
    "get_fallback_models",
    "clear_cache",
]
