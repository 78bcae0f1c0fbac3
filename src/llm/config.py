"""
LLM Configuration and Model Registry

Defines available models, per-caller fallback chains and quota backoff
settings. Model selection via environment variables.
"""

import os
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional
from .base import LLMProvider

logger = logging.getLogger(__name__)


@dataclass
class ModelInfo:
    """Information about a specific model."""
    model_id: str
    provider: LLMProvider
    description: str
    max_output: int  # Max output tokens


# Model Registry - All available models
MODEL_REGISTRY: Dict[str, ModelInfo] = {
    "gemini-2.5-flash": ModelInfo(
        model_id="gemini-2.5-flash",
        provider=LLMProvider.GEMINI,
        description="Gemini 2.5 Flash - Balanced speed/quality (GA)",
        max_output=65536,
    ),
    "gemini-2.0-flash": ModelInfo(
        model_id="gemini-2.0-flash",
        provider=LLMProvider.GEMINI,
        description="Gemini 2.0 Flash - Legacy, cost-effective",
        max_output=8192,
    ),
    "gemini-2.5-flash-lite": ModelInfo(
        model_id="gemini-2.5-flash-lite",
        provider=LLMProvider.GEMINI,
        description="Gemini 2.5 Flash-Lite - Cheapest, separate quota bucket",
        max_output=65536,
    ),
    "gemini-2.0-flash-lite": ModelInfo(
        model_id="gemini-2.0-flash-lite",
        provider=LLMProvider.GEMINI,
        description="Gemini 2.0 Flash-Lite - Legacy, cheapest",
        max_output=8192,
    ),
}

# Aliases for convenience
MODEL_ALIASES: Dict[str, str] = {
    "gemini": "gemini-2.5-flash",
    "gemini-flash": "gemini-2.5-flash",
    "flash": "gemini-2.5-flash",
    "flash-2.0": "gemini-2.0-flash",
    "flash-lite": "gemini-2.5-flash-lite",
    "lite": "gemini-2.5-flash-lite",
}

# Ordered fallback chains per caller, highest priority first
FALLBACK_CHAINS: Dict[str, List[str]] = {
    "clustering": ["gemini-2.5-flash", "gemini-2.0-flash", "gemini-2.5-flash-lite"],
    "extraction": ["gemini-2.0-flash", "gemini-2.5-flash", "gemini-2.5-flash-lite"],
}

# Quota backoff (milliseconds)
DEFAULT_QUOTA_BACKOFF_MS = 25_000
MAX_QUOTA_BACKOFF_MS = 30_000


def resolve_model_name(name: str) -> str:
    """
    Resolve model name from alias or return as-is.

    Args:
        name: Model name or alias

    Returns:
        Resolved model name
    """
    return MODEL_ALIASES.get(name.lower(), name)


def get_model_info(name: str) -> Optional[ModelInfo]:
    """
    Get model info by name or alias.

    Args:
        name: Model name or alias

    Returns:
        ModelInfo or None if not found
    """
    resolved = resolve_model_name(name)
    return MODEL_REGISTRY.get(resolved)


def get_fallback_models(purpose: str) -> List[str]:
    """
    Get the ordered model list for a caller.

    Environment variables:
        LLM_FALLBACK_<PURPOSE>: Comma-separated override
            (e.g. LLM_FALLBACK_CLUSTERING="gemini-2.5-flash,flash-lite")

    Args:
        purpose: Caller key in FALLBACK_CHAINS ("clustering", "extraction")

    Returns:
        Resolved model names, highest priority first

    Raises:
        ValueError: If purpose is unknown and no override is set
    """
    override = os.environ.get(f"LLM_FALLBACK_{purpose.upper()}", "").strip()
    if override:
        models = [resolve_model_name(m.strip()) for m in override.split(",") if m.strip()]
        unknown = [m for m in models if m not in MODEL_REGISTRY]
        if unknown:
            logger.warning(f"Unregistered models in LLM_FALLBACK_{purpose.upper()}: {unknown}")
        if models:
            return models

    if purpose not in FALLBACK_CHAINS:
        raise ValueError(f"Unknown fallback purpose: {purpose}. Available: {', '.join(FALLBACK_CHAINS)}")

    return list(FALLBACK_CHAINS[purpose])


def get_quota_backoff() -> tuple[int, int]:
    """
    Get quota backoff settings from environment.

    Returns:
        Tuple of (default_backoff_ms, max_backoff_ms)
    """
    default_ms = int(os.environ.get('LLM_QUOTA_BACKOFF_MS', DEFAULT_QUOTA_BACKOFF_MS))
    max_ms = int(os.environ.get('LLM_QUOTA_BACKOFF_MAX_MS', MAX_QUOTA_BACKOFF_MS))
    return default_ms, max_ms


def get_gcp_config() -> tuple[str, str]:
    """
    Get GCP project and region from environment.

    Returns:
        Tuple of (project_id, region)
    """
    project = os.environ.get('GCP_PROJECT', 'learnspace')
    region = os.environ.get('GCP_REGION', 'europe-west4')
    return project, region
