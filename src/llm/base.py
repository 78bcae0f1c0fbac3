"""
LLM Provider Abstraction Layer - Base Classes

Provides a unified interface for the text-generation oracle used by
IR extraction and clustering. Callers go through the fallback harness
(fallback.py); clients here perform exactly one call per generate().
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    GEMINI = "gemini"


@dataclass
class GenerationConfig:
    """
    Model-agnostic generation configuration.

    Maps to provider-specific configs internally.
    """
    temperature: float = 0.7
    max_output_tokens: int = 2048
    top_p: float = 0.95
    top_k: int = 40

    # Provider-specific overrides (optional)
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LLMResponse:
    """
    Unified response from any LLM provider.
    """
    text: str
    model: str
    provider: LLMProvider

    # Usage stats (if available)
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None

    # Raw response for debugging
    raw_response: Optional[Any] = None

    # Finish reason
    finish_reason: Optional[str] = None


class BaseLLMClient(ABC):
    """
    Abstract base class for LLM clients.

    All provider implementations must inherit from this class.
    """

    def __init__(
        self,
        model_id: str,
        project_id: str,
        region: str = "europe-west4"
    ):
        """
        Initialize LLM client.

        Args:
            model_id: Model identifier (e.g., "gemini-2.5-flash")
            project_id: GCP project ID (only used in Vertex AI mode)
            region: GCP region
        """
        self.model_id = model_id
        self.project_id = project_id
        self.region = region
        self._initialized = False

    @property
    @abstractmethod
    def provider(self) -> LLMProvider:
        """Return the provider type."""
        pass

    @abstractmethod
    def _initialize(self) -> None:
        """Initialize the underlying client. Called lazily on first use."""
        pass

    def _ensure_initialized(self) -> None:
        """Ensure client is initialized before use."""
        if not self._initialized:
            self._initialize()
            self._initialized = True

    @abstractmethod
    def generate(
        self,
        prompt: str,
        config: Optional[GenerationConfig] = None,
        system_prompt: Optional[str] = None
    ) -> LLMResponse:
        """
        Generate text from a prompt.

        Args:
            prompt: User prompt
            config: Generation configuration (uses defaults if None)
            system_prompt: Optional system instruction

        Returns:
            LLMResponse with generated text and metadata

        Raises:
            RateLimitError: Quota or rate limit signalled by the provider
            LLMError: Any other provider failure
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model_id}, region={self.region})"
