"""Unified LLM client wrapper using LiteLLM.

Provides a consistent interface for multiple LLM providers.
Sampling is fixed at temperature 0 so cached verdicts stay meaningful.
"""

import logging
from dataclasses import dataclass

import litellm

from vigil.models.llm_config import LLMConfig

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Response from LLM completion.

    Attributes:
        content: Generated text content
        model: Model that generated the response
        usage: Token usage statistics
        finish_reason: Reason for completion (stop, length, etc.)
    """

    content: str
    model: str
    usage: dict[str, int]
    finish_reason: str | None = None


class LLMClient:
    """Unified LLM client using LiteLLM.

    Supports multiple providers through a single interface:
    - OpenAI
    - Claude (Anthropic)
    - Gemini (Google)
    - Ollama (local)
    - Bedrock (AWS)
    """

    def __init__(self, config: LLMConfig) -> None:
        """Initialize LLM client with configuration.

        Args:
            config: LLM configuration with provider, model, and credentials
        """
        self.config = config

    def complete(
        self,
        prompt: str,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Generate a completion from the LLM.

        Args:
            prompt: User prompt for the LLM
            system_prompt: Optional system prompt
            max_tokens: Override max_tokens from config
            json_mode: Ask the provider for a JSON object response

        Returns:
            LLMResponse with generated content

        Raises:
            LLMError: If the completion fails or times out
        """
        messages: list[dict[str, str]] = []

        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})

        messages.append({"role": "user", "content": prompt})

        try:
            completion_kwargs: dict = {
                "model": self.config.get_litellm_model_name(),
                "messages": messages,
                "temperature": 0,
                "max_tokens": max_tokens or self.config.max_tokens,
                "timeout": self.config.timeout,
                "api_key": self.config.api_key,
                # Providers without JSON mode silently ignore response_format
                "drop_params": True,
            }

            if self.config.api_base:
                completion_kwargs["api_base"] = self.config.api_base

            if json_mode:
                completion_kwargs["response_format"] = {"type": "json_object"}

            response = litellm.completion(**completion_kwargs)

            choice = response.choices[0]
            content = choice.message.content or ""

            usage = {}
            if response.usage:
                usage = {
                    "prompt_tokens": response.usage.prompt_tokens or 0,
                    "completion_tokens": response.usage.completion_tokens or 0,
                    "total_tokens": response.usage.total_tokens or 0,
                }

            return LLMResponse(
                content=content,
                model=response.model or self.config.model,
                usage=usage,
                finish_reason=choice.finish_reason,
            )

        except litellm.exceptions.Timeout as e:
            raise LLMError(
                f"Request to {self.config.provider} timed out after {self.config.timeout}s: {e}"
            ) from e
        except litellm.exceptions.AuthenticationError as e:
            raise LLMError(f"Authentication failed for {self.config.provider}: {e}") from e
        except litellm.exceptions.RateLimitError as e:
            raise LLMError(f"Rate limit exceeded for {self.config.provider}: {e}") from e
        except litellm.exceptions.APIConnectionError as e:
            raise LLMError(f"Connection failed to {self.config.provider}: {e}") from e
        except Exception as e:
            raise LLMError(f"LLM completion failed: {e}") from e

    def check_available(self) -> bool:
        """Check if the LLM provider is available.

        Performs a minimal API call to verify connectivity.

        Returns:
            True if provider is reachable and credentials are valid
        """
        try:
            self.complete("Say 'ok'", max_tokens=10)
            return True
        except LLMError as e:
            logger.debug("LLM availability check failed: %s", e)
            return False


class LLMError(Exception):
    """Exception raised for LLM-related errors."""

    pass


def create_client(config: LLMConfig) -> LLMClient:
    """Create an LLM client from configuration.

    Factory function for creating LLM clients.

    Args:
        config: LLM configuration

    Returns:
        Configured LLMClient instance

    Raises:
        ValueError: If LLM is disabled in config
    """
    if not config.enabled:
        raise ValueError("LLM is disabled in configuration")

    return LLMClient(config)
