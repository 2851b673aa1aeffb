"""LLM integration module for Vigil.

Provides unified LLM client wrapper using LiteLLM for multi-provider support.
Supports OpenAI, Claude, Gemini, Ollama, and Bedrock providers.

Temperature is fixed at 0 so that a cached verdict is the verdict the
classifier would give again.
"""

from vigil.llm.client import LLMClient, LLMError, LLMResponse, create_client
from vigil.llm.prompts import (
    CLASSIFIER_SYSTEM_PROMPT_TEMPLATE,
    VERDICT_FIELDS,
    build_system_prompt,
    build_user_prompt,
    number_lines,
)
from vigil.models.llm_config import VALID_PROVIDERS, LLMConfig

__all__ = [
    "CLASSIFIER_SYSTEM_PROMPT_TEMPLATE",
    "LLMClient",
    "LLMConfig",
    "LLMError",
    "LLMResponse",
    "VALID_PROVIDERS",
    "VERDICT_FIELDS",
    "build_system_prompt",
    "build_user_prompt",
    "create_client",
    "number_lines",
]
