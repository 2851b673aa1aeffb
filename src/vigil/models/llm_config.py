"""LLM Configuration entity for Vigil.

Defines the configuration for the LLM provider backing the security
classifier. Supports OpenAI, Claude, Gemini, Ollama, and Bedrock.
"""

from dataclasses import dataclass, field

# Valid LLM providers
VALID_PROVIDERS = frozenset({"openai", "claude", "gemini", "ollama", "bedrock"})

DEFAULT_OLLAMA_BASE = "http://localhost:11434"


@dataclass
class LLMConfig:
    """Configuration for LLM provider.

    Attributes:
        provider: LLM provider (openai, claude, gemini, ollama, bedrock)
        model: Model identifier (e.g., "gpt-4o", "claude-3-5-sonnet-latest")
        api_key: API key (not required for Ollama or Bedrock)
        api_base: API base URL (defaults to the local server for Ollama)
        temperature: Temperature setting (must be 0 for repeatable verdicts)
        max_tokens: Maximum response tokens
        timeout: Per-call timeout in seconds
        enabled: Whether the classifier may call the provider at all
    """

    provider: str = "ollama"
    model: str = "llama3.2"
    api_key: str | None = None
    api_base: str | None = None
    temperature: float = field(default=0.0)
    max_tokens: int = field(default=1024)
    timeout: float = field(default=120.0)
    enabled: bool = field(default=True)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self.provider = self.provider.lower().strip()

        if self.provider not in VALID_PROVIDERS:
            raise ValueError(
                f"Invalid provider '{self.provider}'. "
                f"Must be one of: {sorted(VALID_PROVIDERS)}"
            )

        if not self.model or not self.model.strip():
            raise ValueError("Model identifier cannot be empty")
        self.model = self.model.strip()

        # Cached verdicts are only meaningful if the classifier is deterministic
        if self.temperature != 0.0:
            raise ValueError(
                f"Temperature must be 0 for repeatable classification. "
                f"Got: {self.temperature}"
            )

        if self.max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive. Got: {self.max_tokens}")

        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive. Got: {self.timeout}")

        if self.provider == "ollama":
            if not self.api_base:
                self.api_base = DEFAULT_OLLAMA_BASE
        elif self.provider == "bedrock":
            # Bedrock uses AWS credentials from the environment, checked in preflight
            pass
        elif not self.api_key:
            raise ValueError(f"api_key is required for {self.provider} provider")

    @property
    def is_local(self) -> bool:
        """Return True if using a local LLM (no code leaves the machine)."""
        return self.provider == "ollama"

    def validate(self) -> list[str]:
        """Validate configuration and return warnings.

        Returns:
            List of warning messages (empty if no warnings)
        """
        warnings: list[str] = []

        if self.max_tokens < 256:
            warnings.append(
                f"max_tokens is set to {self.max_tokens}, which may truncate verdicts"
            )

        if self.api_base and not self.api_base.startswith(("http://", "https://")):
            warnings.append(
                f"api_base '{self.api_base}' does not start with http:// or https://"
            )

        if not self.is_local:
            warnings.append(
                f"Source code will be sent to the {self.provider} provider"
            )

        return warnings

    def to_dict(self) -> dict[str, str | int | float | bool | None]:
        """Convert to dictionary for serialization.

        The API key is masked so the result is safe to print.
        """
        return {
            "provider": self.provider,
            "model": self.model,
            "api_key": "***" if self.api_key else None,
            "api_base": self.api_base,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "timeout": self.timeout,
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: dict[str, str | int | float | bool | None]) -> "LLMConfig":
        """Create LLMConfig from dictionary.

        Args:
            data: Dictionary with configuration values

        Returns:
            LLMConfig instance
        """
        return cls(
            provider=str(data.get("provider", "ollama")),
            model=str(data.get("model", "llama3.2")),
            api_key=data.get("api_key") if data.get("api_key") else None,  # type: ignore[arg-type]
            api_base=data.get("api_base") if data.get("api_base") else None,  # type: ignore[arg-type]
            temperature=float(data.get("temperature", 0.0)),  # type: ignore[arg-type]
            max_tokens=int(data.get("max_tokens", 1024)),  # type: ignore[arg-type]
            timeout=float(data.get("timeout", 120.0)),  # type: ignore[arg-type]
            enabled=bool(data.get("enabled", True)),
        )

    def get_litellm_model_name(self) -> str:
        """Get the model name in LiteLLM format.

        Returns:
            Model name formatted for LiteLLM
        """
        if self.provider == "ollama":
            return f"ollama/{self.model}"
        elif self.provider == "bedrock":
            return f"bedrock/{self.model}"
        elif self.provider == "gemini":
            return f"gemini/{self.model}"
        elif self.provider == "openai":
            return f"openai/{self.model}"
        else:
            # Claude uses anthropic/ prefix in LiteLLM
            return f"anthropic/{self.model}"
