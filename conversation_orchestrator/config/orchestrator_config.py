"""
Orchestrator configuration - Settings for the conversation orchestrator
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any
import os
from enum import Enum


class LLMProvider(str, Enum):
    """Supported LLM providers"""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


@dataclass
class LLMConfig:
    """
    Configuration for LLM provider and model.

    Attributes:
        provider: LLM provider (anthropic, openai)
        model_name: Model identifier for the provider
        api_key: API key (reads LLM_API_KEY or the provider variable if not provided)
        temperature: Temperature for response generation (0-2)
        max_tokens: Maximum tokens in response
        timeout: Request timeout in seconds
        extra_params: Additional provider-specific parameters
    """

    provider: str = "anthropic"
    model_name: str = "claude-sonnet-4-20250514"
    api_key: Optional[str] = None
    temperature: float = 0.0
    max_tokens: Optional[int] = None
    timeout: int = 30
    extra_params: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        valid_providers = [p.value for p in LLMProvider]
        if self.provider not in valid_providers:
            raise ValueError(f"Provider must be one of {valid_providers}, got {self.provider}")

        if not 0 <= self.temperature <= 2:
            raise ValueError(f"Temperature must be between 0 and 2, got {self.temperature}")

        if self.timeout < 1:
            raise ValueError("timeout must be at least 1 second")

        # A missing key is reported when the client is built, not here, so
        # the orchestrator can run with an injected model and no credentials.
        if not self.api_key:
            self.api_key = os.getenv('LLM_API_KEY') or os.getenv(self.api_key_env_var)

    @property
    def api_key_env_var(self) -> str:
        return {
            "anthropic": "ANTHROPIC_API_KEY",
            "openai": "OPENAI_API_KEY",
        }.get(self.provider, f"{self.provider.upper()}_API_KEY")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding API key for security."""
        return {
            "provider": self.provider,
            "model_name": self.model_name,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "timeout": self.timeout,
        }


@dataclass
class OrchestratorConfig:
    """
    Configuration settings for the conversation orchestrator.

    Attributes:
        llm: LLM configuration (default: Anthropic Claude Sonnet)
        max_ticks: Supervisor ticks allowed per turn before it is cut off (default: 25)
        max_no_task_retries: Consecutive ticks with pending but unselectable
            tasks before they are failed as deadlocked (default: 3)
        context_history_limit: Entries kept in the rolling context history (default: 10)
        recent_results_limit: Completed results exposed to context resolution (default: 5)
        decision_journal_limit: Routing decisions kept in memory (default: 100)
        use_llm_task_extraction: Ask the LLM to split requests into tasks;
            when False only the heuristic splitter runs
        log_level: Logging level (default: 'INFO')
        debug: Enable debug mode with detailed logging (default: False)
    """

    llm: LLMConfig = field(default_factory=LLMConfig)
    max_ticks: int = 25
    max_no_task_retries: int = 3
    context_history_limit: int = 10
    recent_results_limit: int = 5
    decision_journal_limit: int = 100
    use_llm_task_extraction: bool = True
    log_level: str = "INFO"
    debug: bool = False

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.max_ticks < 1:
            raise ValueError("max_ticks must be at least 1")

        if self.max_no_task_retries < 0:
            raise ValueError("max_no_task_retries cannot be negative")

        if self.context_history_limit < 1:
            raise ValueError("context_history_limit must be at least 1")

        if self.recent_results_limit < 1:
            raise ValueError("recent_results_limit must be at least 1")

        if self.decision_journal_limit < 1:
            raise ValueError("decision_journal_limit must be at least 1")

        if self.log_level not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
            raise ValueError(f"Invalid log_level: {self.log_level}")

        if isinstance(self.llm, dict):
            self.llm = LLMConfig(**self.llm)

    @property
    def recursion_limit(self) -> int:
        """LangGraph step limit for one turn: every tick may visit a pipeline node and the plan node."""
        return self.max_ticks * 4 + 10

    @classmethod
    def from_env(cls, prefix: str = "ORCHESTRATOR_") -> "OrchestratorConfig":
        """
        Create configuration from environment variables.

        Args:
            prefix: Prefix for environment variables (default: "ORCHESTRATOR_")

        Returns:
            Configured OrchestratorConfig instance

        Example:
            export ORCHESTRATOR_LOG_LEVEL=DEBUG
            export ORCHESTRATOR_MAX_TICKS=30
            export ANTHROPIC_API_KEY=sk-...
            config = OrchestratorConfig.from_env()
        """
        max_tokens = os.getenv(f"{prefix}LLM_MAX_TOKENS")
        return cls(
            llm=LLMConfig(
                provider=os.getenv(f"{prefix}LLM_PROVIDER", "anthropic"),
                model_name=os.getenv(f"{prefix}LLM_MODEL", "claude-sonnet-4-20250514"),
                api_key=os.getenv("LLM_API_KEY"),
                temperature=float(os.getenv(f"{prefix}LLM_TEMPERATURE", "0.0")),
                max_tokens=int(max_tokens) if max_tokens else None,
                timeout=int(os.getenv(f"{prefix}TIMEOUT", "30")),
            ),
            max_ticks=int(os.getenv(f"{prefix}MAX_TICKS", "25")),
            max_no_task_retries=int(os.getenv(f"{prefix}MAX_NO_TASK_RETRIES", "3")),
            context_history_limit=int(os.getenv(f"{prefix}CONTEXT_HISTORY_LIMIT", "10")),
            recent_results_limit=int(os.getenv(f"{prefix}RECENT_RESULTS_LIMIT", "5")),
            decision_journal_limit=int(os.getenv(f"{prefix}DECISION_JOURNAL_LIMIT", "100")),
            use_llm_task_extraction=os.getenv(f"{prefix}USE_LLM_TASK_EXTRACTION", "true").lower() == "true",
            log_level=os.getenv(f"{prefix}LOG_LEVEL", "INFO").upper(),
            debug=os.getenv(f"{prefix}DEBUG", "false").lower() == "true",
        )

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "OrchestratorConfig":
        """
        Create configuration from dictionary.

        Example:
            config = OrchestratorConfig.from_dict({
                "llm": {"provider": "anthropic", "api_key": "sk-ant-..."},
                "max_ticks": 30,
                "log_level": "DEBUG"
            })
        """
        config_dict = dict(config_dict)
        llm_config = config_dict.pop("llm", {})
        if isinstance(llm_config, dict):
            llm_config = LLMConfig(**llm_config)

        return cls(llm=llm_config, **config_dict)

    def to_dict(self, include_secrets: bool = False) -> Dict[str, Any]:
        """
        Convert to dictionary.

        Args:
            include_secrets: Whether to include API keys (default: False)
        """
        result = {
            "llm": self.llm.to_dict(),
            "max_ticks": self.max_ticks,
            "max_no_task_retries": self.max_no_task_retries,
            "context_history_limit": self.context_history_limit,
            "recent_results_limit": self.recent_results_limit,
            "decision_journal_limit": self.decision_journal_limit,
            "use_llm_task_extraction": self.use_llm_task_extraction,
            "log_level": self.log_level,
            "debug": self.debug,
        }

        if include_secrets and self.llm.api_key:
            result["llm"]["api_key"] = self.llm.api_key

        return result
