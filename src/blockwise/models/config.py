"""Configuration models for Blockwise."""

from pydantic import BaseModel, Field, HttpUrl
from pathlib import Path
import yaml
import os
import stat


DEFAULT_CONFIG_PATH = Path.home() / ".config" / "blockwise" / "config.yaml"


class LLMConfig(BaseModel):
    """Configuration for LLM API connection."""

    endpoint: HttpUrl = Field(
        ...,
        description="LLM API endpoint URL (OpenAI or Ollama compatible)"
    )

    api_key: str = Field(
        ...,
        description="API key for authentication"
    )

    model: str = Field(
        ...,
        description="Model identifier (e.g., 'gpt-4o', 'llama3')"
    )

    num_ctx: int = Field(
        default=32768,
        ge=1024,
        description="Context window size (Ollama-specific, controls VRAM usage)"
    )

    temperature: float = Field(
        default=0.3,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for agent turns"
    )

    model_config = {"frozen": True}


class AgentConfig(BaseModel):
    """Tuning for multi-turn agent sessions."""

    max_edits_per_iteration: int = Field(
        default=12,
        ge=1,
        description="Edits the model may propose per turn"
    )

    summarize_every_n_iterations: int = Field(
        default=5,
        ge=1,
        description="Compact history after this many iterations since the last summary"
    )

    max_iterations: int = Field(
        default=50,
        ge=1,
        description="Hard stop for continuation rounds in one session"
    )

    ack_timeout_seconds: float = Field(
        default=2.0,
        gt=0,
        description="How long to wait for an edit to be acknowledged before moving on"
    )

    edit_gap_seconds: float = Field(
        default=0.05,
        ge=0,
        description="Pause between consecutive edits"
    )

    continuation_delay_seconds: float = Field(
        default=0.2,
        ge=0,
        description="Pause before issuing a continuation request"
    )

    max_context_chars: int = Field(
        default=35000,
        ge=1000,
        description="Annotated document text sent in agent mode is cut to this size"
    )

    ask_context_chars: int = Field(
        default=20000,
        ge=1000,
        description="Document text sent in ask mode is cut to this size"
    )

    history_limit: int = Field(
        default=10,
        ge=0,
        description="Recent messages sent when no summary exists"
    )

    summary_history_limit: int = Field(
        default=4,
        ge=0,
        description="Messages after the summary sent alongside it"
    )

    auto_apply: bool = Field(
        default=True,
        description="Apply edits as they arrive instead of waiting for review"
    )

    model_config = {"frozen": True}


class Config(BaseModel):
    """Root configuration for Blockwise."""

    llm: LLMConfig = Field(..., description="LLM API settings")
    agent: AgentConfig = Field(default_factory=AgentConfig, description="Agent session settings")

    @classmethod
    def load(cls, path: Path) -> "Config":
        """
        Load configuration from YAML file.

        Validates file permissions before loading.
        Raises PermissionError if file is group/world readable.

        Args:
            path: Path to config.yaml file

        Returns:
            Validated Config instance

        Raises:
            PermissionError: If file permissions are too open
            FileNotFoundError: If config file doesn't exist
            ValueError: If YAML is invalid or validation fails
        """
        if not path.exists():
            raise FileNotFoundError(
                f"Configuration file not found at {path}\n\n"
                f"Please create the file with the following format:\n\n"
                f"llm:\n"
                f"  endpoint: https://api.openai.com/v1\n"
                f"  api_key: YOUR_API_KEY_HERE\n"
                f"  model: gpt-4o\n\n"
                f"agent:\n"
                f"  max_edits_per_iteration: 12\n"
                f"  auto_apply: true\n"
            )

        # Check file permissions (must be 600)
        mode = os.stat(path).st_mode
        if mode & (stat.S_IRWXG | stat.S_IRWXO):
            raise PermissionError(
                f"Config file has overly permissive permissions: {oct(mode)}\n"
                f"Run: chmod 600 {path}"
            )

        with open(path) as f:
            data = yaml.safe_load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Config file must contain a YAML mapping: {path}")

        return cls(**data)

    model_config = {"frozen": True}
