"""
Configuration settings for the agent teams orchestrator.
"""
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import DEFAULT_LEAD_MODEL, DEFAULT_TEAMMATE_MODEL


class Settings(BaseSettings):
    """Application settings, read from AGENT_TEAMS_* variables and .env."""

    model_config = SettingsConfigDict(
        env_prefix="AGENT_TEAMS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Backend
    backend: Literal["claude", "echo"] = "claude"
    claude_binary: str = "claude"
    claude_tools: str = "Read,Glob,Grep,Write,Edit,Bash"  # built-in CLI tools per session
    model: str = DEFAULT_LEAD_MODEL  # lead model
    teammate_model: str = DEFAULT_TEAMMATE_MODEL

    # Coordination
    poll_interval: float = Field(default=2.0, gt=0)  # seconds
    max_turns_per_agent: int = Field(default=20, ge=1)
    streaming: bool = True
    language: str = "auto"  # BCP-47 tag, or "auto" to detect from the first task

    # Timeouts (seconds)
    session_timeout: float = 30.0
    agent_timeout: float = 600.0

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None
