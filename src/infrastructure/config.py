"""
infrastructure.config - Typed, injectable configuration.

A frozen dataclass that can be constructed from environment or passed
explicitly in tests.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Settings:
    """Centralized configuration for the agent orchestration core.

    No module-level globals; construct via from_env() or pass explicitly
    in tests.
    """

    # ── LLM Provider ────────────────────────────────────────────
    # Allowed: "openai", "groq", "ollama"
    llm_provider: str = "openai"

    # Model names. Only the one matching llm_provider is used.
    llm_model_openai: str = "gpt-4o-mini"
    llm_model_groq: str = "llama-3.3-70b-versatile"
    llm_model_ollama: str = "llama3.2"

    # Connection details
    openai_api_key: str = ""
    openai_base_url: str = ""
    groq_api_key: str = ""
    ollama_base_url: str = "http://localhost:11434/"

    # Database
    db_path: str = "agent.db"
    # Project-scoped tables live here; empty means "same file as db_path".
    project_db_path: str = ""

    # ── Orchestration ───────────────────────────────────────────
    agent_max_rounds: int = 5
    history_max_messages: int = 20
    model_max_tokens: int = 4000
    final_max_tokens: int = 2000
    model_retry_attempts: int = 3
    model_retry_delay_seconds: float = 1.0

    @property
    def active_llm_model(self) -> str:
        """Return the model name for the currently active LLM provider."""
        if self.llm_provider == "groq":
            return self.llm_model_groq
        elif self.llm_provider == "ollama":
            return self.llm_model_ollama
        return self.llm_model_openai

    @property
    def resolved_project_db_path(self) -> str:
        return self.project_db_path or self.db_path

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> Settings:
        """Build Settings from environment variables (and an optional .env file)."""
        from dotenv import load_dotenv
        load_dotenv(env_file)

        return cls(
            llm_provider=os.getenv("LLM_PROVIDER", "openai").lower().strip(),
            llm_model_openai=os.getenv("LLM_MODEL_OPENAI", "gpt-4o-mini"),
            llm_model_groq=os.getenv("LLM_MODEL_GROQ", "llama-3.3-70b-versatile"),
            llm_model_ollama=os.getenv("LLM_MODEL_OLLAMA", "llama3.2"),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            openai_base_url=os.getenv("OPENAI_BASE_URL", ""),
            groq_api_key=os.getenv("GROQ_API_KEY", ""),
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434/"),
            db_path=os.getenv("DB_PATH", "agent.db"),
            project_db_path=os.getenv("PROJECT_DB_PATH", ""),
            agent_max_rounds=int(os.getenv("AGENT_MAX_ROUNDS", "5")),
            history_max_messages=int(os.getenv("AGENT_HISTORY_MAX_MESSAGES", "20")),
            model_max_tokens=int(os.getenv("AGENT_MAX_TOKENS", "4000")),
            final_max_tokens=int(os.getenv("AGENT_FINAL_MAX_TOKENS", "2000")),
            model_retry_attempts=int(os.getenv("LLM_RETRY_ATTEMPTS", "3")),
            model_retry_delay_seconds=float(os.getenv("LLM_RETRY_DELAY_SECONDS", "1.0")),
        )
