"""
infrastructure.llm.llm_builder - Centralized chat-model construction.

Single source of truth for building the tool-calling chat model used by
the orchestrator. The provider is controlled by the LLM_PROVIDER
environment variable.

Supported providers:
    - "openai"  → langchain_openai.ChatOpenAI (optionally an OpenAI-compatible base URL)
    - "groq"    → langchain_groq.ChatGroq
    - "ollama"  → langchain_ollama.ChatOllama
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from langchain_core.language_models import BaseChatModel

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("openai", "groq", "ollama")


def build_llm(
    *,
    provider: str,
    model: str,
    temperature: float = 0,
    ollama_base_url: str = "http://localhost:11434/",
    openai_api_key: str = "",
    openai_base_url: str = "",
    groq_api_key: str = "",
    max_tokens: Optional[int] = None,
    timeout: Optional[float] = None,
) -> BaseChatModel:
    """Build a chat model for the given provider.

    Args:
        provider: One of "openai", "groq", "ollama".
        model: Model name for the selected provider.
        temperature: Sampling temperature.
        ollama_base_url: Ollama server URL (only used when provider="ollama").
        openai_api_key: API key for OpenAI.
        openai_base_url: Optional OpenAI-compatible endpoint (gateways, proxies).
        groq_api_key: API key for Groq.
        max_tokens: Default completion limit; per-call limits override it.
        timeout: Request timeout in seconds (openai/groq only).

    Returns:
        A configured LangChain chat model that supports bind_tools().

    Raises:
        ValueError: If the provider is unknown or required credentials are missing.
    """
    provider = provider.lower().strip()
    if provider not in SUPPORTED_PROVIDERS:
        raise ValueError(
            f"Unsupported LLM_PROVIDER: '{provider}'. "
            f"Must be one of: {', '.join(SUPPORTED_PROVIDERS)}."
        )

    options: Dict[str, Any] = {"model": model, "temperature": temperature}

    if provider == "ollama":
        from langchain_ollama import ChatOllama

        options["base_url"] = ollama_base_url
        if max_tokens is not None:
            options["num_predict"] = max_tokens
        logger.info("Building ChatOllama (model=%s, base_url=%s)", model, ollama_base_url)
        return ChatOllama(**options)

    if max_tokens is not None:
        options["max_tokens"] = max_tokens
    if timeout is not None:
        options["timeout"] = timeout

    if provider == "groq":
        from langchain_groq import ChatGroq

        if not groq_api_key:
            raise ValueError("GROQ_API_KEY is required when LLM_PROVIDER='groq'")
        logger.info("Building ChatGroq (model=%s)", model)
        return ChatGroq(groq_api_key=groq_api_key, **options)

    from langchain_openai import ChatOpenAI

    if not openai_api_key:
        raise ValueError("OPENAI_API_KEY is required when LLM_PROVIDER='openai'")
    if openai_base_url:
        options["base_url"] = openai_base_url
    logger.info("Building ChatOpenAI (model=%s, base_url=%s)", model, openai_base_url or "default")
    return ChatOpenAI(openai_api_key=openai_api_key, **options)
