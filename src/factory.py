"""
factory - Composition root for the agent orchestration core.

ALL dependency wiring happens here. No other module constructs its own
dependencies. Adapters (CLI, an HTTP layer) call this factory to get
fully configured services and the orchestrator.

Usage:
    from factory import ServiceFactory
    from infrastructure.config import Settings

    config = Settings.from_env()
    factory = ServiceFactory(config)
    await factory.initialize()  # one-time startup

    orchestrator = factory.create_orchestrator()
    response = await orchestrator.process_message(
        AgentRequest(user_id=1, message="What is the DC capacity?", project_id=7)
    )
"""

from __future__ import annotations

import logging
from typing import Optional

from infrastructure.config import Settings
from infrastructure.llm.chat_model import LangChainChatModel
from infrastructure.llm.llm_builder import build_llm
from infrastructure.persistence.action_repo import SQLiteActionRepository
from infrastructure.persistence.connection import AsyncSQLiteConnection
from infrastructure.persistence.conversation_repo import SQLiteConversationRepository
from infrastructure.persistence.message_repo import SQLiteMessageRepository
from infrastructure.persistence.migrations import run_migrations
from infrastructure.persistence.project_store import SQLiteProjectStoreProvider
from application.services.transcript import TranscriptService
from agent.executor import AgentOrchestrator
from agent.tools.project_queries import project_query_tools
from agent.tools.registry import ToolRegistry
from domain.ports import ChatModelPort

logger = logging.getLogger(__name__)


class ServiceFactory:
    """Composition root that wires all dependencies together.

    Call initialize() once at startup, then create services as needed.
    """

    def __init__(self, config: Settings, chat_model: Optional[ChatModelPort] = None):
        self._config = config
        self._connection = AsyncSQLiteConnection(config.db_path)
        project_db = config.resolved_project_db_path
        self._project_connection = (
            self._connection if project_db == config.db_path
            else AsyncSQLiteConnection(project_db)
        )
        self._project_stores = SQLiteProjectStoreProvider(self._project_connection)
        # Injected model (tests, custom gateways); otherwise built from config on demand.
        self._chat_model = chat_model
        self._initialized = False

    @property
    def config(self) -> Settings:
        return self._config

    async def initialize(self) -> None:
        """One-time startup: run migrations.

        Must be called before creating services or the orchestrator.
        """
        logger.info("Initializing ServiceFactory (db=%s)", self._config.db_path)
        await run_migrations(self._connection)
        self._initialized = True
        logger.info("ServiceFactory ready")

    # ------------------------------------------------------------------
    # Service creation
    # ------------------------------------------------------------------

    def create_transcript_service(self) -> TranscriptService:
        """Create a TranscriptService for conversation persistence."""
        self._ensure_initialized()
        return TranscriptService(
            conversation_repo=SQLiteConversationRepository(self._connection),
            message_repo=SQLiteMessageRepository(self._connection),
        )

    def create_action_repository(self) -> SQLiteActionRepository:
        """Return the audit log repository for tool executions."""
        return SQLiteActionRepository(self._connection)

    def create_tool_registry(self) -> ToolRegistry:
        """Create a ToolRegistry with the project query tools registered."""
        registry = ToolRegistry(action_log=self.create_action_repository())
        registry.register_all(project_query_tools())
        return registry

    def create_chat_model(self) -> ChatModelPort:
        """Return the configured chat model (built once, then reused)."""
        if self._chat_model is None:
            config = self._config
            llm = build_llm(
                provider=config.llm_provider,
                model=config.active_llm_model,
                ollama_base_url=config.ollama_base_url,
                openai_api_key=config.openai_api_key,
                openai_base_url=config.openai_base_url,
                groq_api_key=config.groq_api_key,
            )
            self._chat_model = LangChainChatModel(
                llm,
                model_name=config.active_llm_model,
                pass_max_tokens=config.llm_provider != "ollama",
            )
        return self._chat_model

    # ------------------------------------------------------------------
    # Agent creation
    # ------------------------------------------------------------------

    def create_orchestrator(self, registry: Optional[ToolRegistry] = None) -> AgentOrchestrator:
        """Create a fully configured AgentOrchestrator.

        Args:
            registry: Tool registry to use; defaults to create_tool_registry().

        Returns:
            AgentOrchestrator backed by the SQLite transcript and audit log.
        """
        self._ensure_initialized()
        config = self._config
        return AgentOrchestrator(
            model=self.create_chat_model(),
            registry=registry or self.create_tool_registry(),
            transcript=self.create_transcript_service(),
            project_stores=self._project_stores,
            max_rounds=config.agent_max_rounds,
            history_max_messages=config.history_max_messages,
            max_tokens=config.model_max_tokens,
            final_max_tokens=config.final_max_tokens,
            retry_attempts=config.model_retry_attempts,
            retry_delay_seconds=config.model_retry_delay_seconds,
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError(
                "ServiceFactory not initialized. Call await factory.initialize() first."
            )
