"""
Run the agent orchestration core CLI.

Usage:
    python run_cli.py [GLOBAL OPTIONS] COMMAND [ARGS]

Commands:
    chat            Interactive chat session
    ask             One-shot question
    conversations   List your conversations
    history         Show the stored transcript of a conversation
    stats           Message/token/latency statistics for a conversation
    archive         Mark a conversation archived
    delete          Delete a conversation and its messages
    tools           List the registered tools

Examples:
    python run_cli.py --user-id 1 --project-id 7 ask "Which red flags are critical?"
    python run_cli.py --user-id 1 chat
    python run_cli.py --user-id 1 conversations

Environment variables (all optional):
    LLM_PROVIDER        "openai", "groq", or "ollama"
    LLM_MODEL_OPENAI    Model name when LLM_PROVIDER=openai (default: gpt-4o-mini)
    LLM_MODEL_GROQ      Model name when LLM_PROVIDER=groq (default: llama-3.3-70b-versatile)
    LLM_MODEL_OLLAMA    Model name when LLM_PROVIDER=ollama (default: llama3.2)
    OPENAI_API_KEY      Required when LLM_PROVIDER=openai
    OPENAI_BASE_URL     OpenAI-compatible gateway URL
    GROQ_API_KEY        Required when LLM_PROVIDER=groq
    DB_PATH             SQLite database file path (default: agent.db)
    PROJECT_DB_PATH     SQLite file for project tables (default: DB_PATH)
    AGENT_MAX_ROUNDS    Tool-use rounds per request (default: 5)
"""

import sys
from pathlib import Path

# Ensure src/ is importable
sys.path.insert(0, str(Path(__file__).parent / "src"))

from adapters.cli.main import app

if __name__ == "__main__":
    app()
