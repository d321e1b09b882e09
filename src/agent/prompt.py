"""
agent.prompt - System prompt for the orchestration loop.

Static policy text plus the request's context hints and the names of the
registered tools.
"""

from __future__ import annotations

from application.dto import AgentRequest
from agent.tools.registry import ToolRegistry

_BASE_PROMPT = """You are an AI assistant for project data analysis and technical advisory.

Your role is to help users:
1. Query and analyze project data (documents, facts, red flags)
2. Generate technical content (reports, risk assessments, specifications)
3. Guide them through workflows (project setup, deliverables preparation)

You have access to tools for querying and modifying project data. Use them when
they give a more accurate, data-driven answer. If a tool reports an error, read it,
correct your arguments or explain the limitation to the user."""

_CLOSING = (
    "Be concise, professional, and technical. When using tools, explain what "
    "you are doing and why."
)


def build_system_prompt(request: AgentRequest, registry: ToolRegistry) -> str:
    """Build the system prompt for one request.

    Args:
        request:  The incoming request (ids and optional page/workflow hints).
        registry: The tool registry; registered tool names are listed.

    Returns:
        The system prompt string.
    """
    lines = [
        _BASE_PROMPT,
        "",
        "Current context:",
        f"- User ID: {request.user_id}",
    ]
    if request.project_id is not None:
        lines.append(f"- Project ID: {request.project_id}")

    context = request.context or {}
    if context.get("current_page"):
        lines.append(f"- Current page: {context['current_page']}")
    if context.get("workflow_stage"):
        lines.append(f"- Workflow stage: {context['workflow_stage']}")

    tool_names = registry.names()
    if tool_names:
        lines.append(f"- Available tools: {', '.join(tool_names)}")

    lines += ["", _CLOSING]
    return "\n".join(lines)
