"""
agent.tools.project_queries - Read-only tools over project-scoped tables.

Handlers query the plain table names (extracted_facts, red_flags); the
project store rewrites them to the caller's proj_<id>_ tables. Filters are
always bound as parameters.
"""

from __future__ import annotations

from typing import Any

from application.context import ToolExecutionContext
from domain.exceptions import ToolHandlerError
from domain.models import ToolDescriptor, ToolParameter, ToolParameters
from domain.ports import ProjectStore

DEFAULT_LIMIT = 50
DEFAULT_GROUP_LIMIT = 100
MAX_LIMIT = 500

SEVERITIES = ("low", "medium", "high", "critical")
RED_FLAG_STATUSES = ("open", "mitigated", "closed")


def _store(ctx: ToolExecutionContext) -> ProjectStore:
    if ctx.project_store is None:
        raise ToolHandlerError("Project database not available")
    return ctx.project_store


def _limit(value: Any, default: int) -> int:
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return default
    if limit <= 0:
        return default
    return min(limit, MAX_LIMIT)


# ---------------------------------------------------------------------------
# query_facts
# ---------------------------------------------------------------------------

async def query_facts(args: dict[str, Any], ctx: ToolExecutionContext) -> dict[str, Any]:
    """Partial-match search over extracted facts, newest first."""
    store = _store(ctx)
    category = args.get("category")
    key = args.get("key")
    search_term = args.get("search_term")

    conditions: list[str] = []
    params: list[Any] = []
    if category:
        conditions.append("category LIKE ?")
        params.append(f"%{category}%")
    if key:
        conditions.append('"key" LIKE ?')
        params.append(f"%{key}%")
    if search_term:
        if category or key:
            conditions.append("value LIKE ?")
            params.append(f"%{search_term}%")
        else:
            # No narrowing filter given: search every text column.
            conditions.append('(value LIKE ? OR category LIKE ? OR "key" LIKE ?)')
            params.extend([f"%{search_term}%"] * 3)

    sql = (
        'SELECT id, category, "key", value, data_type, confidence, verified, created_at '
        "FROM extracted_facts"
    )
    if conditions:
        sql += " WHERE " + " AND ".join(conditions)
    sql += " ORDER BY created_at DESC, id DESC LIMIT ?"
    params.append(_limit(args.get("limit"), DEFAULT_LIMIT))

    rows = await store.fetch_all(sql, tuple(params))
    return {
        "facts": rows,
        "count": len(rows),
        "filters": {"category": category, "key": key, "search_term": search_term},
    }


QUERY_FACTS = ToolDescriptor(
    name="query_facts",
    description=(
        "Query extracted facts from the project database. Uses partial matching "
        "for category and key. Common categories: Project_Overview, "
        "Design_Parameters, Technical_Design, Financial, Location, Risks_And_Issues."
    ),
    parameters=ToolParameters(
        properties={
            "category": ToolParameter(
                "string", "Filter by fact category (partial match, e.g. 'design')",
            ),
            "key": ToolParameter(
                "string", "Filter by fact key (partial match, e.g. 'capacity')",
            ),
            "search_term": ToolParameter(
                "string",
                "Text to find in fact values; searches category and key too "
                "when neither filter is given",
            ),
            "limit": ToolParameter("number", "Maximum facts to return (default: 50)"),
        },
    ),
    handler=query_facts,
)


# ---------------------------------------------------------------------------
# list_fact_categories
# ---------------------------------------------------------------------------

async def list_fact_categories(args: dict[str, Any], ctx: ToolExecutionContext) -> dict[str, Any]:
    """Count facts per category, or per (category, key)."""
    store = _store(ctx)
    group_by = args.get("group_by") or "category"
    if group_by not in ("category", "key"):
        raise ToolHandlerError(f"group_by must be 'category' or 'key', got {group_by!r}")

    if group_by == "category":
        sql = (
            "SELECT category, COUNT(*) AS count FROM extracted_facts "
            "GROUP BY category ORDER BY count DESC, category LIMIT ?"
        )
    else:
        sql = (
            'SELECT category, "key", COUNT(*) AS count FROM extracted_facts '
            'GROUP BY category, "key" ORDER BY count DESC, category, "key" LIMIT ?'
        )

    rows = await store.fetch_all(sql, (_limit(args.get("limit"), DEFAULT_GROUP_LIMIT),))
    return {
        "group_by": group_by,
        "items": rows,
        "count": len(rows),
        "total_facts": sum(row["count"] for row in rows),
    }


LIST_FACT_CATEGORIES = ToolDescriptor(
    name="list_fact_categories",
    description=(
        "List the fact categories (or category/key pairs) in the project database "
        "with counts. Use this to discover what data exists before querying facts."
    ),
    parameters=ToolParameters(
        properties={
            "group_by": ToolParameter(
                "string",
                "Group results by 'category' or 'key' (default: 'category')",
                enum=("category", "key"),
            ),
            "limit": ToolParameter("number", "Maximum groups to return (default: 100)"),
        },
    ),
    handler=list_fact_categories,
)


# ---------------------------------------------------------------------------
# query_red_flags
# ---------------------------------------------------------------------------

async def query_red_flags(args: dict[str, Any], ctx: ToolExecutionContext) -> dict[str, Any]:
    """Red flags, most severe first."""
    store = _store(ctx)
    category = args.get("category")
    severity = args.get("severity")
    status = args.get("status")

    conditions: list[str] = []
    params: list[Any] = []
    if category:
        conditions.append("category = ?")
        params.append(category)
    if severity:
        conditions.append("severity = ?")
        params.append(severity)
    if status:
        conditions.append("status = ?")
        params.append(status)

    sql = "SELECT id, title, description, category, severity, status, created_at FROM red_flags"
    if conditions:
        sql += " WHERE " + " AND ".join(conditions)
    sql += (
        " ORDER BY CASE severity"
        " WHEN 'critical' THEN 1 WHEN 'high' THEN 2"
        " WHEN 'medium' THEN 3 WHEN 'low' THEN 4 ELSE 5 END,"
        " created_at DESC LIMIT ?"
    )
    params.append(_limit(args.get("limit"), DEFAULT_LIMIT))

    rows = await store.fetch_all(sql, tuple(params))
    return {
        "red_flags": rows,
        "count": len(rows),
        "filters": {"category": category, "severity": severity, "status": status},
    }


QUERY_RED_FLAGS = ToolDescriptor(
    name="query_red_flags",
    description=(
        "Query red flags (risks) identified in the project. "
        "Can filter by category, severity or status."
    ),
    parameters=ToolParameters(
        properties={
            "category": ToolParameter("string", "Filter by red flag category"),
            "severity": ToolParameter("string", "Filter by severity level", enum=SEVERITIES),
            "status": ToolParameter("string", "Filter by status", enum=RED_FLAG_STATUSES),
            "limit": ToolParameter("number", "Maximum red flags to return (default: 50)"),
        },
    ),
    handler=query_red_flags,
)


def project_query_tools() -> list[ToolDescriptor]:
    """All project query tools, in registration order."""
    return [QUERY_FACTS, LIST_FACT_CATEGORIES, QUERY_RED_FLAGS]
