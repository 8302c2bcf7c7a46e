"""Marketplace tools the model may call mid-turn: all strictly read-only."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import Field

from concierge.config import settings
from concierge.models import DEFAULT_PROFILE, Profile
from concierge.store.knowledge import KnowledgeStore
from concierge.store.services import ServiceCatalog
from concierge.tools.base import ToolParams, ToolResult
from concierge.tools.registry import registry

if TYPE_CHECKING:
    from concierge.context import TurnContext

logger = logging.getLogger(__name__)

ESTIMATED_COST_RANGE = "$50 - $500 per month depending on plan and vendor"
_PROFILE_OVERRIDES = ("territory", "niche", "experience_level")


# ---------------------------------------------------------------------------
# vendor_search
# ---------------------------------------------------------------------------


class VendorSearchParams(ToolParams):
    query: str | None = Field(
        default=None, description="Free text matched against service title and description"
    )
    category: str | None = Field(
        default=None, description="Service category, e.g. 'CRM' or 'Photography'"
    )
    budget_min: float | None = Field(default=None, ge=0, description="Minimum price")
    budget_max: float | None = Field(default=None, ge=0, description="Maximum price")


async def _search_services(
    query: str | None = None,
    category: str | None = None,
    budget_min: float | None = None,
    budget_max: float | None = None,
) -> list[dict[str, Any]]:
    return await ServiceCatalog.get().search(
        query=query,
        category=category,
        budget_min=budget_min,
        budget_max=budget_max,
        limit=settings.vendor_search_limit,
    )


@registry.tool(
    name="vendor_search",
    description=(
        "Search active marketplace services by free text, category, and price range. "
        "Returns up to 10 services."
    ),
    category="marketplace",
    params_model=VendorSearchParams,
)
async def vendor_search(
    query: str | None = None,
    category: str | None = None,
    budget_min: float | None = None,
    budget_max: float | None = None,
) -> ToolResult:
    services = await _search_services(query, category, budget_min, budget_max)
    return ToolResult(data={"services": services, "count": len(services)})


# ---------------------------------------------------------------------------
# recommend_bundle
# ---------------------------------------------------------------------------


class RecommendBundleParams(ToolParams):
    goal: str = Field(description="What the agent is trying to achieve")
    profile: dict[str, Any] | None = Field(
        default=None,
        description="Optional agent attributes (territory, niche, experience_level)",
    )


def _resolve_profile(
    overrides: dict[str, Any] | None, context: TurnContext | None
) -> Profile:
    base = context.profile if context is not None else DEFAULT_PROFILE
    if not overrides:
        return base
    known = {k: str(v) for k, v in overrides.items() if k in _PROFILE_OVERRIDES and v}
    return base.model_copy(update=known)


@registry.tool(
    name="recommend_bundle",
    description=(
        "Recommend a small bundle of marketplace services for a business goal, "
        "tailored to the agent profile."
    ),
    category="marketplace",
    params_model=RecommendBundleParams,
)
async def recommend_bundle(
    goal: str,
    profile: dict[str, Any] | None = None,
    context: TurnContext | None = None,
) -> ToolResult:
    agent = _resolve_profile(profile, context)
    services = (await _search_services(query=goal))[: settings.bundle_size]

    items = [
        {
            "sku_id": svc["id"],
            "title": svc["title"],
            "why_it_fits": (
                f"Supports your goal to {goal.strip().rstrip('.')} as a "
                f"{agent.experience_level.replace('_', ' ')} in {agent.niche}"
            ),
        }
        for svc in services
    ]
    rationale = (
        f"{len(items)} service(s) matched '{goal}' for agents in {agent.territory}."
        if items
        else f"No marketplace services matched '{goal}' yet."
    )
    return ToolResult(
        data={
            "items": items,
            "rationale": rationale,
            "estimated_cost_range": ESTIMATED_COST_RANGE if items else "n/a",
        }
    )


# ---------------------------------------------------------------------------
# kb_search
# ---------------------------------------------------------------------------


class KbSearchParams(ToolParams):
    query: str = Field(description="What to look up in the knowledge base")
    k: int = Field(default=6, ge=1, le=20, description="Maximum snippets to return")


@registry.tool(
    name="kb_search",
    description="Search the concierge knowledge base for articles and playbooks.",
    category="knowledge",
    params_model=KbSearchParams,
)
async def kb_search(query: str, k: int = 6) -> ToolResult:
    snippets = await KnowledgeStore.get().search(query, k=k)
    return ToolResult(data={"snippets": [s.model_dump() for s in snippets]})
