"""
Public proposal routes — the client-safe view behind share links.

A share link (``/p/{slug}`` or ``/p/{slug}?v=N``) shows one version priced at
today's active rate card. Only names, days and investment leave this
router: no internal cost, margin, role allocations or internal notes.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from scopeworks.api.deps import get_pricing, get_store, http_errors
from scopeworks.api.project_routes import budget_payload, share_url
from scopeworks.config import COMPANY_NAME
from scopeworks.models.scope_schema import Project, ProjectVersion
from scopeworks.services import version_service as versions
from scopeworks.services.pricing_engine import PricingEngine
from scopeworks.services.scope_store import ScopeStore

router = APIRouter(prefix="/api/public", tags=["Public"])
logger = logging.getLogger("scopeworks-api")

_CLIENT_FIELDS = ("days", "investment")


def _client_safe(totals: dict) -> dict:
    return {key: totals[key] for key in _CLIENT_FIELDS}


def proposal_payload(project: Project, version: ProjectVersion, pricing: PricingEngine) -> dict:
    """Budget of ``version`` cut down to what a client may see; empty phases are dropped."""
    budget = budget_payload(version, pricing)
    phases = [
        {
            "name": phase["name"],
            "deliverables": [{"name": d["name"], **_client_safe(d)} for d in phase["deliverables"]],
            "totals": _client_safe(phase["totals"]),
        }
        for phase in budget["phases"]
        if phase["deliverables"]
    ]
    return {
        "client_name": project.client_name,
        "project_name": project.project_name,
        "prepared_by": COMPANY_NAME,
        "version_number": version.version_number,
        "version_name": version.name,
        "share_url": share_url(project.slug, version.version_number),
        "phases": phases,
        "totals": _client_safe(budget["totals"]),
    }


@router.get("/proposals/{slug}")
async def get_proposal(
    slug: str,
    v: Optional[int] = Query(None, ge=1, description="Version number; defaults to current"),
    store: ScopeStore = Depends(get_store),
    pricing: PricingEngine = Depends(get_pricing),
):
    with http_errors():
        project = await versions.get_project_or_404(store, slug)
        if v is None:
            version = await versions.get_current_version(store, project)
        else:
            version = await versions.get_version_by_number(store, project, v)
    logger.info(f"Proposal viewed: {slug} v{version.version_number}")
    return proposal_payload(project, version, pricing)
