"""Export routes — client proposal and internal budget PDFs for a project version."""
import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from scopeworks.api.deps import get_pricing, get_store, http_errors
from scopeworks.config import COMPANY_NAME
from scopeworks.services import version_service as versions
from scopeworks.services.pricing_engine import PricingEngine
from scopeworks.services.report_engine import ReportEngine, export_filename
from scopeworks.services.scope_store import ScopeStore

router = APIRouter(prefix="/api/projects", tags=["Exports"])
logger = logging.getLogger("scopeworks-api")


@router.get("/{slug}/export")
async def export_pdf(
    slug: str,
    type: Literal["client", "internal"] = Query("client"),
    v: Optional[int] = Query(None, ge=1, description="Version number; defaults to current"),
    store: ScopeStore = Depends(get_store),
    pricing: PricingEngine = Depends(get_pricing),
):
    """Render a version as a PDF attachment. Prices reflect today's rate card."""
    with http_errors():
        project = await versions.get_project_or_404(store, slug)
        if v is None:
            version = await versions.get_current_version(store, project)
        else:
            version = await versions.get_version_by_number(store, project, v)

    engine = ReportEngine({"company_name": COMPANY_NAME})
    if type == "client":
        pdf = engine.render_client_proposal(project, version, pricing)
    else:
        pdf = engine.render_internal_budget(project, version, pricing)

    filename = export_filename(project, type)
    logger.info(f"Export {type} {slug} v{version.version_number} ({len(pdf)} bytes)")
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
