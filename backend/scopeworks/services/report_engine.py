"""
Report Engine — renders the two PDF exports of a project version.

Outputs:
  - Client proposal (A4 portrait): phases, deliverables, days and investment.
    Nothing internal leaks here: no cost, markup, margin or notes.
  - Internal budget (A4 landscape): per-role hours, internal cost, investment,
    internal notes, then gross profit and margin for the whole scope.

Both are priced through a PricingEngine at today's rates and returned as
bytes so routes can stream them without touching disk.
"""
import io
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.units import cm
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas as rl_canvas

from scopeworks.config import COMPANY_NAME, CURRENCY_CODE, HOURS_PER_DAY
from scopeworks.models.scope_schema import Project, ProjectVersion, Role, ScopePhase
from scopeworks.services.formatting import (
    abbreviate_role,
    format_currency_exact,
    format_days,
    format_margin,
    generate_slug,
)
from scopeworks.services.pricing_engine import LineTotals, PricingEngine

logger = logging.getLogger("scopeworks-report")

DEFAULT_COMPANY_SUB = "Strategy  |  Design  |  Development"
PROPOSAL_VALIDITY_DAYS = 30

EXPORT_SUFFIXES = {
    "client": "proposal",
    "internal": "internal-budget",
}

_BAND_RGB = {
    "healthy": (0.09, 0.55, 0.27),
    "caution": (0.85, 0.47, 0.02),
    "low": (0.80, 0.11, 0.11),
}
_MUTED_RGB = (0.45, 0.45, 0.45)
_BOTTOM_MARGIN = 2.2 * cm


def export_filename(project: Project, kind: str) -> str:
    """'acme-corp-website-proposal.pdf' / 'acme-corp-website-internal-budget.pdf'"""
    if kind not in EXPORT_SUFFIXES:
        raise ValueError(f"Unknown export type {kind!r}")
    slug = generate_slug(project.client_name, project.project_name)
    return f"{slug}-{EXPORT_SUFFIXES[kind]}.pdf"


def _hex_to_rgb(hex_color: str) -> tuple:
    h = (hex_color or "").lstrip("#")
    if len(h) != 6:
        return (0.10, 0.10, 0.18)
    return tuple(int(h[i:i + 2], 16) / 255 for i in (0, 2, 4))


def _dash_if_empty(text: str) -> str:
    return text or "-"


# ── Canvas helpers ────────────────────────────────────────────────────────────

def _draw_header(c, page_w, page_h, company_name: str, company_sub: str, theme_rgb: tuple, tag: str = ""):
    c.setFillColorRGB(*theme_rgb)
    c.rect(0, page_h - 2.4*cm, page_w, 2.4*cm, fill=1, stroke=0)
    c.setFillColorRGB(1, 1, 1)
    c.setFont("Helvetica-Bold", 13)
    c.drawString(1.5*cm, page_h - 1.3*cm, company_name)
    c.setFont("Helvetica", 8)
    c.drawString(1.5*cm, page_h - 1.9*cm, company_sub)
    if tag:
        c.setFont("Helvetica-Bold", 8)
        c.drawRightString(page_w - 1.5*cm, page_h - 1.3*cm, tag.upper())
    c.setFillColorRGB(0, 0, 0)


def _draw_footer(c, page_w, page_num: int, left_text: str):
    c.setStrokeColorRGB(0.8, 0.8, 0.8)
    c.line(1.5*cm, 1.3*cm, page_w - 1.5*cm, 1.3*cm)
    c.setFillColorRGB(*_MUTED_RGB)
    c.setFont("Helvetica", 7)
    c.drawString(1.5*cm, 0.9*cm, left_text)
    c.drawRightString(page_w - 1.5*cm, 0.9*cm, f"Page {page_num}")
    c.setStrokeColorRGB(0, 0, 0)
    c.setFillColorRGB(0, 0, 0)


class _PageWriter:
    """Tracks the cursor and starts a fresh branded page when a block won't fit."""

    def __init__(self, c, pagesize, engine: "ReportEngine", tag: str, footer_text: str):
        self.c = c
        self.page_w, self.page_h = pagesize
        self.engine = engine
        self.tag = tag
        self.footer_text = footer_text
        self.page_num = 1
        self.y = 0.0
        self._begin_page()

    def _begin_page(self):
        _draw_header(
            self.c, self.page_w, self.page_h,
            self.engine.company_name, self.engine.company_sub, self.engine.theme_rgb, self.tag,
        )
        self.y = self.page_h - 3.4*cm

    def _end_page(self):
        _draw_footer(self.c, self.page_w, self.page_num, self.footer_text)

    def ensure(self, height: float):
        if self.y - height >= _BOTTOM_MARGIN:
            return
        self._end_page()
        self.c.showPage()
        self.page_num += 1
        self._begin_page()

    def finish(self):
        self._end_page()


class ReportEngine:

    def __init__(self, company_settings: Optional[Dict[str, Any]] = None):
        cs = company_settings or {}
        self.company_name = cs.get("company_name") or COMPANY_NAME
        self.company_sub = cs.get("company_sub") or DEFAULT_COMPANY_SUB
        self.theme_rgb = _hex_to_rgb(cs.get("theme_color_hex", "#1A1A2E"))
        self.currency = cs.get("currency", CURRENCY_CODE)
        self.page_compression = 1 if cs.get("compress_pdf", True) else 0

    # ── Public API ─────────────────────────────────────────────────────────

    def render_client_proposal(
        self,
        project: Project,
        version: ProjectVersion,
        pricing: PricingEngine,
        generated_at: Optional[datetime] = None,
    ) -> bytes:
        buffer = io.BytesIO()
        c = rl_canvas.Canvas(buffer, pagesize=A4, pageCompression=self.page_compression)
        c.setTitle(f"{project.project_name} - Proposal")
        c.setAuthor(self.company_name)
        page = _PageWriter(c, A4, self, "Proposal", f"{self.company_name}  ·  Proposal for {project.client_name}")

        self._draw_title_block(page, project, version, generated_at)

        page.ensure(1.2*cm)
        c.setFont("Helvetica-Bold", 11)
        c.drawString(1.5*cm, page.y, "Scope of work")
        page.y -= 0.8*cm

        grand = LineTotals()
        for phase in self._non_empty(version.snapshot.phases):
            grand = grand + self._draw_client_phase(page, phase, pricing)

        page.ensure(3.2*cm)
        page.y -= 0.3*cm
        c.setStrokeColorRGB(*self.theme_rgb)
        c.setLineWidth(1.5)
        c.line(1.5*cm, page.y, page.page_w - 1.5*cm, page.y)
        c.setLineWidth(1)
        page.y -= 0.7*cm
        c.setFont("Helvetica-Bold", 11)
        c.drawString(1.5*cm, page.y, "Investment summary")
        page.y -= 0.6*cm
        c.setFont("Helvetica", 9)
        c.drawString(1.5*cm, page.y, "Total days")
        c.drawRightString(page.page_w - 1.5*cm, page.y, _dash_if_empty(format_days(grand.days)))
        page.y -= 0.55*cm
        c.setFont("Helvetica-Bold", 10)
        c.drawString(1.5*cm, page.y, "Total investment")
        c.drawRightString(page.page_w - 1.5*cm, page.y, format_currency_exact(grand.investment))
        page.y -= 0.8*cm
        c.setFillColorRGB(*_MUTED_RGB)
        c.setFont("Helvetica", 7.5)
        c.drawString(
            1.5*cm, page.y,
            f"All prices are in {self.currency} and exclude VAT. This proposal is valid for "
            f"{PROPOSAL_VALIDITY_DAYS} days from the date above.",
        )
        c.setFillColorRGB(0, 0, 0)

        page.finish()
        c.save()
        logger.info(
            "Rendered client proposal (%d pages)", page.page_num,
            extra={"project_id": project.id, "version_number": version.version_number},
        )
        return buffer.getvalue()

    def render_internal_budget(
        self,
        project: Project,
        version: ProjectVersion,
        pricing: PricingEngine,
        generated_at: Optional[datetime] = None,
    ) -> bytes:
        pagesize = landscape(A4)
        buffer = io.BytesIO()
        c = rl_canvas.Canvas(buffer, pagesize=pagesize, pageCompression=self.page_compression)
        c.setTitle(f"{project.project_name} - Internal budget")
        c.setAuthor(self.company_name)
        page = _PageWriter(c, pagesize, self, "Internal budget", f"CONFIDENTIAL  ·  {self.company_name} internal use only")

        self._draw_title_block(page, project, version, generated_at)

        phases = self._non_empty(version.snapshot.phases)
        grand = LineTotals()
        for phase in phases:
            grand = grand + pricing.phase_totals(phase)
        self._draw_budget_summary(page, grand)

        display_roles = self._roles_in_use(phases, pricing)
        for phase in phases:
            self._draw_budget_phase(page, phase, pricing, display_roles)

        page.finish()
        c.save()
        logger.info(
            "Rendered internal budget (%d pages)", page.page_num,
            extra={"project_id": project.id, "version_number": version.version_number},
        )
        return buffer.getvalue()

    # ── Shared blocks ──────────────────────────────────────────────────────

    @staticmethod
    def _non_empty(phases: List[ScopePhase]) -> List[ScopePhase]:
        return [p for p in phases if p.deliverables]

    def _draw_title_block(self, page: _PageWriter, project: Project, version: ProjectVersion, generated_at):
        c = page.c
        when = (generated_at or datetime.now(timezone.utc)).strftime("%d %B %Y")
        c.setFont("Helvetica-Bold", 18)
        c.drawString(1.5*cm, page.y, project.project_name)
        page.y -= 0.7*cm
        c.setFont("Helvetica", 10)
        c.drawString(1.5*cm, page.y, f"Prepared for {project.client_name}")
        page.y -= 0.5*cm
        c.setFillColorRGB(*_MUTED_RGB)
        c.setFont("Helvetica", 8)
        c.drawString(1.5*cm, page.y, f"{when}  ·  v{version.version_number} {version.name or ''}".rstrip())
        c.setFillColorRGB(0, 0, 0)
        page.y -= 1.0*cm

    # ── Client proposal ────────────────────────────────────────────────────

    def _draw_client_phase(self, page: _PageWriter, phase: ScopePhase, pricing: PricingEngine) -> LineTotals:
        c = page.c
        right = page.page_w - 1.5*cm
        days_x = right - 4.0*cm

        page.ensure(1.6*cm)
        c.setFont("Helvetica-Bold", 10)
        c.drawString(1.5*cm, page.y, phase.name)
        c.setFont("Helvetica", 7)
        c.setFillColorRGB(*_MUTED_RGB)
        c.drawRightString(days_x, page.y, "DAYS")
        c.drawRightString(right, page.y, "INVESTMENT")
        c.setFillColorRGB(0, 0, 0)
        page.y -= 0.55*cm

        totals = LineTotals()
        for deliverable in phase.deliverables:
            line = pricing.deliverable_totals(deliverable)
            totals = totals + line
            page.ensure(0.55*cm)
            c.setFont("Helvetica", 9)
            c.drawString(1.8*cm, page.y, deliverable.name)
            c.drawRightString(days_x, page.y, _dash_if_empty(format_days(line.days)))
            c.drawRightString(right, page.y, format_currency_exact(line.investment))
            page.y -= 0.5*cm

        page.ensure(0.9*cm)
        c.setStrokeColorRGB(0.85, 0.85, 0.85)
        c.line(1.8*cm, page.y + 0.3*cm, right, page.y + 0.3*cm)
        c.setStrokeColorRGB(0, 0, 0)
        c.setFont("Helvetica-Bold", 9)
        c.drawString(1.8*cm, page.y, f"{phase.name} total")
        c.drawRightString(days_x, page.y, _dash_if_empty(format_days(totals.days)))
        c.drawRightString(right, page.y, format_currency_exact(totals.investment))
        page.y -= 0.9*cm
        return totals

    # ── Internal budget ────────────────────────────────────────────────────

    @staticmethod
    def _roles_in_use(phases: List[ScopePhase], pricing: PricingEngine) -> List[Role]:
        used = set()
        for phase in phases:
            for deliverable in phase.deliverables:
                used.update(rid for rid, days in deliverable.role_allocations.items() if days)
        roles = [r for r in pricing.roles.values() if r.id in used]
        return sorted(roles, key=lambda r: (r.sort_order, r.title))

    def _draw_budget_summary(self, page: _PageWriter, grand: LineTotals):
        c = page.c
        cells = [
            ("Total hours", format_days(grand.hours) or "0"),
            ("Internal cost", format_currency_exact(grand.internal_cost)),
            ("Investment", format_currency_exact(grand.investment)),
            ("Gross profit", format_currency_exact(grand.gross_profit)),
            ("Margin", format_margin(grand.margin_pct, grand.investment)),
        ]
        width = (page.page_w - 3*cm) / len(cells)
        page.ensure(1.8*cm)
        for i, (label, value) in enumerate(cells):
            x = 1.5*cm + i * width
            c.setFillColorRGB(0.96, 0.96, 0.97)
            c.rect(x + 0.1*cm, page.y - 1.0*cm, width - 0.2*cm, 1.5*cm, fill=1, stroke=0)
            c.setFillColorRGB(*_MUTED_RGB)
            c.setFont("Helvetica", 7)
            c.drawString(x + 0.4*cm, page.y, label.upper())
            if label == "Margin" and grand.investment > 0:
                c.setFillColorRGB(*_BAND_RGB[grand.margin_band])
            else:
                c.setFillColorRGB(0, 0, 0)
            c.setFont("Helvetica-Bold", 12)
            c.drawString(x + 0.4*cm, page.y - 0.65*cm, value)
        c.setFillColorRGB(0, 0, 0)
        page.y -= 2.0*cm

    def _draw_budget_phase(self, page: _PageWriter, phase: ScopePhase, pricing: PricingEngine, roles: List[Role]):
        c = page.c
        right = page.page_w - 1.5*cm
        inv_x = right
        cost_x = inv_x - 3.0*cm
        hours_x = cost_x - 3.0*cm
        name_w = 7.0*cm
        role_area = (hours_x - 2.0*cm) - (1.5*cm + name_w)
        role_w = min(2.0*cm, role_area / len(roles)) if roles else 0
        role_x = [1.5*cm + name_w + role_w * (i + 1) for i in range(len(roles))]

        page.ensure(1.8*cm)
        c.setFont("Helvetica-Bold", 10)
        c.drawString(1.5*cm, page.y, phase.name)
        page.y -= 0.5*cm
        c.setFillColorRGB(*_MUTED_RGB)
        c.setFont("Helvetica", 7)
        c.drawString(1.5*cm, page.y, "DELIVERABLE")
        for role, x in zip(roles, role_x):
            c.drawRightString(x, page.y, abbreviate_role(role.title).upper())
        c.drawRightString(hours_x, page.y, "HOURS")
        c.drawRightString(cost_x, page.y, "COST")
        c.drawRightString(inv_x, page.y, "INVESTMENT")
        c.setFillColorRGB(0, 0, 0)
        page.y -= 0.5*cm

        totals = LineTotals()
        for deliverable in phase.deliverables:
            line = pricing.deliverable_totals(deliverable)
            totals = totals + line
            notes = simpleSplit(deliverable.internal_notes.strip(), "Helvetica-Oblique", 7.5, right - 2.2*cm)
            page.ensure(0.5*cm + 0.35*cm * len(notes))
            c.setFont("Helvetica", 8.5)
            c.drawString(1.5*cm, page.y, deliverable.name)
            for role, x in zip(roles, role_x):
                hours = deliverable.role_allocations.get(role.id, 0.0) * HOURS_PER_DAY
                c.drawRightString(x, page.y, _dash_if_empty(format_days(hours)))
            c.drawRightString(hours_x, page.y, _dash_if_empty(format_days(line.hours)))
            c.drawRightString(cost_x, page.y, format_currency_exact(line.internal_cost))
            c.drawRightString(inv_x, page.y, format_currency_exact(line.investment))
            page.y -= 0.45*cm
            if notes:
                c.setFillColorRGB(*_MUTED_RGB)
                c.setFont("Helvetica-Oblique", 7.5)
                for text in notes:
                    c.drawString(2.2*cm, page.y, text)
                    page.y -= 0.35*cm
                c.setFillColorRGB(0, 0, 0)

        page.ensure(1.0*cm)
        c.setStrokeColorRGB(0.85, 0.85, 0.85)
        c.line(1.5*cm, page.y + 0.3*cm, right, page.y + 0.3*cm)
        c.setStrokeColorRGB(0, 0, 0)
        c.setFont("Helvetica-Bold", 8.5)
        c.drawString(1.5*cm, page.y, "Subtotal")
        for role, x in zip(roles, role_x):
            hours = sum(d.role_allocations.get(role.id, 0.0) * HOURS_PER_DAY for d in phase.deliverables)
            c.drawRightString(x, page.y, _dash_if_empty(format_days(hours)))
        c.drawRightString(hours_x, page.y, _dash_if_empty(format_days(totals.hours)))
        c.drawRightString(cost_x, page.y, format_currency_exact(totals.internal_cost))
        c.drawRightString(inv_x, page.y, format_currency_exact(totals.investment))
        page.y -= 1.0*cm
