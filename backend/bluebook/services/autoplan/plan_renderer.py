"""
Plan Renderer — composes the regulator-facing fire safety plan as one A3
landscape PDF page.

Sheet layout (bottom-up, 40pt margin on every edge):
  - title block (120pt): branding, plan details, building facts, approval box,
    jurisdiction citation
  - legend strip (50pt): fixed symbol key
  - 10pt gap
  - floor-plan area: page 1 of the uploaded PDF, letterboxed, with the symbol
    and annotation overlay
  - diagonal DRAFT watermark on anything not approved

The sheet is drawn with reportlab (invariant mode, so identical inputs give
identical bytes); the source floor plan is then laid underneath it with
PyMuPDF. A source PDF that cannot be read is replaced by a bordered
placeholder and the render still succeeds.
"""
from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

import fitz  # PyMuPDF
from reportlab.lib.pagesizes import A3, landscape
from reportlab.pdfgen import canvas

from bluebook.config import (
    BLUE, BRAND_NAME, BRAND_TAGLINE, DARK, GRAY, GREEN, HF_BLUE, LIGHT_GRAY, RED, WHITE,
)
from bluebook.models.autoplan_schema import (
    Approval, ArrowAnnotation, Building, Floor, PlacedSymbol, Plan, PlanStatus,
    TextAnnotation, TravelDistanceAnnotation, ZoneAnnotation,
)
from bluebook.services.autoplan.symbols import get_symbol, hex_to_rgb, is_point_symbol
from bluebook.services.perf_monitor import timed

logger = logging.getLogger("bluebook-autoplan")

# ── Page Constants ──────────────────────────────────────────────────────────
PAGE_SIZE = landscape(A3)
PAGE_W, PAGE_H = PAGE_SIZE
MARGIN = 40
TITLE_BLOCK_H = 120
LEGEND_H = 50
LEGEND_GAP = 10

SYMBOL_SHRINK = 0.8
SYMBOL_CORNER_RADIUS = 3
MIN_SYMBOL_FONT = 6
DEFAULT_TEXT_SIZE = 8
ARROW_HEAD_LEN = 8
ARROW_HEAD_ANGLE = math.radians(25)

PLACEHOLDER_MESSAGE = "Floor plan could not be embedded"
WATERMARK_TEXT = "DRAFT"
WATERMARK_FONT_SIZE = 160
WATERMARK_ANGLE = 30
WATERMARK_GRAY = 0.9
WATERMARK_ALPHA = 0.3

# ── Static tables ───────────────────────────────────────────────────────────
LEGEND_ENTRIES: tuple[tuple[str, tuple, str], ...] = (
    ("EXIT", GREEN, "Fire Exit"),
    ("FE", RED, "Extinguisher"),
    ("CP", RED, "Call Point"),
    ("FD30", BLUE, "Fire Door"),
    ("S", BLUE, "Smoke Det."),
    ("EL", GREEN, "Emerg. Light"),
    ("D", RED, "Dry Riser"),
    ("SP", BLUE, "Sprinkler"),
)
LEGEND_FIRST_X = 80
LEGEND_STEP = 120

REGULATORY_TEXT: dict[str, str] = {
    "england": (
        "Prepared in accordance with Fire Safety (England) Regulations 2022, Regulation 6. "
        "Approved Document B referenced for travel distances."
    ),
    "scotland": (
        "Prepared in accordance with Fire (Scotland) Act 2005, Section 78. "
        "Scottish Building Standards Technical Handbook 2.9 referenced."
    ),
    "wales": (
        "Prepared in accordance with Fire Safety Act 2021. "
        "Follows England guidance pending Building Safety (Wales) Bill enactment."
    ),
}
DEFAULT_REGULATORY_TEXT = "Prepared in accordance with applicable UK fire safety regulations."

ZONE_STYLES: dict[str, dict] = {
    "compartment": {"color": RED, "dash": (6, 3), "alpha": 0.08},
    "protected_corridor": {"color": GREEN, "dash": None, "alpha": 0.12},
    "stairwell": {"color": BLUE, "dash": None, "alpha": 0.12},
}

# Standard PDF fonts are WinAnsi; map the arrow glyphs used in symbol labels
_PDF_SAFE = str.maketrans({"←": "<", "→": ">", "↑": "^", "↓": "v"})


@dataclass(frozen=True)
class Box:
    x: float
    y: float
    w: float
    h: float


@dataclass(frozen=True)
class FloorPlanPlacement:
    """Where the source page lands on the sheet (bottom-left origin) and at what scale."""
    x: float
    y: float
    w: float
    h: float
    scale: float


# ═══════════════════════════════════════════════════════════════════════════
#  GEOMETRY
# ═══════════════════════════════════════════════════════════════════════════

def floor_plan_area() -> Box:
    bottom = MARGIN + TITLE_BLOCK_H + LEGEND_H + LEGEND_GAP
    return Box(
        x=MARGIN,
        y=bottom,
        w=PAGE_W - 2 * MARGIN,
        h=PAGE_H - 2 * MARGIN - TITLE_BLOCK_H - LEGEND_H - LEGEND_GAP,
    )


def fit_floor_plan(area: Box, src_w: float, src_h: float) -> FloorPlanPlacement:
    """Uniform scale so the source page fits inside ``area``, centred (letterbox)."""
    if src_w <= 0 or src_h <= 0:
        raise ValueError(f"Invalid source page size {src_w}x{src_h}")
    scale = min(area.w / src_w, area.h / src_h)
    w = src_w * scale
    h = src_h * scale
    return FloorPlanPlacement(
        x=area.x + (area.w - w) / 2,
        y=area.y + (area.h - h) / 2,
        w=w,
        h=h,
        scale=scale,
    )


def to_page_coords(placement: FloorPlanPlacement, nx: float, ny: float) -> tuple[float, float]:
    """Normalised (top-down) plan coordinates to page points (bottom-up)."""
    return placement.x + nx * placement.w, placement.y + (1 - ny) * placement.h


def regulatory_text(jurisdiction: str) -> str:
    return REGULATORY_TEXT.get(jurisdiction, DEFAULT_REGULATORY_TEXT)


def pdf_safe(text: str) -> str:
    return text.translate(_PDF_SAFE)


def _format_metres(value: float) -> str:
    return f"{value:g}m"


def _format_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


# ═══════════════════════════════════════════════════════════════════════════
#  OVERLAY: SYMBOLS & ANNOTATIONS
# ═══════════════════════════════════════════════════════════════════════════

def draw_symbols(c, symbols: Iterable[PlacedSymbol], placement: FloorPlanPlacement) -> int:
    """Draw every resolvable symbol; unknown ids are skipped. Returns the number drawn."""
    drawn = 0
    for sym in symbols:
        definition = get_symbol(sym.symbol_id)
        if definition is None:
            continue
        px, py = to_page_coords(placement, sym.x, sym.y)
        w = definition.default_width * sym.scale * SYMBOL_SHRINK
        h = definition.default_height * sym.scale * SYMBOL_SHRINK
        bg = hex_to_rgb(definition.bg_color)

        c.saveState()
        c.translate(px, py)
        if sym.rotation:
            # Editor rotation is clockwise; PDF rotation is counter-clockwise
            c.rotate(-sym.rotation)
        c.setFillColorRGB(*bg)
        if is_point_symbol(sym.symbol_id):
            c.circle(0, 0, max(w, h) / 2, stroke=0, fill=1)
        else:
            c.setStrokeColorRGB(*bg)
            c.setLineWidth(0.5)
            radius = min(SYMBOL_CORNER_RADIUS * sym.scale, w / 2, h / 2)
            c.roundRect(-w / 2, -h / 2, w, h, radius, stroke=1, fill=1)

        label = pdf_safe(sym.label or definition.short_label)
        font_size = max(MIN_SYMBOL_FONT, 8 * sym.scale)
        c.setFillColorRGB(*hex_to_rgb(definition.color))
        c.setFont("Helvetica-Bold", font_size)
        c.drawCentredString(0, -font_size / 3, label)
        c.restoreState()
        drawn += 1
    return drawn


def _draw_text_annotation(c, ann: TextAnnotation, placement: FloorPlanPlacement):
    if not ann.text:
        return
    x, y = to_page_coords(placement, ann.x, ann.y)
    c.setFillColorRGB(*DARK)
    c.setFont("Helvetica", ann.font_size or DEFAULT_TEXT_SIZE)
    c.drawString(x, y, pdf_safe(ann.text))


def _draw_travel_distance(c, ann: TravelDistanceAnnotation, placement: FloorPlanPlacement):
    x, y = to_page_coords(placement, ann.x, ann.y)
    ex, ey = to_page_coords(placement, ann.end_x, ann.end_y)
    c.saveState()
    c.setStrokeColorRGB(*RED)
    c.setLineWidth(1)
    c.setDash(4, 2)
    c.line(x, y, ex, ey)
    c.restoreState()
    if ann.distance_metres is not None:
        c.setFillColorRGB(*RED)
        c.setFont("Helvetica", 7)
        c.drawCentredString((x + ex) / 2, (y + ey) / 2 + 4, _format_metres(ann.distance_metres))


def _draw_arrow(c, ann: ArrowAnnotation, placement: FloorPlanPlacement):
    x, y = to_page_coords(placement, ann.x, ann.y)
    ex, ey = to_page_coords(placement, ann.end_x, ann.end_y)
    c.saveState()
    c.setStrokeColorRGB(*DARK)
    c.setFillColorRGB(*DARK)
    c.setLineWidth(1)
    c.line(x, y, ex, ey)
    if (ex, ey) != (x, y):
        angle = math.atan2(ey - y, ex - x)
        head = c.beginPath()
        head.moveTo(ex, ey)
        head.lineTo(ex - ARROW_HEAD_LEN * math.cos(angle - ARROW_HEAD_ANGLE),
                    ey - ARROW_HEAD_LEN * math.sin(angle - ARROW_HEAD_ANGLE))
        head.lineTo(ex - ARROW_HEAD_LEN * math.cos(angle + ARROW_HEAD_ANGLE),
                    ey - ARROW_HEAD_LEN * math.sin(angle + ARROW_HEAD_ANGLE))
        head.close()
        c.drawPath(head, stroke=0, fill=1)
    if ann.text:
        c.setFont("Helvetica", 7)
        c.drawString(x, y + 4, pdf_safe(ann.text))
    c.restoreState()


def _draw_zone(c, ann: ZoneAnnotation, placement: FloorPlanPlacement):
    style = ZONE_STYLES[ann.zone_type]
    left, top = to_page_coords(placement, ann.x, ann.y)
    right, bottom = to_page_coords(
        placement, min(1.0, ann.x + ann.width), min(1.0, ann.y + ann.height)
    )
    c.saveState()
    c.setStrokeColorRGB(*style["color"])
    c.setFillColorRGB(*style["color"])
    c.setLineWidth(1)
    if style["dash"]:
        c.setDash(*style["dash"])
    c.setFillAlpha(style["alpha"])
    c.rect(left, bottom, right - left, top - bottom, stroke=1, fill=1)
    c.setFillAlpha(1)
    if ann.text:
        c.setFont("Helvetica-Bold", 7)
        c.drawString(left + 4, top - 10, pdf_safe(ann.text))
    c.restoreState()


_ANNOTATION_DRAWERS = {
    "text": _draw_text_annotation,
    "travel_distance": _draw_travel_distance,
    "arrow": _draw_arrow,
    "zone": _draw_zone,
}


def draw_annotations(c, annotations: Iterable, placement: FloorPlanPlacement):
    for ann in annotations:
        _ANNOTATION_DRAWERS[ann.type](c, ann, placement)


# ═══════════════════════════════════════════════════════════════════════════
#  SHEET FURNITURE
# ═══════════════════════════════════════════════════════════════════════════

def _draw_placeholder(c, area: Box):
    c.setStrokeColorRGB(*LIGHT_GRAY)
    c.setLineWidth(1)
    c.rect(area.x, area.y, area.w, area.h, stroke=1, fill=0)
    c.setFillColorRGB(*GRAY)
    c.setFont("Helvetica", 14)
    c.drawCentredString(area.x + area.w / 2, area.y + area.h / 2, PLACEHOLDER_MESSAGE)


def _draw_page_border(c):
    c.setStrokeColorRGB(*DARK)
    c.setLineWidth(1)
    c.rect(MARGIN - 1, MARGIN - 1, PAGE_W - 2 * MARGIN + 2, PAGE_H - 2 * MARGIN + 2, stroke=1, fill=0)


def _draw_legend(c, x: float, y: float, w: float, h: float):
    c.setFillColorRGB(0.97, 0.97, 0.97)
    c.rect(x, y, w, h, stroke=0, fill=1)
    c.setStrokeColorRGB(*LIGHT_GRAY)
    c.setLineWidth(0.5)
    c.line(x, y + h, x + w, y + h)

    c.setFillColorRGB(*DARK)
    c.setFont("Helvetica-Bold", 8)
    c.drawString(x + 8, y + h - 16, "SYMBOL KEY")

    lx = x + LEGEND_FIRST_X
    ly = y + h - 16
    for label, color, text in LEGEND_ENTRIES:
        c.setFillColorRGB(*color)
        c.rect(lx, ly - 4, 28, 14, stroke=0, fill=1)
        c.setFillColorRGB(*WHITE)
        c.setFont("Helvetica-Bold", 7)
        c.drawString(lx + 2, ly - 1, label)
        c.setFillColorRGB(*DARK)
        c.setFont("Helvetica", 7)
        c.drawString(lx + 32, ly - 1, text)
        lx += LEGEND_STEP


def _kv(c, x: float, y: float, label: str, value: str, value_offset: float):
    c.setFillColorRGB(*GRAY)
    c.setFont("Helvetica-Bold", 8)
    c.drawString(x, y, label)
    c.setFillColorRGB(*DARK)
    c.setFont("Helvetica", 8)
    c.drawString(x + value_offset, y, value)


def _draw_approval_box(c, x: float, y: float, h: float, approval: Optional[Approval]):
    """Green APPROVED box when an approval exists, red DRAFT box otherwise."""
    c.setLineWidth(1)
    if approval is not None:
        c.setStrokeColorRGB(*GREEN)
        c.rect(x - 8, y + 4, 272, h - 8, stroke=1, fill=0)
        c.setFillColorRGB(*GREEN)
        c.setFont("Helvetica-Bold", 11)
        c.drawString(x, y + h - 20, "APPROVED")
        c.setFillColorRGB(*DARK)
        c.setFont("Helvetica-Bold", 9)
        c.drawString(x, y + h - 36, approval.approver_name)
        c.setFillColorRGB(*GRAY)
        c.setFont("Helvetica", 8)
        c.drawString(x, y + h - 50, approval.approver_qualifications)
        c.drawString(x, y + h - 64, approval.approver_company)
        c.drawString(x, y + h - 78, _format_date(approval.approved_at))
    else:
        c.setStrokeColorRGB(*RED)
        c.rect(x - 8, y + 4, 272, h - 8, stroke=1, fill=0)
        c.setFillColorRGB(*RED)
        c.setFont("Helvetica-Bold", 10)
        c.drawString(x, y + h - 30, "DRAFT — PENDING VALIDATION")
        c.setFillColorRGB(*GRAY)
        c.setFont("Helvetica", 8)
        c.drawString(x, y + h - 48, "Not approved for submission")


def _draw_title_block(c, x: float, y: float, w: float, h: float, plan: Plan, building: Building,
                      floor: Floor, approval: Optional[Approval], issued_on: date):
    c.setFillColorRGB(*WHITE)
    c.rect(x, y, w, h, stroke=0, fill=1)
    c.setFillColorRGB(*HF_BLUE)
    c.rect(x, y, 8, h, stroke=0, fill=1)

    # Branding
    brand_x = x + 20
    c.setFont("Helvetica-Bold", 16)
    c.drawString(brand_x, y + h - 24, BRAND_NAME)
    c.setFillColorRGB(*GRAY)
    c.setFont("Helvetica", 9)
    c.drawString(brand_x, y + h - 40, BRAND_TAGLINE)
    c.setFillColorRGB(*DARK)
    c.setFont("Helvetica-Bold", 12)
    c.drawString(brand_x, y + h - 60, "FIRE SAFETY PLAN")

    # Plan details
    detail_x = x + 280
    details = (
        ("Building:", building.name),
        ("Address:", f"{building.address_line_1}, {building.city}"),
        ("Floor:", floor.display_name),
        ("Reference:", plan.plan_reference),
        ("Version:", str(plan.version)),
        ("Scale:", floor.scale or "As drawn"),
        ("Date:", _format_date(issued_on)),
    )
    for i, (label, value) in enumerate(details):
        _kv(c, detail_x, y + h - (20 + 14 * i), label, value, 80)

    # Building safety facts
    info_x = x + 560
    facts = (
        ("Jurisdiction:", building.jurisdiction[:1].upper() + building.jurisdiction[1:]),
        ("Evacuation:", building.evacuation_strategy.replace("_", " ")),
        ("Height:", _format_metres(building.height_metres) if building.height_metres else "N/A"),
        ("Storeys:", str(building.number_of_storeys)),
        ("Sprinklers:", "Yes" if building.has_sprinklers else "No"),
    )
    for i, (label, value) in enumerate(facts):
        _kv(c, info_x, y + h - (20 + 14 * i), label, value, 70)

    _draw_approval_box(c, x + w - 280, y, h, approval)

    c.setFillColorRGB(*GRAY)
    c.setFont("Helvetica", 6)
    c.drawString(x + 20, y + 8, regulatory_text(building.jurisdiction))


def _draw_draft_watermark(c):
    c.saveState()
    c.setFillColorRGB(WATERMARK_GRAY, WATERMARK_GRAY, WATERMARK_GRAY)
    c.setFillAlpha(WATERMARK_ALPHA)
    c.setFont("Helvetica-Bold", WATERMARK_FONT_SIZE)
    c.translate(PAGE_W / 2, PAGE_H / 2)
    c.rotate(WATERMARK_ANGLE)
    c.drawCentredString(0, -WATERMARK_FONT_SIZE / 3, WATERMARK_TEXT)
    c.restoreState()


def needs_watermark(plan: Plan) -> bool:
    return plan.status != PlanStatus.APPROVED


# ═══════════════════════════════════════════════════════════════════════════
#  ASSEMBLY
# ═══════════════════════════════════════════════════════════════════════════

def probe_source_page(pdf_bytes: bytes) -> Optional[tuple[float, float]]:
    """Size of page 1 of the source PDF, or None if it cannot be read."""
    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except Exception as e:
        logger.warning(f"Floor plan PDF unreadable: {type(e).__name__}: {e}")
        return None
    try:
        if doc.page_count == 0:
            logger.warning("Floor plan PDF has no pages")
            return None
        rect = doc[0].rect
        if rect.width <= 0 or rect.height <= 0:
            return None
        return rect.width, rect.height
    finally:
        doc.close()


def build_plan_sheet(
    plan: Plan,
    building: Building,
    floor: Floor,
    approval: Optional[Approval],
    placement: Optional[FloorPlanPlacement],
    issued_on: date,
) -> bytes:
    """
    Draw everything except the source floor plan itself. With no placement the
    floor-plan area becomes the placeholder and the overlay is not drawn,
    since there is no embedded page to position it against.
    """
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=PAGE_SIZE, invariant=1)
    c.setTitle(f"Fire Safety Plan {plan.plan_reference} v{plan.version}")
    c.setAuthor(BRAND_NAME)
    c.setSubject(f"{building.name} — {floor.display_name}")

    if placement is None:
        _draw_placeholder(c, floor_plan_area())
    else:
        draw_symbols(c, plan.symbol_data, placement)
        draw_annotations(c, plan.annotations, placement)

    _draw_page_border(c)
    _draw_legend(c, MARGIN, MARGIN + TITLE_BLOCK_H, PAGE_W - 2 * MARGIN, LEGEND_H)
    _draw_title_block(c, MARGIN, MARGIN, PAGE_W - 2 * MARGIN, TITLE_BLOCK_H,
                      plan, building, floor, approval, issued_on)

    if needs_watermark(plan):
        _draw_draft_watermark(c)

    c.showPage()
    c.save()
    return buf.getvalue()


def _underlay_floor_plan(sheet_pdf: bytes, floor_plan_pdf: bytes, placement: FloorPlanPlacement) -> bytes:
    """Place page 1 of the source PDF beneath the sheet's existing content."""
    sheet = fitz.open(stream=sheet_pdf, filetype="pdf")
    source = fitz.open(stream=floor_plan_pdf, filetype="pdf")
    try:
        # fitz rects are top-left origin
        target = fitz.Rect(
            placement.x,
            PAGE_H - (placement.y + placement.h),
            placement.x + placement.w,
            PAGE_H - placement.y,
        )
        sheet[0].show_pdf_page(target, source, 0, overlay=False)
        return sheet.tobytes(garbage=3, deflate=True, no_new_id=True)
    finally:
        source.close()
        sheet.close()


@timed
def render_plan_pdf(
    plan: Plan,
    building: Building,
    floor: Floor,
    floor_plan_pdf: bytes,
    approval: Optional[Approval] = None,
    issued_on: Optional[date] = None,
) -> bytes:
    """
    Render the final A3 plan. Never fails because of the source floor plan:
    an unreadable source yields the placeholder sheet instead.
    """
    issued_on = issued_on or date.today()
    size = probe_source_page(floor_plan_pdf)
    placement = fit_floor_plan(floor_plan_area(), *size) if size else None

    sheet = build_plan_sheet(plan, building, floor, approval, placement, issued_on)
    if placement is None:
        logger.info(f"Plan {plan.plan_reference} rendered with placeholder ({len(sheet):,} bytes)")
        return sheet

    try:
        pdf_bytes = _underlay_floor_plan(sheet, floor_plan_pdf, placement)
    except Exception as e:
        logger.warning(f"Floor plan embed failed for {plan.plan_reference}: {type(e).__name__}: {e}")
        return build_plan_sheet(plan, building, floor, approval, None, issued_on)

    logger.info(
        f"Plan {plan.plan_reference} v{plan.version} rendered: "
        f"{len(plan.symbol_data)} symbols, {len(plan.annotations)} annotations, {len(pdf_bytes):,} bytes"
    )
    return pdf_bytes
