"""
test_plan_renderer.py — Tests for the A3 fire safety plan renderer.

Tests cover:
  - Sheet geometry: floor-plan area, letterbox fit, coordinate mapping
  - Symbol drawing against a mock canvas (centre, rotation, shape)
  - Annotation drawing (travel distance, zone, arrow, text)
  - Jurisdiction citation lookup and WinAnsi-safe labels
  - Full renders read back with PyMuPDF: page size, title block text,
    DRAFT watermark, approval box, placeholder fallback
  - Byte-identical sheets for identical inputs
"""

from datetime import date, datetime, timezone
from unittest.mock import MagicMock

import fitz
import pytest
from reportlab.lib.pagesizes import A3, landscape

from bluebook.models.autoplan_schema import Approval, ComplianceChecklist, Plan, PlacedSymbol
from bluebook.services.autoplan.plan_renderer import (
    DEFAULT_REGULATORY_TEXT,
    LEGEND_GAP,
    LEGEND_H,
    MARGIN,
    PAGE_H,
    PAGE_W,
    SYMBOL_SHRINK,
    TITLE_BLOCK_H,
    Box,
    FloorPlanPlacement,
    build_plan_sheet,
    draw_annotations,
    draw_symbols,
    fit_floor_plan,
    floor_plan_area,
    needs_watermark,
    pdf_safe,
    probe_source_page,
    regulatory_text,
    render_plan_pdf,
    to_page_coords,
)

UNIT = FloorPlanPlacement(x=0, y=0, w=100, h=100, scale=1)
ISSUED = date(2026, 3, 5)


def _page_text(pdf_bytes: bytes) -> str:
    doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    try:
        return doc[0].get_text()
    finally:
        doc.close()


def _approval() -> Approval:
    return Approval(
        plan_id="plan-1",
        approver_name="Jane Fielding",
        approver_qualifications="CEng MIFireE",
        approver_company="Fielding Fire Engineering",
        attestation="I, Jane Fielding, confirm ...",
        checklist_results=ComplianceChecklist(**{k: True for k in ComplianceChecklist.model_fields}),
        approved_at=datetime(2026, 3, 4, 16, 45, tzinfo=timezone.utc),
    )


# ===========================================================================
# Class 1: Geometry
# ===========================================================================

class TestGeometry:

    def test_page_is_a3_landscape(self):
        assert (PAGE_W, PAGE_H) == landscape(A3)

    def test_floor_plan_area_sits_above_legend_and_title_block(self):
        area = floor_plan_area()
        assert area.x == MARGIN
        assert area.y == MARGIN + TITLE_BLOCK_H + LEGEND_H + LEGEND_GAP
        assert area.w == pytest.approx(PAGE_W - 2 * MARGIN)
        assert area.y + area.h == pytest.approx(PAGE_H - MARGIN)

    def test_fit_wide_area_centres_horizontally(self):
        p = fit_floor_plan(Box(0, 0, 200, 100), 100, 100)
        assert (p.x, p.y, p.w, p.h, p.scale) == (50, 0, 100, 100, 1)

    def test_fit_tall_area_centres_vertically(self):
        p = fit_floor_plan(Box(10, 20, 100, 300), 50, 50)
        assert p.scale == 2
        assert (p.x, p.y) == (10, 120)

    def test_fit_preserves_aspect_ratio(self):
        p = fit_floor_plan(floor_plan_area(), 842, 595)
        assert p.w / p.h == pytest.approx(842 / 595)

    @pytest.mark.parametrize("w,h", [(0, 100), (100, 0), (-5, 10)])
    def test_fit_rejects_degenerate_pages(self, w, h):
        with pytest.raises(ValueError):
            fit_floor_plan(floor_plan_area(), w, h)

    def test_normalised_origin_is_top_left(self):
        """(0,0) in plan space is the top-left of the placed page."""
        assert to_page_coords(UNIT, 0, 0) == (0, 100)
        assert to_page_coords(UNIT, 1, 1) == (100, 0)

    def test_centre_maps_to_centre(self):
        p = FloorPlanPlacement(x=40, y=220, w=400, h=200, scale=2)
        assert to_page_coords(p, 0.5, 0.5) == (240, 320)


# ===========================================================================
# Class 2: Symbols on a mock canvas
# ===========================================================================

class TestDrawSymbols:

    def test_fire_exit_centre_lands_at_50_50(self):
        """One fire_exit at (0.5, 0.5) on a 100x100 area at the origin is centred at (50, 50)."""
        c = MagicMock()
        sym = PlacedSymbol(instance_id="s1", symbol_id="fire_exit", x=0.5, y=0.5)
        assert draw_symbols(c, [sym], UNIT) == 1
        c.translate.assert_called_once_with(50.0, 50.0)
        c.roundRect.assert_called_once()
        c.circle.assert_not_called()

    def test_rectangle_dimensions_are_scaled_default_size(self):
        c = MagicMock()
        sym = PlacedSymbol(instance_id="s1", symbol_id="fire_exit", x=0.5, y=0.5, scale=2)
        draw_symbols(c, [sym], UNIT)
        x, y, w, h, _radius = c.roundRect.call_args.args
        assert w == pytest.approx(40 * 2 * SYMBOL_SHRINK)
        assert h == pytest.approx(24 * 2 * SYMBOL_SHRINK)
        assert (x, y) == (pytest.approx(-w / 2), pytest.approx(-h / 2))

    def test_point_symbol_is_circle(self):
        c = MagicMock()
        sym = PlacedSymbol(instance_id="s1", symbol_id="smoke_detector", x=0.25, y=0.75)
        draw_symbols(c, [sym], UNIT)
        c.translate.assert_called_once_with(25.0, 25.0)
        c.circle.assert_called_once_with(0, 0, pytest.approx(24 * SYMBOL_SHRINK / 2), stroke=0, fill=1)
        c.roundRect.assert_not_called()

    def test_clockwise_rotation_becomes_negative_pdf_rotation(self):
        c = MagicMock()
        sym = PlacedSymbol(instance_id="s1", symbol_id="fire_exit", x=0.5, y=0.5, rotation=90)
        draw_symbols(c, [sym], UNIT)
        c.rotate.assert_called_once_with(-90)

    def test_zero_rotation_not_applied(self):
        c = MagicMock()
        draw_symbols(c, [PlacedSymbol(instance_id="s1", symbol_id="fire_exit", x=0.5, y=0.5)], UNIT)
        c.rotate.assert_not_called()

    def test_unknown_symbol_skipped(self):
        c = MagicMock()
        symbols = [
            PlacedSymbol(instance_id="s1", symbol_id="retired_symbol", x=0.1, y=0.1),
            PlacedSymbol(instance_id="s2", symbol_id="fire_extinguisher", x=0.2, y=0.2),
        ]
        assert draw_symbols(c, symbols, UNIT) == 1
        assert c.translate.call_count == 1

    def test_custom_label_overrides_short_label(self):
        c = MagicMock()
        sym = PlacedSymbol(instance_id="s1", symbol_id="fire_exit_left", x=0.5, y=0.5)
        draw_symbols(c, [sym], UNIT)
        assert c.drawCentredString.call_args.args[2] == "< EXIT"

        c = MagicMock()
        sym = PlacedSymbol(instance_id="s2", symbol_id="fire_exit", x=0.5, y=0.5, label="EXIT 2")
        draw_symbols(c, [sym], UNIT)
        assert c.drawCentredString.call_args.args[2] == "EXIT 2"

    def test_state_saved_and_restored_per_symbol(self):
        c = MagicMock()
        symbols = [PlacedSymbol(instance_id=f"s{i}", symbol_id="fire_exit", x=0.5, y=0.5) for i in range(3)]
        draw_symbols(c, symbols, UNIT)
        assert c.saveState.call_count == 3
        assert c.restoreState.call_count == 3


# ===========================================================================
# Class 3: Annotations on a mock canvas
# ===========================================================================

def _plan_with(annotations: list) -> Plan:
    return Plan.model_validate({"plan_reference": "HF-AP-0001", "annotations": annotations})


class TestDrawAnnotations:

    def test_travel_distance_line_and_label(self):
        c = MagicMock()
        plan = _plan_with([{"id": "a", "type": "travel_distance", "x": 0.0, "y": 0.5,
                            "endX": 1.0, "endY": 0.5, "distanceMetres": 18}])
        draw_annotations(c, plan.annotations, UNIT)
        c.setDash.assert_called_once_with(4, 2)
        c.line.assert_called_once_with(0.0, 50.0, 100.0, 50.0)
        c.drawCentredString.assert_called_once_with(50.0, 54.0, "18m")

    def test_travel_distance_without_metres_has_no_label(self):
        c = MagicMock()
        plan = _plan_with([{"id": "a", "type": "travel_distance", "x": 0.0, "y": 0.5,
                            "endX": 1.0, "endY": 0.5}])
        draw_annotations(c, plan.annotations, UNIT)
        c.drawCentredString.assert_not_called()

    def test_zone_rectangle_from_top_left_corner(self):
        c = MagicMock()
        plan = _plan_with([{"id": "z", "type": "zone", "x": 0.25, "y": 0.25, "width": 0.5,
                            "height": 0.25, "zoneType": "stairwell", "text": "Stair A"}])
        draw_annotations(c, plan.annotations, UNIT)
        x, y, w, h = c.rect.call_args.args
        assert (x, y, w, h) == (25.0, 50.0, 50.0, 25.0)
        c.setFillAlpha.assert_any_call(0.12)
        c.drawString.assert_called_once_with(29.0, 65.0, "Stair A")

    def test_compartment_zone_is_dashed(self):
        c = MagicMock()
        plan = _plan_with([{"id": "z", "type": "zone", "x": 0.0, "y": 0.0, "width": 0.5, "height": 0.5}])
        draw_annotations(c, plan.annotations, UNIT)
        c.setDash.assert_called_once_with(6, 3)

    def test_arrow_has_filled_head(self):
        c = MagicMock()
        plan = _plan_with([{"id": "r", "type": "arrow", "x": 0.0, "y": 0.5, "endX": 1.0, "endY": 0.5}])
        draw_annotations(c, plan.annotations, UNIT)
        c.line.assert_called_once_with(0.0, 50.0, 100.0, 50.0)
        c.drawPath.assert_called_once()
        assert c.drawPath.call_args.kwargs == {"stroke": 0, "fill": 1}

    def test_empty_text_annotation_skipped(self):
        c = MagicMock()
        plan = _plan_with([{"id": "t", "type": "text", "x": 0.5, "y": 0.5, "text": ""}])
        draw_annotations(c, plan.annotations, UNIT)
        c.drawString.assert_not_called()

    def test_text_annotation_font_size(self):
        c = MagicMock()
        plan = _plan_with([{"id": "t", "type": "text", "x": 0.5, "y": 0.5, "text": "Lobby", "fontSize": 12}])
        draw_annotations(c, plan.annotations, UNIT)
        c.setFont.assert_called_once_with("Helvetica", 12)
        c.drawString.assert_called_once_with(50.0, 50.0, "Lobby")


# ===========================================================================
# Class 4: Lookup tables
# ===========================================================================

class TestLookups:

    @pytest.mark.parametrize("jurisdiction,needle", [
        ("england", "Fire Safety (England) Regulations 2022"),
        ("scotland", "Fire (Scotland) Act 2005"),
        ("wales", "Fire Safety Act 2021"),
    ])
    def test_regulatory_text(self, jurisdiction, needle):
        assert needle in regulatory_text(jurisdiction)

    def test_unknown_jurisdiction_gets_generic_citation(self):
        assert regulatory_text("northern_ireland") == DEFAULT_REGULATORY_TEXT

    def test_pdf_safe_arrows(self):
        assert pdf_safe("← EXIT →") == "< EXIT >"

    @pytest.mark.parametrize("status,expected", [
        ("draft", True), ("review", True), ("superseded", True), ("approved", False),
    ])
    def test_needs_watermark(self, status, expected):
        plan = Plan(plan_reference="HF-AP-0001", status=status)
        assert needs_watermark(plan) is expected


# ===========================================================================
# Class 5: Full renders
# ===========================================================================

class TestRenderPlanPdf:

    def test_single_a3_landscape_page(self, sample_plan, sample_building, sample_floor, floor_plan_pdf):
        pdf = render_plan_pdf(sample_plan, sample_building, sample_floor, floor_plan_pdf, issued_on=ISSUED)
        doc = fitz.open(stream=pdf, filetype="pdf")
        try:
            assert doc.page_count == 1
            assert doc[0].rect.width == pytest.approx(PAGE_W, abs=0.5)
            assert doc[0].rect.height == pytest.approx(PAGE_H, abs=0.5)
        finally:
            doc.close()

    def test_title_block_contents(self, sample_plan, sample_building, sample_floor, floor_plan_pdf):
        text = _page_text(render_plan_pdf(
            sample_plan, sample_building, sample_floor, floor_plan_pdf, issued_on=ISSUED))
        for needle in ("HARMONY FIRE", "FIRE SAFETY PLAN", "Riverside Tower", "12 River Street, London",
                       "Third Floor", "HF-AP-0001", "1:100", "05/03/2026", "England", "stay put",
                       "32.5m", "SYMBOL KEY", "Regulation 6"):
            assert needle in text, needle

    def test_source_floor_plan_is_embedded(self, sample_plan, sample_building, sample_floor, floor_plan_pdf):
        text = _page_text(render_plan_pdf(
            sample_plan, sample_building, sample_floor, floor_plan_pdf, issued_on=ISSUED))
        assert "Flat 3B" in text
        assert "Floor plan could not be embedded" not in text

    def test_overlay_labels_drawn(self, sample_plan, sample_building, sample_floor, floor_plan_pdf):
        text = _page_text(render_plan_pdf(
            sample_plan, sample_building, sample_floor, floor_plan_pdf, issued_on=ISSUED))
        assert "17.5m" in text
        assert "Protected corridor" in text

    def test_draft_is_watermarked_and_pending(self, sample_plan, sample_building, sample_floor, floor_plan_pdf):
        text = _page_text(render_plan_pdf(
            sample_plan, sample_building, sample_floor, floor_plan_pdf, issued_on=ISSUED))
        assert "PENDING VALIDATION" in text
        assert "DRAFT" in text

    def test_approved_plan_shows_approver_and_no_watermark(
        self, sample_plan, sample_building, sample_floor, floor_plan_pdf
    ):
        approved = sample_plan.model_copy(update={"status": "approved"})
        text = _page_text(render_plan_pdf(
            approved, sample_building, sample_floor, floor_plan_pdf,
            approval=_approval(), issued_on=ISSUED))
        assert "APPROVED" in text
        assert "Jane Fielding" in text
        assert "Fielding Fire Engineering" in text
        assert "04/03/2026" in text
        assert "DRAFT" not in text

    def test_unreadable_source_falls_back_to_placeholder(self, sample_plan, sample_building, sample_floor):
        pdf = render_plan_pdf(sample_plan, sample_building, sample_floor, b"not a pdf", issued_on=ISSUED)
        text = _page_text(pdf)
        assert "Floor plan could not be embedded" in text
        assert "FIRE SAFETY PLAN" in text

    def test_placeholder_skips_overlay(self, sample_plan, sample_building, sample_floor):
        text = _page_text(render_plan_pdf(sample_plan, sample_building, sample_floor, b"", issued_on=ISSUED))
        assert "17.5m" not in text

    def test_unknown_jurisdiction_renders_generic_citation(
        self, sample_plan, sample_building, sample_floor, floor_plan_pdf
    ):
        building = sample_building.model_copy(update={"jurisdiction": "isle_of_man"})
        text = _page_text(render_plan_pdf(sample_plan, building, sample_floor, floor_plan_pdf, issued_on=ISSUED))
        assert "applicable UK fire safety regulations" in text

    def test_floor_without_name_or_scale(self, sample_plan, sample_building, sample_floor, floor_plan_pdf):
        floor = sample_floor.model_copy(update={"floor_name": None, "scale": None})
        text = _page_text(render_plan_pdf(sample_plan, sample_building, floor, floor_plan_pdf, issued_on=ISSUED))
        assert "Floor 3" in text
        assert "As drawn" in text


# ===========================================================================
# Class 6: Determinism and probing
# ===========================================================================

class TestDeterminism:

    def test_identical_inputs_identical_sheet(self, sample_plan, sample_building, sample_floor):
        placement = fit_floor_plan(floor_plan_area(), 842, 595)
        first = build_plan_sheet(sample_plan, sample_building, sample_floor, None, placement, ISSUED)
        second = build_plan_sheet(sample_plan, sample_building, sample_floor, None, placement, ISSUED)
        assert first == second

    def test_identical_inputs_identical_pdf(self, sample_plan, sample_building, sample_floor, floor_plan_pdf):
        """The embedded floor plan path must not introduce a fresh trailer /ID."""
        first = render_plan_pdf(sample_plan, sample_building, sample_floor, floor_plan_pdf, issued_on=ISSUED)
        second = render_plan_pdf(sample_plan, sample_building, sample_floor, floor_plan_pdf, issued_on=ISSUED)
        assert first == second

    def test_probe_source_page(self, floor_plan_pdf):
        w, h = probe_source_page(floor_plan_pdf)
        assert (w, h) == (pytest.approx(841.89, abs=0.5), pytest.approx(595.28, abs=0.5))

    def test_probe_unreadable(self):
        assert probe_source_page(b"garbage") is None
        assert probe_source_page(b"") is None
