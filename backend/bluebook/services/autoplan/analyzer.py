"""
Floor-Plan Vision Analyzer.

Renders page 1 of an uploaded floor plan, sends it to the vision model with a
building-aware prompt, and turns the reply into a fully populated
AIAnalysisResult:

  1. build_prompt        — building context + element taxonomy + symbol ids
  2. rasterize_first_page — PyMuPDF render at 2x, base64 PNG
  3. extract_json_object — largest {...} block in the reply
  4. parse_analysis      — validate-and-default the loose wire JSON

A transport failure or a reply without parseable JSON is a hard failure.
Missing or malformed optional fields are defaulted or dropped, never fatal.
"""
from __future__ import annotations

import base64
import json
import logging
import math
import re
from typing import Any, Optional

import fitz  # PyMuPDF
from pydantic import ValidationError

from bluebook.models.autoplan_schema import (
    AIAnalysisResult,
    AIAnalysisWire,
    AnalysisElements,
    Building,
    CorridorElement,
    EquipmentElement,
    ExitElement,
    FireDoorElement,
    RoomElement,
    StaircaseElement,
    SuggestedSymbol,
)
from bluebook.services.autoplan.symbols import get_symbol
from bluebook.services.llm_client import LLMClient, LLMTransportError
from bluebook.services.perf_monitor import timed_async

logger = logging.getLogger("bluebook-autoplan")

_RENDER_MATRIX = fitz.Matrix(2.0, 2.0)
_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")

_ELEMENT_MODELS = {
    "exits": ExitElement,
    "fire_doors": FireDoorElement,
    "staircases": StaircaseElement,
    "equipment": EquipmentElement,
    "corridors": CorridorElement,
    "rooms": RoomElement,
}


class AnalysisError(Exception):
    """Base class for floor-plan analysis failures."""


class AnalysisParseError(AnalysisError):
    """The model replied, but no JSON object could be recovered from the reply."""


class AnalysisTransportError(AnalysisError):
    """The vision call itself failed."""


# ── Prompt ────────────────────────────────────────────────────────────────────

def _humanize(value: str) -> str:
    return value.replace("_", " ")


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def build_prompt(building: Building) -> str:
    height = building.height_metres if building.height_metres else "unknown"
    return f"""You are analyzing a floor plan PDF for a UK building to identify fire safety elements.

BUILDING CONTEXT:
- Name: {building.name}
- Address: {building.address_line_1}, {building.city}, {building.postcode}
- Jurisdiction: {building.jurisdiction.upper()}
- Height: {height}m, {building.number_of_storeys} storeys
- Use: {_humanize(building.building_use)}
- Evacuation Strategy: {_humanize(building.evacuation_strategy)}
- Sprinklers: {_yes_no(building.has_sprinklers)}
- Dry Riser: {_yes_no(building.has_dry_riser)}
- Wet Riser: {_yes_no(building.has_wet_riser)}

Analyze this floor plan image and identify:

1. EXITS — doors leading outside or to protected escape routes
2. FIRE DOORS — doors with fire resistance markings (FD30, FD60, etc.) or likely fire doors based on position
3. STAIRCASES — protected stairways, firefighting stairs
4. FIRE EQUIPMENT — extinguishers, call points, hose reels if visible
5. CORRIDORS — common parts, escape routes
6. ROOMS — flats, offices, plant rooms (labels if visible)
7. SCALE — drawing scale if marked (e.g. "1:100")

For each element, provide its approximate position as normalised coordinates (0.0 to 1.0 relative to image width and height, where 0,0 is top-left).

Based on the building context and what you see, suggest appropriate fire safety symbols from this list:
- fire_exit, fire_exit_left, fire_exit_right (for exits)
- assembly_point (for assembly areas, typically outside)
- fire_extinguisher (near exits and corridors)
- fire_alarm_cp (call points near exits)
- fire_hose_reel (in corridors for buildings >18m)
- fire_door_fd30, fire_door_fd60 (for fire doors — FD30 for flat entrances, FD60 for stairwell doors in >18m buildings)
- smoke_detector, heat_detector (in corridors and rooms)
- sprinkler_head (only if building has sprinklers)
- emergency_light (along escape routes)
- dry_riser_inlet, wet_riser_outlet (only if building has risers)

Return ONLY valid JSON:
{{
  "confidence": 0.85,
  "scale": "1:100",
  "elements": {{
    "exits": [{{ "x": 0.45, "y": 0.92, "type": "final_exit", "notes": "main entrance" }}],
    "fire_doors": [{{ "x": 0.3, "y": 0.5, "rating": "FD30", "notes": "flat entrance" }}],
    "staircases": [{{ "x": 0.1, "y": 0.5, "type": "protected", "notes": "core stairwell" }}],
    "equipment": [{{ "x": 0.2, "y": 0.4, "type": "fire_extinguisher" }}],
    "corridors": [{{ "x": 0.5, "y": 0.5, "width": 0.1, "height": 0.8, "notes": "main corridor" }}],
    "rooms": [{{ "x": 0.7, "y": 0.3, "label": "Flat 1A", "type": "flat" }}]
  }},
  "suggested_symbols": [
    {{ "symbolId": "fire_exit", "x": 0.45, "y": 0.92, "rotation": 0 }},
    {{ "symbolId": "fire_door_fd30", "x": 0.3, "y": 0.5, "rotation": 0 }},
    {{ "symbolId": "fire_extinguisher", "x": 0.2, "y": 0.4, "rotation": 0 }}
  ],
  "warnings": ["Scale bar not found — positions approximate"],
  "regulatory_notes": [
    "Building >18m: Fire Safety (England) Regulations 2022 Regulation 6 requires floor plans"
  ]
}}"""


# ── Rasterisation ─────────────────────────────────────────────────────────────

def rasterize_first_page(pdf_bytes: bytes) -> str:
    """Render page 1 to PNG at 2x and return it base64-encoded."""
    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except Exception as e:
        raise AnalysisError(f"Floor plan PDF could not be opened: {e}") from e
    try:
        if doc.page_count == 0:
            raise AnalysisError("Floor plan PDF has no pages")
        pix = doc[0].get_pixmap(matrix=_RENDER_MATRIX)
        return base64.b64encode(pix.tobytes("png")).decode()
    finally:
        doc.close()


# ── Reply parsing ─────────────────────────────────────────────────────────────

def extract_json_object(text: str) -> str:
    """Largest {...} span in the reply (tolerates prose and markdown fences)."""
    match = _JSON_BLOCK.search(text or "")
    if not match:
        raise AnalysisParseError("No JSON found in model response")
    return match.group(0)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _clamp01(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


def _clamped_point(item: Any) -> Optional[dict]:
    """Copy of a wire dict with x/y clamped into [0,1]; None if x/y unusable."""
    if not isinstance(item, dict):
        return None
    if not (_is_number(item.get("x")) and _is_number(item.get("y"))):
        return None
    out = dict(item)
    out["x"] = _clamp01(item["x"])
    out["y"] = _clamp01(item["y"])
    return out


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)]


def _normalize_elements(raw: Any) -> AnalysisElements:
    if not isinstance(raw, dict):
        return AnalysisElements()
    parsed: dict[str, list] = {}
    for key, model in _ELEMENT_MODELS.items():
        items = raw.get(key)
        kept = []
        for item in items if isinstance(items, list) else []:
            point = _clamped_point(item)
            if point is None:
                continue
            try:
                kept.append(model.model_validate(point))
            except ValidationError:
                logger.debug("Dropping malformed %s element: %r", key, item)
        parsed[key] = kept
    return AnalysisElements(**parsed)


def _normalize_suggestions(raw: Any) -> list[SuggestedSymbol]:
    suggestions: list[SuggestedSymbol] = []
    for item in raw if isinstance(raw, list) else []:
        point = _clamped_point(item)
        if point is None:
            continue
        symbol_id = point.get("symbolId") or point.get("symbol_id")
        if not isinstance(symbol_id, str) or get_symbol(symbol_id) is None:
            logger.info("Dropping suggestion with unknown symbol id %r", symbol_id)
            continue
        point["symbolId"] = symbol_id
        point.pop("symbol_id", None)
        if not _is_number(point.get("rotation")):
            point["rotation"] = 0.0
        if not isinstance(point.get("label"), str) or not point.get("label"):
            point.pop("label", None)
        try:
            suggestions.append(SuggestedSymbol.model_validate(point))
        except ValidationError:
            logger.debug("Dropping malformed suggestion: %r", item)
    return suggestions


def parse_analysis(text: str) -> AIAnalysisResult:
    """Parse a model reply into a complete AIAnalysisResult."""
    block = extract_json_object(text)
    try:
        payload = json.loads(block)
    except json.JSONDecodeError as e:
        raise AnalysisParseError(f"No JSON found in model response: {e}") from e
    if not isinstance(payload, dict):
        raise AnalysisParseError("No JSON found in model response")

    wire = AIAnalysisWire.model_validate(payload)
    confidence = _clamp01(wire.confidence) if _is_number(wire.confidence) else 0.0
    scale = wire.scale if isinstance(wire.scale, str) and wire.scale.strip() else None

    return AIAnalysisResult(
        confidence=confidence,
        scale=scale,
        elements=_normalize_elements(wire.elements),
        suggested_symbols=_normalize_suggestions(wire.suggested_symbols),
        warnings=_string_list(wire.warnings),
        regulatory_notes=_string_list(wire.regulatory_notes),
    )


# ── Entry point ───────────────────────────────────────────────────────────────

@timed_async
async def analyze_floor_plan(
    pdf_bytes: bytes,
    building: Building,
    llm: Optional[LLMClient] = None,
) -> AIAnalysisResult:
    """
    One vision round-trip for one floor. Raises AnalysisTransportError if the
    call fails and AnalysisParseError if the reply holds no JSON.
    """
    llm = llm or LLMClient()
    image_b64 = rasterize_first_page(pdf_bytes)
    prompt = build_prompt(building)

    try:
        reply = await llm.vision([image_b64], prompt)
    except LLMTransportError as e:
        raise AnalysisTransportError(str(e)) from e

    result = parse_analysis(reply)
    logger.info(
        f"Floor plan analysed for '{building.name}': confidence={result.confidence:.2f}, "
        f"{len(result.suggested_symbols)} symbols suggested, {len(result.warnings)} warnings"
    )
    return result
