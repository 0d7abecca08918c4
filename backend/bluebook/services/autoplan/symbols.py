"""
AutoPlan Symbol Registry — BS 5499 / ISO 7010 fire safety symbol definitions.

Static catalogue shared by the vision analyzer (valid suggestion ids), the plan
editor palette and the plan renderer. Lookups by unknown id return None so that
callers can skip stale or renamed symbols instead of failing.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

# ── Categories ────────────────────────────────────────────────────────────────
SYMBOL_CATEGORIES: list[tuple[str, str]] = [
    ("escape", "Escape"),
    ("equipment", "Equipment"),
    ("doors", "Fire Doors"),
    ("detection", "Detection"),
    ("suppression", "Suppression"),
    ("lighting", "Lighting"),
]

# Symbols drawn as filled circles; everything else is a rounded rectangle
POINT_SYMBOL_IDS: frozenset[str] = frozenset({
    "smoke_detector",
    "heat_detector",
    "dry_riser_inlet",
    "wet_riser_outlet",
    "assembly_point",
})

_ESCAPE_GREEN = "#16A34A"
_EQUIPMENT_RED = "#DC2626"
_SERVICE_BLUE = "#2563EB"
_WHITE = "#FFFFFF"


@dataclass(frozen=True)
class SymbolDefinition:
    id: str
    label: str
    short_label: str
    category: str
    color: str          # foreground (label) colour
    bg_color: str
    bs_reference: str
    default_width: float
    default_height: float

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "shortLabel": self.short_label,
            "category": self.category,
            "color": self.color,
            "bgColor": self.bg_color,
            "bsReference": self.bs_reference,
            "defaultWidth": self.default_width,
            "defaultHeight": self.default_height,
        }


SYMBOL_DEFINITIONS: tuple[SymbolDefinition, ...] = (
    # ── Escape (green) ──
    SymbolDefinition("fire_exit", "Fire Exit", "EXIT", "escape", _WHITE, _ESCAPE_GREEN, "ISO 7010 E001/E002", 40, 24),
    SymbolDefinition("fire_exit_left", "Fire Exit (Left)", "← EXIT", "escape", _WHITE, _ESCAPE_GREEN, "ISO 7010 E001", 40, 24),
    SymbolDefinition("fire_exit_right", "Fire Exit (Right)", "EXIT →", "escape", _WHITE, _ESCAPE_GREEN, "ISO 7010 E002", 40, 24),
    SymbolDefinition("assembly_point", "Assembly Point", "AP", "escape", _WHITE, _ESCAPE_GREEN, "ISO 7010 E007", 32, 32),
    # ── Equipment (red) ──
    SymbolDefinition("fire_extinguisher", "Fire Extinguisher", "FE", "equipment", _WHITE, _EQUIPMENT_RED, "ISO 7010 F001", 24, 24),
    SymbolDefinition("fire_hose_reel", "Fire Hose Reel", "HR", "equipment", _WHITE, _EQUIPMENT_RED, "ISO 7010 F002", 24, 24),
    SymbolDefinition("fire_alarm_cp", "Fire Alarm Call Point", "CP", "equipment", _WHITE, _EQUIPMENT_RED, "ISO 7010 F005", 24, 24),
    SymbolDefinition("fire_blanket", "Fire Blanket", "FB", "equipment", _WHITE, _EQUIPMENT_RED, "ISO 7010 F016", 24, 24),
    SymbolDefinition("dry_riser_inlet", "Dry Riser Inlet", "D", "equipment", _WHITE, _EQUIPMENT_RED, "BS 5499-5", 28, 28),
    SymbolDefinition("wet_riser_outlet", "Wet Riser Outlet", "W", "equipment", _WHITE, _EQUIPMENT_RED, "BS 5499-5", 28, 28),
    # ── Doors (blue) ──
    SymbolDefinition("fire_door_fd30", "Fire Door FD30", "FD30", "doors", _WHITE, _SERVICE_BLUE, "BS 8214", 36, 20),
    SymbolDefinition("fire_door_fd60", "Fire Door FD60", "FD60", "doors", _WHITE, _SERVICE_BLUE, "BS 8214", 36, 20),
    SymbolDefinition("fire_door_fd90", "Fire Door FD90", "FD90", "doors", _WHITE, _SERVICE_BLUE, "BS 8214", 36, 20),
    SymbolDefinition("fire_door_fd120", "Fire Door FD120", "FD120", "doors", _WHITE, _SERVICE_BLUE, "BS 8214", 40, 20),
    # ── Detection (blue) ──
    SymbolDefinition("smoke_detector", "Smoke Detector", "S", "detection", _WHITE, _SERVICE_BLUE, "BS 5839-1", 24, 24),
    SymbolDefinition("heat_detector", "Heat Detector", "H", "detection", _WHITE, _SERVICE_BLUE, "BS 5839-1", 24, 24),
    # ── Suppression (blue) ──
    SymbolDefinition("sprinkler_head", "Sprinkler Head", "SP", "suppression", _WHITE, _SERVICE_BLUE, "BS EN 12845", 24, 24),
    # ── Lighting (green) ──
    SymbolDefinition("emergency_light", "Emergency Light", "EL", "lighting", _WHITE, _ESCAPE_GREEN, "BS 5266-1", 28, 20),
)

SYMBOL_MAP: dict[str, SymbolDefinition] = {s.id: s for s in SYMBOL_DEFINITIONS}


def get_symbol(symbol_id: str) -> Optional[SymbolDefinition]:
    """Resolve a symbol id; unknown ids return None."""
    return SYMBOL_MAP.get(symbol_id)


def list_by_category(category: str) -> list[SymbolDefinition]:
    """Symbols in one category, in catalogue order. Unknown category -> []."""
    return [s for s in SYMBOL_DEFINITIONS if s.category == category]


def symbol_ids() -> list[str]:
    return [s.id for s in SYMBOL_DEFINITIONS]


def is_point_symbol(symbol_id: str) -> bool:
    return symbol_id in POINT_SYMBOL_IDS


def hex_to_rgb(hex_color: str) -> tuple:
    """Convert '#RRGGBB' to (r, g, b) floats 0-1."""
    h = hex_color.lstrip("#")
    if len(h) != 6:
        return (0.0, 0.0, 0.0)
    return (int(h[0:2], 16) / 255, int(h[2:4], 16) / 255, int(h[4:6], 16) / 255)
