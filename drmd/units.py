"""
Unit Converter
==============
Converts human-readable measurement units into machine-readable D-SI
notation (escape-prefixed SI symbols such as ``\\milli\\gram``).

Scale factors are 1 whenever the D-SI string already carries the prefix of
the input unit (mg -> \\milli\\gram). A real factor is only applied when the
unit is replaced by a different SI unit (lb -> \\kilogram).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import NamedTuple, Optional, Union

logger = logging.getLogger(__name__)

DSI_ESCAPE = "\\"


@dataclass(frozen=True)
class UnitConversion:
    """Target D-SI unit plus the factor applied to the numeric value."""
    dsi_unit: str
    factor: float = 1.0


class DsiResult(NamedTuple):
    """Result of a conversion. Both fields are empty on a miss."""
    dsi_value: str
    dsi_unit: str


EMPTY_RESULT = DsiResult("", "")


def _u(dsi_unit: str, factor: float = 1.0) -> UnitConversion:
    return UnitConversion(dsi_unit=dsi_unit, factor=factor)


_MG_PER_KG = r"\milli\gram\kilogram\tothe{-1}"
_UG_PER_KG = r"\micro\gram\kilogram\tothe{-1}"
_G_PER_KG = r"\gram\kilogram\tothe{-1}"
_MG_PER_G = r"\milli\gram\gram\tothe{-1}"
_UG_PER_G = r"\micro\gram\gram\tothe{-1}"

# ─── Unit Table ───────────────────────────────────────────────────────────────

# Keys are matched after whitespace removal. Insertion order matters for the
# case-insensitive fallback: the first key whose lower-case form matches wins.
UNIT_TABLE: dict[str, UnitConversion] = {
    # Dimensionless / ratios
    "%": _u(r"\percent"),
    "percent": _u(r"\percent"),
    "ppm": _u(r"\one", 1e-6),
    "ppb": _u(r"\one", 1e-9),
    "one": _u(r"\one"),
    "/one": _u(r"\one"),
    r"\one": _u(r"\one"),

    # Mass fractions
    "mg/kg": _u(_MG_PER_KG),
    "mgkg-1": _u(_MG_PER_KG),
    "mgkg⁻¹": _u(_MG_PER_KG),
    "µg/kg": _u(_UG_PER_KG),
    "ug/kg": _u(_UG_PER_KG),
    "μg/kg": _u(_UG_PER_KG),  # greek mu
    "µgkg-1": _u(_UG_PER_KG),
    "ugkg-1": _u(_UG_PER_KG),
    "µgkg⁻¹": _u(_UG_PER_KG),
    "g/kg": _u(_G_PER_KG),
    "gkg-1": _u(_G_PER_KG),
    "gkg⁻¹": _u(_G_PER_KG),
    "mg/g": _u(_MG_PER_G),
    "mgg-1": _u(_MG_PER_G),
    "ug/g": _u(_UG_PER_G),
    "µg/g": _u(_UG_PER_G),
    "μg/g": _u(_UG_PER_G),
    "g/100g": _u(r"\gram\hecto\gram\tothe{-1}"),

    # Specific surface area
    "m2/g": _u(r"\metre\tothe{2}\gram\tothe{-1}"),
    "m²/g": _u(r"\metre\tothe{2}\gram\tothe{-1}"),
    "cm2/g": _u(r"\centi\metre\tothe{2}\gram\tothe{-1}"),
    "cm²/g": _u(r"\centi\metre\tothe{2}\gram\tothe{-1}"),

    # Mass
    "mg": _u(r"\milli\gram"),
    "g": _u(r"\gram"),
    "kg": _u(r"\kilogram"),
    "ug": _u(r"\micro\gram"),
    "µg": _u(r"\micro\gram"),
    "μg": _u(r"\micro\gram"),
    "lb": _u(r"\kilogram", 0.45359237),
    "oz": _u(r"\kilogram", 0.02834959),
    "t": _u(r"\kilogram", 1000),

    # Length
    "nm": _u(r"\nano\metre"),
    "µm": _u(r"\micro\metre"),
    "μm": _u(r"\micro\metre"),
    "um": _u(r"\micro\metre"),
    "mm": _u(r"\milli\metre"),
    "cm": _u(r"\centi\metre"),
    "m": _u(r"\metre"),
    "km": _u(r"\kilo\metre"),
    "inch": _u(r"\metre", 0.0254),
    "in": _u(r"\metre", 0.0254),
    "ft": _u(r"\metre", 0.3048),
    "mi": _u(r"\metre", 1609.344),

    # Area
    "m2": _u(r"\metre\tothe{2}"),
    "m²": _u(r"\metre\tothe{2}"),
    "cm2": _u(r"\centi\metre\tothe{2}"),
    "cm²": _u(r"\centi\metre\tothe{2}"),

    # Density
    "g/cm3": _u(r"\gram\centi\metre\tothe{-3}"),
    "g/cm³": _u(r"\gram\centi\metre\tothe{-3}"),

    # Temperature
    "°C": _u(r"\degreecelsius"),
    "C": _u(r"\degreecelsius"),
    "K": _u(r"\kelvin"),

    # Time
    "h": _u(r"\hour"),
    "min": _u(r"\minute"),
    "s": _u(r"\second"),

    # Volume
    "L": _u(r"\litre"),
    "l": _u(r"\litre"),
    "mL": _u(r"\milli\litre"),
    "ml": _u(r"\milli\litre"),

    # Pressure
    "Pa": _u(r"\pascal"),
    "bar": _u(r"\pascal", 100000),
    "mbar": _u(r"\pascal", 100),
    "hPa": _u(r"\pascal", 100),
}

_LOWER_KEYS: dict[str, str] = {}
for _key in UNIT_TABLE:
    _LOWER_KEYS.setdefault(_key.lower(), _key)

# ─── Patterns ─────────────────────────────────────────────────────────────────

# Table headers such as "in mg/kg"
IN_PREFIX_PATTERN = re.compile(r"^\s*in\s+", re.IGNORECASE)

WHITESPACE_PATTERN = re.compile(r"\s+")

# Everything that cannot be part of a number
NON_NUMERIC_PATTERN = re.compile(r"[^0-9.eE-]")

# Longest numeric prefix of the stripped value (parseFloat semantics)
FLOAT_PREFIX_PATTERN = re.compile(
    r"^[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?"
)

# "4.9 g", "10 ml", "100 %" but not "approx 5 g"
QUANTITY_PATTERN = re.compile(r"^([\d.]+(?:[eE][+-]?\d+)?)\s*(\S.*)$")

# Magnitudes written in plain decimal notation; exponents outside this range
PLAIN_NOTATION_MIN = 1e-6
PLAIN_NOTATION_MAX = 1e21
EXPONENT_PADDING_PATTERN = re.compile(r"e([+-])0*(\d)")

SUPERSCRIPT_REPLACEMENTS = (
    ("⁻¹", "-1"),
    ("⁻", "-"),
    ("¹", "1"),
    ("²", "2"),
    ("³", "3"),
)


# ─── Lookup ───────────────────────────────────────────────────────────────────


def _clean_unit(unit: str) -> str:
    cleaned = IN_PREFIX_PATTERN.sub("", unit).strip()
    return WHITESPACE_PATTERN.sub("", cleaned)


def _replace_superscripts(unit: str) -> str:
    for glyph, ascii_form in SUPERSCRIPT_REPLACEMENTS:
        unit = unit.replace(glyph, ascii_form)
    return unit


def _find(key: str) -> Optional[UnitConversion]:
    conversion = UNIT_TABLE.get(key)
    if conversion is None:
        original = _LOWER_KEYS.get(key.lower())
        if original is not None:
            conversion = UNIT_TABLE[original]
    return conversion


def lookup_unit(unit: Optional[str]) -> Optional[UnitConversion]:
    """
    Resolve a free-text unit to its D-SI conversion.

    Already-normalized units (starting with the escape marker) resolve to
    themselves with factor 1. Returns None when the unit is not recognized.
    """
    if unit is None:
        return None

    cleaned = _clean_unit(str(unit))
    conversion = _find(cleaned)

    if conversion is None:
        cleaned = _replace_superscripts(cleaned)
        conversion = _find(cleaned)

    if conversion is None and cleaned.startswith(DSI_ESCAPE):
        conversion = UnitConversion(dsi_unit=cleaned, factor=1.0)

    return conversion


# ─── Conversion ───────────────────────────────────────────────────────────────


def _parse_number(text: str) -> Optional[float]:
    match = FLOAT_PREFIX_PATTERN.match(NON_NUMERIC_PATTERN.sub("", text))
    if not match:
        return None
    try:
        return float(match.group(0))
    except ValueError:
        return None


def format_number(number: float) -> str:
    """
    Round to 6 significant digits and drop float artifacts.

    Plain decimal notation between 1e-6 and 1e21 ("0.00005"), exponent
    notation without zero padding outside it ("5e-7").
    """
    rounded = float(f"{number:.6g}")
    if rounded.is_integer() and abs(rounded) < PLAIN_NOTATION_MAX:
        return str(int(rounded))
    if PLAIN_NOTATION_MIN <= abs(rounded) < PLAIN_NOTATION_MAX:
        return format(Decimal(repr(rounded)), "f")
    return EXPONENT_PADDING_PATTERN.sub(r"e\1\2", repr(rounded))


def convert_to_dsi(
    value: Union[str, int, float, None],
    unit: Optional[str],
) -> DsiResult:
    """
    Convert a (value, unit) pair into its D-SI form.

    Never raises: an unrecognized unit yields an empty result and the caller
    keeps the original value/unit for display.

    Args:
        value: Displayed value, may contain decorations such as "< 0.05".
        unit: Free-text unit, e.g. "mg/kg", "in %", "µg kg⁻¹".

    Returns:
        DsiResult(dsi_value, dsi_unit).
    """
    if unit is None:
        return EMPTY_RESULT

    text = "" if value is None else str(value)

    conversion = lookup_unit(unit)
    if conversion is None:
        logger.debug(f"No D-SI mapping for unit {unit!r}")
        return EMPTY_RESULT

    number = _parse_number(text)
    dsi_value = ""

    if number is not None:
        if conversion.factor != 1:
            dsi_value = format_number(number * conversion.factor)
        else:
            # Keep the original text so decorations like "<" survive
            dsi_value = text.strip()
    elif conversion.factor == 1 and text.strip():
        dsi_value = text.strip()

    return DsiResult(dsi_value, conversion.dsi_unit)


def split_quantity(text: Optional[str]) -> Optional[tuple[str, str]]:
    """Split "4.9 g" into ("4.9", "g"). Returns None for non-numeric starts."""
    if not text:
        return None
    match = QUANTITY_PATTERN.match(text.strip())
    if not match:
        return None
    return match.group(1), match.group(2)


def convert_quantity_text(text: Optional[str]) -> DsiResult:
    """Convert a combined "<number> <unit>" string. Empty result on a miss."""
    parts = split_quantity(text)
    if parts is None:
        return EMPTY_RESULT
    return convert_to_dsi(*parts)


def dsi_preview(text: Optional[str]) -> str:
    """
    Render a combined quantity string in D-SI form.

    "4.9 g" -> "4.9 \\gram". Returns "" if the format or unit is not
    recognized.
    """
    result = convert_quantity_text(text)
    if not result.dsi_unit:
        return ""
    return f"{result.dsi_value} {result.dsi_unit}"
