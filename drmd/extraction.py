"""
Extraction Payload
==================
Loosely-typed input produced by the vision extraction step.

Mirrors the document shape with every field optional. Values are coerced
leniently (numbers to text, numeric text to ints, garbage to None) so that
``parse_extraction`` never fails on untrusted input. Only the normalizer
turns these partial shapes into canonical ``drmd.models`` objects.
"""

from __future__ import annotations

import logging
import math
from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


# ─── Lenient Coercion ─────────────────────────────────────────────────────────


def _as_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return None


def _as_count(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    return None


def _as_flag(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "1"):
            return True
        if lowered in ("false", "no", "0"):
            return False
    return None


def _as_box(value: Any) -> Optional[list[float]]:
    if not isinstance(value, (list, tuple)) or len(value) != 5:
        return None
    if not all(
        isinstance(v, (int, float)) and not isinstance(v, bool) for v in value
    ):
        return None
    return [float(v) for v in value]


def _as_boxes(value: Any) -> Optional[dict[str, list[float]]]:
    if not isinstance(value, dict):
        return None
    boxes = {}
    for key, raw in value.items():
        box = _as_box(raw)
        if box is not None:
            boxes[str(key)] = box
    return boxes


def _as_records(value: Any) -> list[dict]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, (dict, BaseModel))]


def _as_record(value: Any) -> Optional[dict]:
    return value if isinstance(value, (dict, BaseModel)) else None


LooseText = Annotated[Optional[str], BeforeValidator(_as_text)]
LooseCount = Annotated[Optional[int], BeforeValidator(_as_count)]
LooseFlag = Annotated[Optional[bool], BeforeValidator(_as_flag)]
LooseBox = Annotated[Optional[list[float]], BeforeValidator(_as_box)]
LooseBoxes = Annotated[
    Optional[dict[str, list[float]]], BeforeValidator(_as_boxes)
]


# ─── Payload Models ───────────────────────────────────────────────────────────


class ExtractionModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ExtractedCoordinates(ExtractionModel):
    field_coordinates: LooseBoxes = None
    section_coordinates: LooseBox = None


class ExtractedIdentifier(ExtractionModel):
    scheme: LooseText = None
    value: LooseText = None
    link: LooseText = None


IdentifierList = Annotated[
    list[ExtractedIdentifier], BeforeValidator(_as_records)
]


class ExtractedAddress(ExtractionModel):
    street: LooseText = None
    street_no: LooseText = None
    post_code: LooseText = None
    city: LooseText = None
    country_code: LooseText = None


class ExtractedProducer(ExtractedCoordinates):
    name: LooseText = None
    email: LooseText = None
    phone: LooseText = None
    fax: LooseText = None
    address: Annotated[
        Optional[ExtractedAddress], BeforeValidator(_as_record)
    ] = None
    organization_identifiers: IdentifierList = Field(default_factory=list)


class ExtractedPerson(ExtractedCoordinates):
    name: LooseText = None
    role: LooseText = None
    description: LooseText = None
    main_signer: LooseFlag = None
    crypt_electronic_seal: LooseFlag = None
    crypt_electronic_signature: LooseFlag = None


class ExtractedAdministrativeData(ExtractedCoordinates):
    title: LooseText = None
    unique_identifier: LooseText = None
    validity_type: LooseText = None
    duration_y: LooseCount = None
    duration_m: LooseCount = None
    date_of_issue: LooseText = None
    specific_time: LooseText = None
    producers: Annotated[
        list[ExtractedProducer], BeforeValidator(_as_records)
    ] = Field(default_factory=list)
    responsible_persons: Annotated[
        list[ExtractedPerson], BeforeValidator(_as_records)
    ] = Field(default_factory=list)


class ExtractedMaterial(ExtractedCoordinates):
    name: LooseText = None
    material_class: LooseText = None
    description: LooseText = None
    item_quantities: LooseText = None
    minimum_sample_size: LooseText = None
    is_certified: LooseFlag = None
    material_identifiers: IdentifierList = Field(default_factory=list)


class ExtractedQuantity(ExtractedCoordinates):
    name: LooseText = None
    value: LooseText = None
    unit: LooseText = None
    uncertainty: LooseText = None
    coverage_factor: LooseText = None
    coverage_probability: LooseText = None
    distribution: LooseText = None
    identifiers: IdentifierList = Field(default_factory=list)


class ExtractedResult(ExtractedCoordinates):
    name: LooseText = None
    description: LooseText = None
    quantities: Annotated[
        list[ExtractedQuantity], BeforeValidator(_as_records)
    ] = Field(default_factory=list)


class ExtractedProperty(ExtractionModel):
    name: LooseText = None
    is_certified: LooseFlag = None
    description: LooseText = None
    procedures: LooseText = None
    results: Annotated[
        list[ExtractedResult], BeforeValidator(_as_records)
    ] = Field(default_factory=list)


class ExtractedOfficialStatements(ExtractedCoordinates):
    intended_use: LooseText = None
    commutability: LooseText = None
    storage_information: LooseText = None
    handling_instructions: LooseText = None
    metrological_traceability: LooseText = None
    health_and_safety: LooseText = None
    subcontractors: LooseText = None
    legal_notice: LooseText = None
    reference_to_certification_report: LooseText = None


class ExtractedStatements(ExtractionModel):
    official: Annotated[
        Optional[ExtractedOfficialStatements], BeforeValidator(_as_record)
    ] = None


class ExtractionPayload(ExtractionModel):
    """Top-level extraction result."""
    administrative_data: Annotated[
        Optional[ExtractedAdministrativeData], BeforeValidator(_as_record)
    ] = None
    materials: Annotated[
        list[ExtractedMaterial], BeforeValidator(_as_records)
    ] = Field(default_factory=list)
    properties: Annotated[
        list[ExtractedProperty], BeforeValidator(_as_records)
    ] = Field(default_factory=list)
    statements: Annotated[
        Optional[ExtractedStatements], BeforeValidator(_as_record)
    ] = None


def parse_extraction(raw: Any) -> ExtractionPayload:
    """
    Parse an untrusted extraction result.

    Never raises: anything that cannot be read degrades to an empty payload.
    """
    if isinstance(raw, ExtractionPayload):
        return raw
    if not isinstance(raw, dict):
        logger.warning(
            f"Extraction payload is not an object ({type(raw).__name__}), "
            f"ignoring it"
        )
        return ExtractionPayload()
    try:
        return ExtractionPayload.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Unreadable extraction payload, ignoring it: {e}")
        return ExtractionPayload()
