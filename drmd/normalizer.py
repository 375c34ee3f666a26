"""
Extraction Normalizer
=====================
Upgrades a loose extraction payload into canonical document nodes.

This is the only boundary where partial data becomes canonical data:
everything leaving this module is a ``drmd.models`` object with fresh
uuids. The heuristics it relies on are small named functions and tables
so they can be tuned without touching the merge flow:

    - Duration carry-normalisation (months never exceed 11)
    - "MM/YYYY" expiry tokens rewritten to the last day of that month
    - Locality based country-code fix-up
    - Footnote detection on property descriptions
    - Unit-header fragment detection on result tables

Never raises for malformed data: missing or garbage values degrade to the
model defaults.
"""

from __future__ import annotations

import logging
import re
from datetime import date, timedelta
from typing import Any, NamedTuple, Optional

from .extraction import (
    ExtractedAdministrativeData,
    ExtractedIdentifier,
    ExtractedMaterial,
    ExtractedOfficialStatements,
    ExtractedPerson,
    ExtractedProducer,
    ExtractedProperty,
    ExtractedQuantity,
    ExtractedResult,
    ExtractionPayload,
    parse_extraction,
)
from .models import (
    ALLOWED_TITLES,
    DEFAULT_COVERAGE_FACTOR,
    DEFAULT_COVERAGE_PROBABILITY,
    DEFAULT_DISTRIBUTION,
    DEFAULT_RESULT_NAME,
    Address,
    Document,
    Identifier,
    Material,
    MaterialProperty,
    MeasurementResult,
    Producer,
    Quantity,
    ResponsiblePerson,
    SpecificTime,
    TimeAfterDispatch,
    UntilRevoked,
    Validity,
    ValidityType,
    new_uuid,
    today_iso,
)
from .units import convert_to_dsi

logger = logging.getLogger(__name__)

DEFAULT_PROPERTY_NAME = "Material Properties"
DEFAULT_ITEM_QUANTITIES = "1"


# ─── Validity Heuristics ──────────────────────────────────────────────────────

MONTH_YEAR_PATTERN = re.compile(r"^(\d{1,2})/(\d{4})$")


def normalize_duration(years: int, months: int) -> tuple[int, int]:
    """
    Carry surplus months into years.

    (0, 18) -> (1, 6). Negative counts are treated as zero.
    """
    total_months = max(years, 0) * 12 + max(months, 0)
    return total_months // 12, total_months % 12


def last_day_of_month(token: Optional[str]) -> Optional[str]:
    """
    Rewrite an "MM/YYYY" (or "M/YYYY") token to the ISO date of the last
    day of that month. Returns None if the token has another shape.
    """
    if not token:
        return None

    match = MONTH_YEAR_PATTERN.match(token.strip())
    if not match:
        return None

    month, year = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        return None

    # First day of the following month, minus one day
    next_year, next_month = (year + 1, 1) if month == 12 else (year, month + 1)
    try:
        last = date(next_year, next_month, 1) - timedelta(days=1)
    except ValueError:
        logger.debug(f"Expiry token out of calendar range: {token!r}")
        return None
    return last.isoformat()


# ─── Address Heuristics ───────────────────────────────────────────────────────


class CountryFixup(NamedTuple):
    """City text containing ``locality`` forces ``country_code``."""
    locality: str
    country_code: str


COUNTRY_FIXUPS: tuple[CountryFixup, ...] = (
    CountryFixup("berlin", "DE"),
    CountryFixup("adlershof", "DE"),
)

NON_DIGIT_PATTERN = re.compile(r"[^0-9]")


def fix_country_code(city: Optional[str], country_code: Optional[str]) -> str:
    lowered = (city or "").lower()
    for rule in COUNTRY_FIXUPS:
        if rule.locality in lowered:
            return rule.country_code
    return country_code or ""


def clean_postal_code(text: Optional[str]) -> str:
    """Keep digits only: "D-12489" -> "12489"."""
    return NON_DIGIT_PATTERN.sub("", text or "")


# ─── Table Heuristics ─────────────────────────────────────────────────────────

# "1) measured at 20 °C", "12) ...", "* not certified"
FOOTNOTE_PATTERN = re.compile(r"^(\d+\)|1\)|\*)")

# Row names that only repeat a unit header. Tokens match anywhere in the
# name, exact names must match the whole (lower-cased, trimmed) name.
UNIT_HEADER_TOKENS = ("in mg/kg", "in %")
UNIT_HEADER_NAMES = ("mg/kg", "%", "")

NON_KEY_PATTERN = re.compile(r"[^a-z0-9]")

COMPARISON_PREFIXES = ("<", ">")


def is_footnote(text: Optional[str]) -> bool:
    return bool(FOOTNOTE_PATTERN.match((text or "").strip()))


def is_unit_header_fragment(name: Optional[str]) -> bool:
    """
    True when a result table looks like the continuation of the previous
    one (its header is only a unit label such as "in %").

    Known limitation: a genuine table whose header is literally "%" is
    classified as a fragment too.
    """
    lowered = (name or "").lower().strip()
    if any(token in lowered for token in UNIT_HEADER_TOKENS):
        return True
    return lowered in UNIT_HEADER_NAMES


def property_key(name: Optional[str]) -> str:
    """Grouping key: "Certified Values" and "certified-values" collide."""
    return NON_KEY_PATTERN.sub("", (name or "").lower())


def promote_comparison(value: str, uncertainty: str) -> tuple[str, str]:
    """
    Move a comparison expression ("< 0.05") from the uncertainty column into
    an empty value column.
    """
    if not value and uncertainty.strip().startswith(COMPARISON_PREFIXES):
        return uncertainty, ""
    return value, uncertainty


def result_name(name: Optional[str]) -> str:
    """Single-character names are extraction noise."""
    if name and len(name) > 1:
        return name
    return DEFAULT_RESULT_NAME


# ─── Node Builders ────────────────────────────────────────────────────────────


def _identifiers(items: list[ExtractedIdentifier]) -> list[Identifier]:
    return [
        Identifier(
            scheme=item.scheme or "",
            value=item.value,
            link=item.link or "",
        )
        for item in items
        if item.value
    ]


def _quantity(extracted: ExtractedQuantity) -> Quantity:
    value, uncertainty = promote_comparison(
        extracted.value or "", extracted.uncertainty or ""
    )
    if value and not extracted.value:
        logger.debug(
            f"Promoted comparison {value!r} to value of {extracted.name!r}"
        )

    dsi = convert_to_dsi(value, extracted.unit)
    return Quantity(
        name=extracted.name or "",
        value=value,
        unit=extracted.unit or "",
        dsi_value=dsi.dsi_value,
        dsi_unit=dsi.dsi_unit,
        uncertainty=uncertainty,
        coverage_factor=extracted.coverage_factor or DEFAULT_COVERAGE_FACTOR,
        coverage_probability=(
            extracted.coverage_probability or DEFAULT_COVERAGE_PROBABILITY
        ),
        distribution=extracted.distribution or DEFAULT_DISTRIBUTION,
        identifiers=_identifiers(extracted.identifiers),
        field_coordinates=extracted.field_coordinates,
        section_coordinates=extracted.section_coordinates,
    )


class _ResultDraft:
    """Result table being assembled during the merge."""

    def __init__(self, source: ExtractedResult, description: str):
        self.source = source
        self.description = description
        self.quantities: list[ExtractedQuantity] = list(source.quantities)

    def absorb(self, fragment: ExtractedResult, description: str) -> None:
        self.quantities.extend(fragment.quantities)
        if description:
            self.description = "\n".join(
                part for part in (self.description, description) if part
            )

    def build(self) -> MeasurementResult:
        return MeasurementResult(
            name=result_name(self.source.name),
            description=self.description,
            quantities=[_quantity(q) for q in self.quantities],
            field_coordinates=self.source.field_coordinates,
            section_coordinates=self.source.section_coordinates,
        )


class _PropertyDraft:
    """Canonical property for one grouping key."""

    def __init__(self, name: str, seed: ExtractedProperty):
        self.name = name
        self.seed = seed
        self.description = seed.description or ""
        self.results: list[_ResultDraft] = []

    def build(self) -> MaterialProperty:
        return MaterialProperty(
            name=self.name,
            is_certified=bool(self.seed.is_certified),
            description=self.description,
            procedures=self.seed.procedures or "",
            results=[draft.build() for draft in self.results],
        )


# ─── Operations ───────────────────────────────────────────────────────────────


def merge_properties(
    properties: list[ExtractedProperty],
) -> list[MaterialProperty]:
    """
    Merge extracted property sections into canonical properties.

    1. Properties are grouped by ``property_key``; the first one seen for a
       key seeds the canonical entry, later ones only contribute results.
    2. A footnote-like property description moves onto the property's first
       incoming result and is cleared on the canonical property.
    3. Unit-header fragments are appended to the first canonical result
       instead of becoming a new table.
    4. Quantities get comparison promotion, D-SI values and defaults.
    5. Result names default to "Values".
    """
    drafts: dict[str, _PropertyDraft] = {}

    for prop in properties:
        name = prop.name or DEFAULT_PROPERTY_NAME
        key = property_key(name)

        draft = drafts.get(key)
        if draft is None:
            draft = drafts[key] = _PropertyDraft(name, prop)

        footnote = ""
        description = (prop.description or "").strip()
        if is_footnote(description):
            footnote = description
            draft.description = ""

        for index, result in enumerate(prop.results):
            result_description = result.description or ""
            if index == 0 and footnote:
                logger.debug(f"Moved footnote of {name!r} onto its first table")
                result_description = "\n".join(
                    part for part in (result_description, footnote) if part
                )

            if draft.results and is_unit_header_fragment(result.name):
                logger.debug(
                    f"Merged fragment {result.name!r} into first table "
                    f"of {name!r} ({len(result.quantities)} quantities)"
                )
                draft.results[0].absorb(result, result_description)
            else:
                draft.results.append(_ResultDraft(result, result_description))

    return [draft.build() for draft in drafts.values()]


def normalize_producers(items: list[ExtractedProducer]) -> list[Producer]:
    producers = []
    for item in items:
        address = item.address
        city = (address.city if address else None) or ""
        country = (address.country_code if address else None) or ""
        fixed = fix_country_code(city, country)
        if fixed != country:
            logger.info(f"Country code of {city!r} set to {fixed!r}")

        producers.append(Producer(
            name=item.name or "",
            email=item.email or "",
            phone=item.phone or "",
            fax=item.fax or "",
            address=Address(
                street=(address.street if address else None) or "",
                street_no=(address.street_no if address else None) or "",
                post_code=clean_postal_code(
                    address.post_code if address else None
                ),
                city=city,
                country_code=fixed,
            ),
            organization_identifiers=_identifiers(
                item.organization_identifiers
            ),
            field_coordinates=item.field_coordinates,
            section_coordinates=item.section_coordinates,
        ))
    return producers


def normalize_persons(items: list[ExtractedPerson]) -> list[ResponsiblePerson]:
    defaults = ResponsiblePerson()
    return [
        ResponsiblePerson(
            name=item.name or "",
            role=item.role or "",
            description=item.description or "",
            main_signer=(
                defaults.main_signer
                if item.main_signer is None else item.main_signer
            ),
            crypt_electronic_seal=bool(item.crypt_electronic_seal),
            crypt_electronic_signature=bool(item.crypt_electronic_signature),
            field_coordinates=item.field_coordinates,
            section_coordinates=item.section_coordinates,
        )
        for item in items
    ]


def normalize_materials(items: list[ExtractedMaterial]) -> list[Material]:
    return [
        Material(
            name=item.name or "",
            material_class=item.material_class or "",
            description=item.description or "",
            item_quantities=item.item_quantities or DEFAULT_ITEM_QUANTITIES,
            minimum_sample_size=item.minimum_sample_size or "",
            is_certified=bool(item.is_certified),
            material_identifiers=_identifiers(item.material_identifiers),
            field_coordinates=item.field_coordinates,
            section_coordinates=item.section_coordinates,
        )
        for item in items
    ]


def _validity_kind(text: Optional[str]) -> Optional[ValidityType]:
    if not text:
        return None
    lowered = text.strip().lower()
    for kind in ValidityType:
        if kind.value.lower() == lowered:
            return kind
    logger.debug(f"Unknown validity type {text!r}, keeping previous validity")
    return None


def normalize_validity(
    admin: ExtractedAdministrativeData,
    previous: Validity,
) -> Validity:
    """
    Build the validity variant named by the extraction.

    Without a recognizable ``validity_type`` the previous validity is kept.
    """
    kind = _validity_kind(admin.validity_type)

    if kind is None:
        return previous.model_copy(deep=True)

    if kind is ValidityType.UNTIL_REVOKED:
        return UntilRevoked()

    if kind is ValidityType.TIME_AFTER_DISPATCH:
        prior = previous if isinstance(previous, TimeAfterDispatch) else None
        years = admin.duration_y
        months = admin.duration_m
        if years is None and months is None and prior is not None:
            years, months = prior.years, prior.months
        years, months = normalize_duration(years or 0, months or 0)
        return TimeAfterDispatch(
            years=years,
            months=months,
            dispatch_date=admin.date_of_issue or today_iso(),
        )

    token = (admin.specific_time or "").strip()
    if not token:
        if isinstance(previous, SpecificTime):
            return previous.model_copy(deep=True)
        return SpecificTime()

    expiry = last_day_of_month(token)
    if expiry is not None:
        logger.debug(f"Expiry {token!r} rewritten to {expiry}")
    return SpecificTime(date=expiry or token)


class ExtractionNormalizer:
    """
    Applies an extraction payload onto an existing document.

    The input document is never modified; a new tree is returned.
    """

    def apply(self, document: Document, payload: Any) -> Document:
        """
        Args:
            document: Current document (kept where the payload is silent).
            payload: ``ExtractionPayload`` or the raw decoded JSON object.

        Returns:
            New document with the extraction merged in.
        """
        extraction: ExtractionPayload = parse_extraction(payload)
        current = document.model_copy(deep=True)

        admin_in = extraction.administrative_data or ExtractedAdministrativeData()
        administrative_data = self._merge_admin(current, admin_in)

        materials = normalize_materials(extraction.materials)
        properties = merge_properties(extraction.properties)

        official_in = (
            extraction.statements.official if extraction.statements else None
        )
        statements = current.statements.model_copy(update={
            "official": self._merge_official(current, official_in),
        })

        logger.info(
            f"Extraction applied: {len(materials)} material(s), "
            f"{len(properties)} propert(y/ies), "
            f"{sum(len(p.results) for p in properties)} table(s)"
        )

        return current.model_copy(update={
            "administrative_data": administrative_data,
            "materials": materials or current.materials,
            "properties": properties or current.properties,
            "statements": statements,
        })

    def _merge_admin(
        self,
        current: Document,
        admin_in: ExtractedAdministrativeData,
    ):
        previous = current.administrative_data
        update: dict[str, Any] = {}

        if admin_in.title in ALLOWED_TITLES:
            update["title"] = admin_in.title
        elif admin_in.title:
            logger.debug(f"Ignoring unknown document title {admin_in.title!r}")

        update["unique_identifier"] = (
            admin_in.unique_identifier
            or previous.unique_identifier
            or new_uuid()
        )
        update["validity"] = normalize_validity(admin_in, previous.validity)

        producers = normalize_producers(admin_in.producers)
        if producers:
            update["producers"] = producers

        persons = normalize_persons(admin_in.responsible_persons)
        if persons:
            update["responsible_persons"] = persons

        if admin_in.field_coordinates is not None:
            update["field_coordinates"] = admin_in.field_coordinates
        if admin_in.section_coordinates is not None:
            update["section_coordinates"] = admin_in.section_coordinates

        return previous.model_copy(update=update)

    def _merge_official(
        self,
        current: Document,
        official_in: Optional[ExtractedOfficialStatements],
    ):
        official = current.statements.official
        if official_in is None:
            return official

        provided = official_in.model_dump(exclude_none=True)
        return official.model_copy(update=provided)


def apply_extraction(document: Document, raw: Any) -> Document:
    """Functional shortcut for ``ExtractionNormalizer().apply``."""
    return ExtractionNormalizer().apply(document, raw)
