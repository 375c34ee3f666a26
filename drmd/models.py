"""
Data Models
===========
Pydantic models for the Digital Reference Material Document (DRMD).

The document is a tree: every node is owned by exactly one parent and every
node carries its own ``uuid``, generated at creation and never reused.
Attributes are snake_case; JSON uses camelCase aliases so documents can be
exchanged with the extraction payload and the editing UI unchanged.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Iterator, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from .units import DSI_ESCAPE, convert_quantity_text, convert_to_dsi, split_quantity


def new_uuid() -> str:
    return str(uuid.uuid4())


def today_iso() -> str:
    return datetime.now(timezone.utc).date().isoformat()


# [page, yMin, xMin, yMax, xMax] on a 0-1000 page scale
Box = list[float]


class DrmdModel(BaseModel):
    """Base model: snake_case attributes, camelCase JSON."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class CoordinatedModel(DrmdModel):
    """
    Node that may originate from a PDF region.

    Coordinates are opaque: stored and forwarded, never interpreted.
    """
    field_coordinates: Optional[dict[str, Box]] = None
    section_coordinates: Optional[Box] = None


# ─── Enums & Constants ────────────────────────────────────────────────────────


class ValidityType(str, Enum):
    """Period-of-validity variants."""
    UNTIL_REVOKED = "Until Revoked"
    TIME_AFTER_DISPATCH = "Time After Dispatch"
    SPECIFIC_TIME = "Specific Time"


ALLOWED_TITLES = (
    "referenceMaterialCertificate",
    "calibrationCertificate",
    "measurementCertificate",
)

DEFAULT_TITLE = ALLOWED_TITLES[0]

DEFAULT_COVERAGE_FACTOR = "2.0"
DEFAULT_COVERAGE_PROBABILITY = "0.95"
DEFAULT_DISTRIBUTION = "normal"
DEFAULT_RESULT_NAME = "Values"

# Text content of <drmd:noQuantity> when nothing is specified
NO_QUANTITY = "noQuantity"


# ─── Administrative Data ──────────────────────────────────────────────────────


class Identifier(DrmdModel):
    """Scheme/value pair, e.g. a CAS number or an organization ID."""
    scheme: str = ""
    value: str = ""
    link: str = ""


class Address(DrmdModel):
    street: str = ""
    street_no: str = ""
    post_code: str = ""
    city: str = ""
    country_code: str = ""


class Producer(CoordinatedModel):
    """Reference material producer (the schema allows exactly one)."""
    uuid: str = Field(default_factory=new_uuid)
    name: str = ""
    email: str = ""
    phone: str = ""
    fax: str = ""
    address: Address = Field(default_factory=Address)
    organization_identifiers: list[Identifier] = Field(default_factory=list)


class ResponsiblePerson(CoordinatedModel):
    uuid: str = Field(default_factory=new_uuid)
    name: str = ""
    role: str = ""
    description: str = ""
    main_signer: bool = True
    crypt_electronic_seal: bool = False
    crypt_electronic_signature: bool = False


class UntilRevoked(DrmdModel):
    kind: Literal["Until Revoked"] = "Until Revoked"


class TimeAfterDispatch(DrmdModel):
    kind: Literal["Time After Dispatch"] = "Time After Dispatch"
    years: int = Field(default=0, ge=0)
    months: int = Field(default=0, ge=0)
    dispatch_date: str = Field(default_factory=today_iso)

    @computed_field
    @property
    def period(self) -> str:
        """ISO 8601 duration, never empty ("P0Y" for a zero period)."""
        iso = "P"
        if self.years:
            iso += f"{self.years}Y"
        if self.months:
            iso += f"{self.months}M"
        return iso if iso != "P" else "P0Y"


class SpecificTime(DrmdModel):
    kind: Literal["Specific Time"] = "Specific Time"
    date: str = Field(default_factory=today_iso)


Validity = Annotated[
    Union[UntilRevoked, TimeAfterDispatch, SpecificTime],
    Field(discriminator="kind"),
]


class AdministrativeData(CoordinatedModel):
    title: str = DEFAULT_TITLE
    unique_identifier: str = Field(default_factory=new_uuid)
    validity: Validity = Field(default_factory=UntilRevoked)
    producers: list[Producer] = Field(default_factory=lambda: [Producer()])
    responsible_persons: list[ResponsiblePerson] = Field(
        default_factory=lambda: [ResponsiblePerson()]
    )


# ─── Materials ────────────────────────────────────────────────────────────────


class RealQuantity(DrmdModel):
    """Numeric branch of a primitive quantity (D-SI value + unit)."""
    value: str
    unit: str

    def as_text(self) -> str:
        return f"{self.value} {self.unit}"


class TextQuantity(DrmdModel):
    """Unstructured branch of a primitive quantity."""
    content: str = NO_QUANTITY

    def as_text(self) -> str:
        return "" if self.content == NO_QUANTITY else self.content


PrimitiveQuantity = Union[RealQuantity, TextQuantity]


def classify_primitive_quantity(text: Optional[str]) -> PrimitiveQuantity:
    """
    Choose the schema alternative for a material quantity string.

    "4.9 g" becomes RealQuantity("4.9", "\\gram"); free text, ranges and
    unrecognized units stay textual; an empty string becomes the
    "noQuantity" sentinel.
    """
    if not text or text == NO_QUANTITY:
        return TextQuantity()

    if split_quantity(text) is not None:
        dsi = convert_quantity_text(text)
        if dsi.dsi_unit:
            return RealQuantity(value=dsi.dsi_value, unit=dsi.dsi_unit)

    return TextQuantity(content=text)


class Material(CoordinatedModel):
    uuid: str = Field(default_factory=new_uuid)
    name: str = ""
    material_class: str = ""
    description: str = ""
    item_quantities: str = ""
    minimum_sample_size: str = ""
    is_certified: bool = False
    material_identifiers: list[Identifier] = Field(default_factory=list)

    @property
    def minimum_sample_size_quantity(self) -> PrimitiveQuantity:
        return classify_primitive_quantity(self.minimum_sample_size)

    @property
    def item_quantities_quantity(self) -> PrimitiveQuantity:
        return classify_primitive_quantity(self.item_quantities)


# ─── Properties & Results ─────────────────────────────────────────────────────


class Quantity(CoordinatedModel):
    """
    One row of a result table.

    ``value`` is kept as text since certificates mix numbers with comparison
    expressions ("< 0.05"). ``dsi_value``/``dsi_unit`` are derived from
    value/unit and must only be set through ``with_dsi``.
    """
    uuid: str = Field(default_factory=new_uuid)
    name: str = ""
    value: str = ""
    unit: str = ""
    dsi_value: str = ""
    dsi_unit: str = ""
    uncertainty: str = ""
    coverage_factor: str = DEFAULT_COVERAGE_FACTOR
    coverage_probability: str = DEFAULT_COVERAGE_PROBABILITY
    distribution: str = DEFAULT_DISTRIBUTION
    identifiers: list[Identifier] = Field(default_factory=list)

    def with_dsi(self) -> Quantity:
        """Return a copy with dsi_value/dsi_unit recomputed."""
        dsi = convert_to_dsi(self.value, self.unit)
        return self.model_copy(
            update={"dsi_value": dsi.dsi_value, "dsi_unit": dsi.dsi_unit},
            deep=True,
        )

    @property
    def wire_unit(self) -> str:
        """Unit written to XML: the D-SI unit, else the raw unit."""
        return self.dsi_unit or self.unit

    @property
    def is_dsi_resolved(self) -> bool:
        return self.dsi_unit.startswith(DSI_ESCAPE)


class MeasurementResult(CoordinatedModel):
    """A table inside a property section."""
    uuid: str = Field(default_factory=new_uuid)
    name: str = DEFAULT_RESULT_NAME
    description: str = ""
    quantities: list[Quantity] = Field(default_factory=list)


class MaterialProperty(DrmdModel):
    """A section such as "Certified Values" holding one or more tables."""
    uuid: str = Field(default_factory=new_uuid)
    name: str = ""
    is_certified: bool = False
    description: str = ""
    procedures: str = ""
    results: list[MeasurementResult] = Field(default_factory=list)


# ─── Statements ───────────────────────────────────────────────────────────────


class OfficialStatements(CoordinatedModel):
    intended_use: str = ""
    commutability: str = ""
    storage_information: str = ""
    handling_instructions: str = ""
    metrological_traceability: str = ""
    health_and_safety: str = ""
    subcontractors: str = ""
    legal_notice: str = ""
    reference_to_certification_report: str = ""


# attribute -> (XML element, display name), in export order
OFFICIAL_STATEMENTS: dict[str, tuple[str, str]] = {
    "intended_use": ("intendedUse", "Intended Use"),
    "commutability": ("commutability", "Commutability"),
    "storage_information": ("storageInformation", "Storage Information"),
    "handling_instructions": (
        "instructionsForHandlingAndUse", "Handling Instructions"
    ),
    "metrological_traceability": (
        "metrologicalTraceability", "Metrological Traceability"
    ),
    "subcontractors": ("subcontractors", "Subcontractors"),
    "reference_to_certification_report": (
        "referenceToCertificationReport", "Reference to Certification Report"
    ),
    "health_and_safety": (
        "healthAndSafetyInformation", "Health And Safety Information"
    ),
    "legal_notice": ("legalNotice", "Legal Notice"),
}


class CustomStatement(DrmdModel):
    uuid: str = Field(default_factory=new_uuid)
    name: str = ""
    content: str = ""


class Statements(DrmdModel):
    official: OfficialStatements = Field(default_factory=OfficialStatements)
    custom: list[CustomStatement] = Field(default_factory=list)


# ─── Document ─────────────────────────────────────────────────────────────────


class Attachment(DrmdModel):
    """Binary document embedded in the DRMD (base64 payload)."""
    file_name: str = "imported_document.pdf"
    mime_type: str = "application/pdf"
    data_base64: str = ""


class Document(DrmdModel):
    """Root of the certificate tree."""
    administrative_data: AdministrativeData = Field(
        default_factory=AdministrativeData
    )
    materials: list[Material] = Field(default_factory=list)
    properties: list[MaterialProperty] = Field(default_factory=list)
    statements: Statements = Field(default_factory=Statements)
    comment: str = ""
    attachment: Optional[Attachment] = None

    def iter_quantities(self) -> Iterator[Quantity]:
        for prop in self.properties:
            for result in prop.results:
                yield from result.quantities


def new_document() -> Document:
    """Blank document with one producer, one person and a fresh identifier."""
    return Document()
