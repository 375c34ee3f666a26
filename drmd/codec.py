"""
XML Codec
=========
Encodes documents to DRMD XML and decodes DRMD XML back into documents.

Wire format:
    - Three fixed namespace prefixes: ``dcc`` (core), ``drmd`` (container)
      and ``si`` (SI values)
    - Root ``drmd:digitalReferenceMaterialDocument`` with ``schemaVersion``
    - Measured quantities carry their displayed value paired with the D-SI
      unit (the raw unit when conversion missed)

The decoder walks the same element names the encoder writes. Any missing
optional element falls back to the model default; only markup that cannot
be parsed at all (or a foreign root element) is an error.
"""

from __future__ import annotations

import logging
import re
from typing import Optional, Union

from lxml import etree

from .exceptions import MalformedDocumentError
from .models import (
    DEFAULT_COVERAGE_FACTOR,
    DEFAULT_COVERAGE_PROBABILITY,
    DEFAULT_DISTRIBUTION,
    DEFAULT_RESULT_NAME,
    NO_QUANTITY,
    OFFICIAL_STATEMENTS,
    AdministrativeData,
    Address,
    Attachment,
    CustomStatement,
    Document,
    Identifier,
    Material,
    MaterialProperty,
    MeasurementResult,
    OfficialStatements,
    Producer,
    Quantity,
    RealQuantity,
    ResponsiblePerson,
    SpecificTime,
    Statements,
    TimeAfterDispatch,
    UntilRevoked,
    Validity,
    classify_primitive_quantity,
)
from .substances import CAS_SCHEME, cas_identifier

logger = logging.getLogger(__name__)

NAMESPACES = {
    "dcc": "https://ptb.de/dcc",
    "drmd": "https://example.org/drmd",
    "si": "https://ptb.de/si",
}

SCHEMA_VERSION = "0.3.0"

PERIOD_YEARS_PATTERN = re.compile(r"(\d+)Y")
PERIOD_MONTHS_PATTERN = re.compile(r"(\d+)M")

PROCEDURE_NAME = "Procedure"

# Characters XML 1.0 does not allow in text content
XML_INVALID_CHARS_PATTERN = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


def _q(prefix: str, tag: str) -> str:
    """Clark notation: ("drmd", "name") -> "{https://example.org/drmd}name"."""
    return f"{{{NAMESPACES[prefix]}}}{tag}"


ROOT_TAG = _q("drmd", "digitalReferenceMaterialDocument")


def _flag(value: bool) -> str:
    return "true" if value else "false"


# ─── Encoder ──────────────────────────────────────────────────────────────────


def _sub(
    parent: etree._Element,
    qualified: str,
    text: Optional[str] = None,
    **attrib: str,
) -> etree._Element:
    prefix, tag = qualified.split(":", 1)
    element = etree.SubElement(parent, _q(prefix, tag), attrib=attrib)
    if text is not None:
        element.text = XML_INVALID_CHARS_PATTERN.sub("", text)
    return element


def _content(parent: etree._Element, qualified: str, text: str) -> etree._Element:
    """<qualified><dcc:content>text</dcc:content></qualified>"""
    element = _sub(parent, qualified)
    _sub(element, "dcc:content", text)
    return element


def _encode_identifiers(
    parent: etree._Element,
    container: str,
    item: str,
    identifiers: list[Identifier],
) -> None:
    usable = [i for i in identifiers if i.value]
    if not usable:
        return
    block = _sub(parent, f"drmd:{container}")
    for identifier in usable:
        entry = _sub(block, f"drmd:{item}")
        _sub(entry, "drmd:scheme", identifier.scheme)
        _sub(entry, "drmd:value", identifier.value)
        if identifier.link:
            _sub(entry, "drmd:link", identifier.link)


def _encode_validity(parent: etree._Element, validity: Validity) -> None:
    element = _sub(parent, "drmd:validity")
    if isinstance(validity, UntilRevoked):
        _sub(element, "drmd:untilRevoked", "true")
    elif isinstance(validity, SpecificTime):
        _sub(element, "drmd:specificTime", validity.date)
    else:
        dispatch = _sub(element, "drmd:timeAfterDispatch")
        _sub(dispatch, "drmd:dispatchDate", validity.dispatch_date)
        _sub(dispatch, "drmd:period", validity.period)


def _encode_producer(parent: etree._Element, producer: Producer) -> None:
    element = _sub(parent, "drmd:referenceMaterialProducer")
    _content(element, "drmd:name", producer.name)

    contact = _sub(element, "drmd:contact")
    _content(contact, "dcc:name", producer.name)
    _sub(contact, "dcc:eMail", producer.email)
    _sub(contact, "dcc:phone", producer.phone)
    if producer.fax:
        _sub(contact, "dcc:fax", producer.fax)

    location = _sub(contact, "dcc:location")
    address = producer.address
    _sub(location, "dcc:street", address.street)
    _sub(location, "dcc:streetNo", address.street_no)
    _sub(location, "dcc:postCode", address.post_code)
    _sub(location, "dcc:city", address.city)
    _sub(location, "dcc:countryCode", address.country_code)

    _encode_identifiers(
        element,
        "organizationIdentifiers",
        "organizationIdentifier",
        producer.organization_identifiers,
    )


def _encode_person(parent: etree._Element, person: ResponsiblePerson) -> None:
    element = _sub(parent, "dcc:respPerson")
    _content(_sub(element, "dcc:person"), "dcc:name", person.name)
    if person.description:
        _content(element, "dcc:description", person.description)
    _sub(element, "dcc:role", person.role)
    _sub(element, "dcc:mainSigner", _flag(person.main_signer))
    _sub(element, "dcc:cryptElectronicSeal", _flag(person.crypt_electronic_seal))
    _sub(
        element,
        "dcc:cryptElectronicSignature",
        _flag(person.crypt_electronic_signature),
    )


def _encode_administrative(parent: etree._Element, admin: AdministrativeData) -> None:
    element = _sub(parent, "drmd:administrativeData")

    core = _sub(element, "drmd:coreData")
    _sub(core, "drmd:titleOfTheDocument", admin.title)
    _sub(core, "drmd:uniqueIdentifier", admin.unique_identifier)
    _encode_validity(core, admin.validity)

    for producer in admin.producers:
        _encode_producer(element, producer)

    if admin.responsible_persons:
        persons = _sub(element, "drmd:respPersons")
        for person in admin.responsible_persons:
            _encode_person(persons, person)


def _encode_primitive_quantity(
    parent: etree._Element,
    qualified: str,
    text: str,
) -> None:
    """One of <drmd:real> or <drmd:noQuantity>, never both."""
    item = _sub(_sub(parent, qualified), "dcc:itemQuantity")
    quantity = classify_primitive_quantity(text)
    if isinstance(quantity, RealQuantity):
        real = _sub(item, "drmd:real")
        _sub(real, "si:value", quantity.value)
        _sub(real, "si:unit", quantity.unit)
    else:
        _sub(_sub(item, "drmd:noQuantity"), "dcc:content", quantity.content)


def _encode_material(parent: etree._Element, material: Material) -> None:
    element = _sub(
        parent, "drmd:material", isCertified=_flag(material.is_certified)
    )
    _content(element, "drmd:name", material.name)
    if material.material_class:
        _sub(element, "drmd:materialClass", material.material_class)
    _content(element, "drmd:description", material.description)
    _encode_primitive_quantity(
        element, "drmd:minimumSampleSize", material.minimum_sample_size
    )
    if material.item_quantities:
        _encode_primitive_quantity(
            element, "drmd:itemQuantities", material.item_quantities
        )
    _encode_identifiers(
        element,
        "materialIdentifiers",
        "materialIdentifier",
        material.material_identifiers,
    )


def _property_identifiers(quantity: Quantity) -> list[Identifier]:
    identifiers = [i for i in quantity.identifiers if i.value]
    if not any(i.scheme == CAS_SCHEME for i in identifiers):
        derived = cas_identifier(quantity.name)
        if derived is not None:
            identifiers.append(derived)
    return identifiers


def _encode_quantity(parent: etree._Element, quantity: Quantity) -> None:
    element = _sub(parent, "drmd:quantity")
    _content(element, "dcc:name", quantity.name)

    real = _sub(element, "si:real")
    _sub(real, "si:value", quantity.value)
    _sub(real, "si:unit", quantity.wire_unit)

    if quantity.uncertainty:
        expanded = _sub(
            _sub(real, "si:measurementUncertaintyUnivariate"), "si:expandedMU"
        )
        _sub(expanded, "si:valueExpandedMU", quantity.uncertainty)
        if quantity.coverage_factor:
            _sub(expanded, "si:coverageFactor", quantity.coverage_factor)
        if quantity.coverage_probability:
            _sub(expanded, "si:coverageProbability", quantity.coverage_probability)
        if quantity.distribution:
            _sub(expanded, "si:distribution", quantity.distribution)

    _encode_identifiers(
        element,
        "propertyIdentifiers",
        "propertyIdentifier",
        _property_identifiers(quantity),
    )


def _encode_result(parent: etree._Element, result: MeasurementResult) -> None:
    element = _sub(parent, "drmd:result")
    _content(element, "drmd:name", result.name or DEFAULT_RESULT_NAME)
    if result.description:
        _content(element, "drmd:description", result.description)

    quantities = _sub(_sub(element, "drmd:data"), "drmd:list")
    for quantity in result.quantities:
        _encode_quantity(quantities, quantity)


def _encode_property(parent: etree._Element, prop: MaterialProperty) -> None:
    element = _sub(
        parent, "drmd:materialProperties", isCertified=_flag(prop.is_certified)
    )
    _content(element, "drmd:name", prop.name)
    if prop.description:
        _content(element, "drmd:description", prop.description)
    if prop.procedures:
        method = _sub(_sub(element, "drmd:procedures"), "dcc:usedMethod")
        _content(method, "dcc:name", PROCEDURE_NAME)
        _content(method, "dcc:description", prop.procedures)

    results = _sub(element, "drmd:results")
    for result in prop.results:
        _encode_result(results, result)


def _encode_statement(
    parent: etree._Element,
    qualified: str,
    name: str,
    content: str,
) -> None:
    element = _sub(parent, qualified)
    _content(element, "dcc:name", name)
    _sub(element, "dcc:content", content)


def _encode_statements(parent: etree._Element, statements: Statements) -> None:
    element = _sub(parent, "drmd:statements")

    for attribute, (tag, display_name) in OFFICIAL_STATEMENTS.items():
        content = getattr(statements.official, attribute)
        if content:
            _encode_statement(element, f"drmd:{tag}", display_name, content)

    for custom in statements.custom:
        if custom.name or custom.content:
            _encode_statement(element, "drmd:statement", custom.name, custom.content)


def encode_document(document: Document, pretty_print: bool = True) -> str:
    """
    Serialize a document to DRMD XML.

    Args:
        document: Document to encode. Not modified.
        pretty_print: Indent the output.

    Returns:
        UTF-8 XML text starting with an XML declaration.
    """
    root = etree.Element(
        ROOT_TAG,
        nsmap=NAMESPACES,
        attrib={"schemaVersion": SCHEMA_VERSION},
    )

    _encode_administrative(root, document.administrative_data)

    materials = _sub(root, "drmd:materials")
    for material in document.materials:
        _encode_material(materials, material)

    properties = _sub(root, "drmd:materialPropertiesList")
    for prop in document.properties:
        _encode_property(properties, prop)

    _encode_statements(root, document.statements)

    if document.comment:
        _sub(root, "drmd:comment", document.comment)

    attachment = document.attachment
    if attachment is not None and attachment.data_base64:
        element = _sub(root, "drmd:document")
        _sub(element, "drmd:fileName", attachment.file_name)
        _sub(element, "drmd:mimeType", attachment.mime_type)
        _sub(element, "drmd:dataBase64", attachment.data_base64)

    xml = etree.tostring(
        root,
        xml_declaration=True,
        encoding="utf-8",
        pretty_print=pretty_print,
    ).decode("utf-8")

    logger.debug(
        f"Encoded {document.administrative_data.unique_identifier}: "
        f"{len(document.materials)} material(s), "
        f"{len(document.properties)} propert(y/ies), {len(xml)} chars"
    )
    return xml


# ─── Decoder ──────────────────────────────────────────────────────────────────


def _find(element: etree._Element, path: str) -> Optional[etree._Element]:
    return element.find(path, namespaces=NAMESPACES)


def _findall(element: etree._Element, path: str) -> list[etree._Element]:
    return element.findall(path, namespaces=NAMESPACES)


def _text(element: Optional[etree._Element], path: str) -> str:
    if element is None:
        return ""
    return element.findtext(path, default="", namespaces=NAMESPACES) or ""


def _decode_identifiers(element: etree._Element, path: str) -> list[Identifier]:
    return [
        Identifier(
            scheme=_text(entry, "drmd:scheme"),
            value=_text(entry, "drmd:value"),
            link=_text(entry, "drmd:link"),
        )
        for entry in _findall(element, path)
    ]


def _decode_validity(core: etree._Element) -> Validity:
    validity = _find(core, "drmd:validity")
    if validity is None or _find(validity, "drmd:untilRevoked") is not None:
        return UntilRevoked()

    if _find(validity, "drmd:specificTime") is not None:
        return SpecificTime(date=_text(validity, "drmd:specificTime"))

    dispatch = _find(validity, "drmd:timeAfterDispatch")
    if dispatch is None:
        return UntilRevoked()

    period = _text(dispatch, "drmd:period")
    years = PERIOD_YEARS_PATTERN.search(period)
    months = PERIOD_MONTHS_PATTERN.search(period)
    fields = {
        "years": int(years.group(1)) if years else 0,
        "months": int(months.group(1)) if months else 0,
    }
    dispatch_date = _text(dispatch, "drmd:dispatchDate")
    if dispatch_date:
        fields["dispatch_date"] = dispatch_date
    return TimeAfterDispatch(**fields)


def _decode_producer(element: etree._Element) -> Producer:
    contact = _find(element, "drmd:contact")
    location = _find(contact, "dcc:location") if contact is not None else None
    return Producer(
        name=_text(element, "drmd:name/dcc:content"),
        email=_text(contact, "dcc:eMail"),
        phone=_text(contact, "dcc:phone"),
        fax=_text(contact, "dcc:fax"),
        address=Address(
            street=_text(location, "dcc:street"),
            street_no=_text(location, "dcc:streetNo"),
            post_code=_text(location, "dcc:postCode"),
            city=_text(location, "dcc:city"),
            country_code=_text(location, "dcc:countryCode"),
        ),
        organization_identifiers=_decode_identifiers(
            element, "drmd:organizationIdentifiers/drmd:organizationIdentifier"
        ),
    )


def _flag_field(element: etree._Element, path: str, default: bool) -> bool:
    """Boolean child element, or ``default`` when the element is absent."""
    if _find(element, path) is None:
        return default
    return _text(element, path) == "true"


def _decode_person(element: etree._Element) -> ResponsiblePerson:
    defaults = ResponsiblePerson()
    return ResponsiblePerson(
        name=_text(element, "dcc:person/dcc:name/dcc:content"),
        description=_text(element, "dcc:description/dcc:content"),
        role=_text(element, "dcc:role"),
        main_signer=_flag_field(element, "dcc:mainSigner", defaults.main_signer),
        crypt_electronic_seal=_flag_field(
            element, "dcc:cryptElectronicSeal", defaults.crypt_electronic_seal
        ),
        crypt_electronic_signature=_flag_field(
            element,
            "dcc:cryptElectronicSignature",
            defaults.crypt_electronic_signature,
        ),
    )


def _decode_administrative(root: etree._Element) -> AdministrativeData:
    admin = AdministrativeData()
    element = _find(root, "drmd:administrativeData")
    if element is None:
        return admin

    update = {}
    core = _find(element, "drmd:coreData")
    if core is not None:
        title = _text(core, "drmd:titleOfTheDocument")
        if title:
            update["title"] = title
        identifier = _text(core, "drmd:uniqueIdentifier")
        if identifier:
            update["unique_identifier"] = identifier
        update["validity"] = _decode_validity(core)

    producers = _findall(element, "drmd:referenceMaterialProducer")
    if producers:
        update["producers"] = [_decode_producer(p) for p in producers]

    persons = _findall(element, "drmd:respPersons/dcc:respPerson")
    if persons:
        update["responsible_persons"] = [_decode_person(p) for p in persons]

    return admin.model_copy(update=update)


def _decode_primitive_quantity(material: etree._Element, qualified: str) -> str:
    item = _find(material, f"{qualified}/dcc:itemQuantity")
    if item is None:
        return ""

    real = _find(item, "drmd:real")
    if real is not None:
        return f"{_text(real, 'si:value')} {_text(real, 'si:unit')}"

    content = _text(item, "drmd:noQuantity/dcc:content")
    return "" if content == NO_QUANTITY else content


def _decode_material(element: etree._Element) -> Material:
    return Material(
        name=_text(element, "drmd:name/dcc:content"),
        material_class=_text(element, "drmd:materialClass"),
        description=_text(element, "drmd:description/dcc:content"),
        minimum_sample_size=_decode_primitive_quantity(
            element, "drmd:minimumSampleSize"
        ),
        item_quantities=_decode_primitive_quantity(element, "drmd:itemQuantities"),
        is_certified=element.get("isCertified") == "true",
        material_identifiers=_decode_identifiers(
            element, "drmd:materialIdentifiers/drmd:materialIdentifier"
        ),
    )


def _decode_quantity(element: etree._Element) -> Quantity:
    name = _text(element, "dcc:name/dcc:content")
    fields = {"name": name}

    real = _find(element, "si:real")
    if real is not None:
        fields["value"] = _text(real, "si:value")
        fields["unit"] = _text(real, "si:unit")

        expanded = _find(real, "si:measurementUncertaintyUnivariate/si:expandedMU")
        if expanded is not None:
            fields["uncertainty"] = _text(expanded, "si:valueExpandedMU")
            fields["coverage_factor"] = (
                _text(expanded, "si:coverageFactor") or DEFAULT_COVERAGE_FACTOR
            )
            fields["coverage_probability"] = (
                _text(expanded, "si:coverageProbability")
                or DEFAULT_COVERAGE_PROBABILITY
            )
            fields["distribution"] = (
                _text(expanded, "si:distribution") or DEFAULT_DISTRIBUTION
            )

    # The CAS identifier derived from the row name is re-added on export
    derived = cas_identifier(name)
    fields["identifiers"] = [
        identifier
        for identifier in _decode_identifiers(
            element, "drmd:propertyIdentifiers/drmd:propertyIdentifier"
        )
        if derived is None
        or identifier.scheme != CAS_SCHEME
        or identifier.value != derived.value
    ]

    return Quantity(**fields).with_dsi()


def _decode_result(element: etree._Element) -> MeasurementResult:
    return MeasurementResult(
        name=_text(element, "drmd:name/dcc:content") or DEFAULT_RESULT_NAME,
        description=_text(element, "drmd:description/dcc:content"),
        quantities=[
            _decode_quantity(q)
            for q in _findall(element, "drmd:data/drmd:list/drmd:quantity")
        ],
    )


def _decode_property(element: etree._Element) -> MaterialProperty:
    return MaterialProperty(
        name=_text(element, "drmd:name/dcc:content"),
        is_certified=element.get("isCertified") == "true",
        description=_text(element, "drmd:description/dcc:content"),
        procedures=_text(
            element,
            "drmd:procedures/dcc:usedMethod/dcc:description/dcc:content",
        ),
        results=[
            _decode_result(r) for r in _findall(element, "drmd:results/drmd:result")
        ],
    )


def _decode_statements(root: etree._Element) -> Statements:
    element = _find(root, "drmd:statements")
    if element is None:
        return Statements()

    # Only the direct <dcc:content> child; <dcc:name> nests one as well
    official = OfficialStatements(**{
        attribute: _text(element, f"drmd:{tag}/dcc:content")
        for attribute, (tag, _) in OFFICIAL_STATEMENTS.items()
    })
    custom = [
        CustomStatement(
            name=_text(statement, "dcc:name/dcc:content"),
            content=_text(statement, "dcc:content"),
        )
        for statement in _findall(element, "drmd:statement")
    ]
    return Statements(official=official, custom=custom)


def _decode_attachment(root: etree._Element) -> Optional[Attachment]:
    element = _find(root, "drmd:document")
    if element is None:
        return None

    if len(element) == 0:
        # Bare base64 payload without file metadata
        data = (element.text or "").strip()
        return Attachment(data_base64=data) if data else None

    data = _text(element, "drmd:dataBase64").strip()
    if not data:
        return None
    defaults = Attachment()
    return Attachment(
        file_name=_text(element, "drmd:fileName") or defaults.file_name,
        mime_type=_text(element, "drmd:mimeType") or defaults.mime_type,
        data_base64=data,
    )


def _parse(xml: Union[str, bytes]) -> etree._Element:
    if isinstance(xml, str):
        xml = xml.encode("utf-8")
    if not isinstance(xml, bytes) or not xml.strip():
        logger.error("Cannot decode an empty DRMD document")
        raise MalformedDocumentError("Empty XML document")

    parser = etree.XMLParser(resolve_entities=False, no_network=True)
    try:
        root = etree.fromstring(xml, parser=parser)
    except etree.XMLSyntaxError as e:
        logger.error(f"Invalid XML file structure: {e}")
        raise MalformedDocumentError(f"Invalid XML file structure: {e}") from e

    if root.tag != ROOT_TAG:
        logger.error(f"Unexpected root element {root.tag!r}")
        raise MalformedDocumentError(
            f"Not a DRMD document: root element is {root.tag!r}"
        )
    return root


def decode_document(xml: Union[str, bytes]) -> Document:
    """
    Parse DRMD XML into a new document.

    Every node gets a fresh uuid. Missing optional elements take their
    model defaults.

    Raises:
        MalformedDocumentError: The markup cannot be parsed or the root
            element is not a DRMD root.
    """
    root = _parse(xml)

    document = Document(
        administrative_data=_decode_administrative(root),
        materials=[
            _decode_material(m)
            for m in _findall(root, "drmd:materials/drmd:material")
        ],
        properties=[
            _decode_property(p)
            for p in _findall(
                root, "drmd:materialPropertiesList/drmd:materialProperties"
            )
        ],
        statements=_decode_statements(root),
        comment=_text(root, "drmd:comment"),
        attachment=_decode_attachment(root),
    )

    logger.info(
        f"Decoded {document.administrative_data.unique_identifier}: "
        f"{len(document.materials)} material(s), "
        f"{len(document.properties)} propert(y/ies)"
    )
    return document
