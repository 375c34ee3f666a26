"""
Test Suite for the XML Codec
============================
Encoder layout, decoder tolerance and encode/decode round trips.
"""

from __future__ import annotations

import pytest
from lxml import etree

from drmd.codec import NAMESPACES, ROOT_TAG, SCHEMA_VERSION, decode_document, encode_document
from drmd.exceptions import MalformedDocumentError
from drmd.models import (
    DEFAULT_TITLE,
    Document,
    Material,
    MaterialProperty,
    MeasurementResult,
    Quantity,
    SpecificTime,
    TimeAfterDispatch,
    UntilRevoked,
    new_document,
)

from conftest import build_complete_document

COORDINATE_KEYS = {"uuid", "field_coordinates", "section_coordinates"}


def _tree(xml: str) -> etree._Element:
    return etree.fromstring(xml.encode("utf-8"))


def _xpath(xml: str, path: str) -> list:
    return _tree(xml).xpath(path, namespaces=NAMESPACES)


def _scalars(value):
    """Model dump without uuids and coordinates."""
    if isinstance(value, dict):
        return {k: _scalars(v) for k, v in value.items() if k not in COORDINATE_KEYS}
    if isinstance(value, list):
        return [_scalars(v) for v in value]
    return value


def _with_quantities(document: Document, quantities: list[Quantity]) -> Document:
    doc = document.model_copy(deep=True)
    doc.properties = [MaterialProperty(
        name="Values",
        results=[MeasurementResult(quantities=quantities)],
    )]
    return doc


# ═══════════════════════════════════════════════════════════════════════════════
# ENCODER
# ═══════════════════════════════════════════════════════════════════════════════


class TestEncoder:
    """Element layout of the generated XML."""

    def test_preamble_and_root(self, complete_document):
        xml = encode_document(complete_document)
        assert xml.startswith("<?xml version='1.0' encoding='utf-8'?>")
        root = _tree(xml)
        assert root.tag == ROOT_TAG
        assert root.get("schemaVersion") == SCHEMA_VERSION
        assert root.nsmap == NAMESPACES

    def test_core_data(self, complete_document):
        xml = encode_document(complete_document)
        core = "/drmd:digitalReferenceMaterialDocument/drmd:administrativeData/drmd:coreData"
        assert _xpath(xml, f"{core}/drmd:titleOfTheDocument/text()") == [
            "referenceMaterialCertificate"
        ]
        assert _xpath(xml, f"{core}/drmd:uniqueIdentifier/text()") == ["BAM-M383b"]
        assert _xpath(xml, f"{core}/drmd:validity/drmd:timeAfterDispatch/drmd:period/text()") == [
            "P2Y6M"
        ]

    @pytest.mark.parametrize("validity,child", [
        (UntilRevoked(), "drmd:untilRevoked"),
        (SpecificTime(date="2030-12-31"), "drmd:specificTime"),
        (TimeAfterDispatch(), "drmd:timeAfterDispatch"),
    ])
    def test_exactly_one_validity_child(self, validity, child):
        doc = new_document()
        doc.administrative_data.validity = validity
        children = _xpath(encode_document(doc), "//drmd:validity/*")
        assert len(children) == 1
        assert children[0].tag == etree.QName(NAMESPACES["drmd"], child.split(":")[1]).text

    def test_zero_period(self):
        doc = new_document()
        doc.administrative_data.validity = TimeAfterDispatch(years=0, months=0)
        assert _xpath(encode_document(doc), "//drmd:period/text()") == ["P0Y"]

    def test_primitive_quantity_branches(self):
        doc = new_document()
        doc.materials = [
            Material(name="A", minimum_sample_size="4.9 g", item_quantities="2 lb"),
            Material(name="B", minimum_sample_size="approx 5 g", item_quantities=""),
            Material(name="C", minimum_sample_size=""),
        ]
        xml = encode_document(doc)
        materials = _xpath(xml, "//drmd:material")

        first = materials[0]
        assert first.xpath(
            "drmd:minimumSampleSize/dcc:itemQuantity/drmd:real/si:unit/text()",
            namespaces=NAMESPACES,
        ) == [r"\gram"]
        assert first.xpath(
            "drmd:itemQuantities//si:value/text()", namespaces=NAMESPACES
        ) == ["0.907185"]

        second = materials[1]
        assert second.xpath(
            "drmd:minimumSampleSize//drmd:noQuantity/dcc:content/text()",
            namespaces=NAMESPACES,
        ) == ["approx 5 g"]
        assert second.xpath("drmd:itemQuantities", namespaces=NAMESPACES) == []

        third = materials[2]
        assert third.xpath(
            "drmd:minimumSampleSize//dcc:content/text()", namespaces=NAMESPACES
        ) == ["noQuantity"]
        assert third.xpath("drmd:minimumSampleSize//drmd:real", namespaces=NAMESPACES) == []

    def test_quantity_uses_original_value_and_dsi_unit(self):
        doc = _with_quantities(new_document(), [
            Quantity(name="Mass", value="2", unit="lb").with_dsi(),
            Quantity(name="Count", value="3", unit="bottles").with_dsi(),
        ])
        xml = encode_document(doc)
        assert _xpath(xml, "//drmd:quantity/si:real/si:value/text()") == ["2", "3"]
        assert _xpath(xml, "//drmd:quantity/si:real/si:unit/text()") == [
            r"\kilogram", "bottles",
        ]

    def test_uncertainty_block_only_when_present(self, complete_document):
        xml = encode_document(complete_document)
        quantities = _xpath(xml, "//drmd:quantity")
        lead, cadmium = quantities[0], quantities[1]
        assert lead.xpath(
            ".//si:expandedMU/si:valueExpandedMU/text()", namespaces=NAMESPACES
        ) == ["0.4"]
        assert lead.xpath(".//si:coverageFactor/text()", namespaces=NAMESPACES) == ["2.0"]
        assert lead.xpath(".//si:coverageProbability/text()", namespaces=NAMESPACES) == ["0.95"]
        assert cadmium.xpath(".//si:measurementUncertaintyUnivariate", namespaces=NAMESPACES) == []

    def test_cas_identifier_enrichment(self, complete_document):
        xml = encode_document(complete_document)
        lead, cadmium, purity = _xpath(xml, "//drmd:quantity")
        assert lead.xpath(
            "drmd:propertyIdentifiers/drmd:propertyIdentifier/drmd:value/text()",
            namespaces=NAMESPACES,
        ) == ["7439-92-1"]
        assert cadmium.xpath(".//drmd:link/text()", namespaces=NAMESPACES) == [
            "https://commonchemistry.cas.org/detail?cas_rn=7440-43-9"
        ]
        assert purity.xpath(".//drmd:scheme/text()", namespaces=NAMESPACES) == ["Internal"]

    def test_markup_characters_are_escaped(self, complete_document):
        # lxml escapes < > & in text; quotes stay literal, which is well-formed
        xml = encode_document(complete_document)
        assert "Copper granules &lt;2 mm &amp; etched" in xml
        assert "<si:value>&lt;0.05</si:value>" in xml

    def test_control_characters_are_stripped(self):
        doc = new_document()
        doc.materials = [Material(name="Steel\x0cpage2", minimum_sample_size="1 g")]
        doc.comment = "line\x00one\x1ftwo\ttab\nnewline"
        xml = encode_document(doc)
        assert _xpath(xml, "//drmd:material/drmd:name/dcc:content/text()") == [
            "Steelpage2"
        ]
        assert _xpath(xml, "//drmd:comment/text()") == ["lineonetwo\ttab\nnewline"]
        assert decode_document(xml).materials[0].name == "Steelpage2"

    def test_optional_blocks_omitted(self):
        doc = new_document()
        xml = encode_document(doc)
        for path in ("//dcc:fax", "//drmd:comment", "//drmd:document",
                     "//dcc:respPerson/dcc:description", "//drmd:statement"):
            assert _xpath(xml, path) == [], path

    def test_optional_blocks_present(self, complete_document):
        xml = encode_document(complete_document)
        assert _xpath(xml, "//dcc:fax/text()") == ["+49 30 8104 72061"]
        assert _xpath(xml, "//drmd:comment/text()") == ["Generated for tests"]
        assert _xpath(xml, "//drmd:document/drmd:fileName/text()") == ["certificate.pdf"]
        assert _xpath(xml, "//drmd:statement/dcc:content/text()") == ["Tested on 10 units."]
        assert _xpath(xml, "//drmd:materialProperties/@isCertified") == ["true"]
        assert _xpath(xml, "//dcc:cryptElectronicSeal/text()") == ["true"]

    def test_official_statement_order(self, complete_document):
        xml = encode_document(complete_document)
        tags = [
            etree.QName(el).localname
            for el in _xpath(xml, "//drmd:statements/*")
        ]
        assert tags == [
            "intendedUse",
            "commutability",
            "storageInformation",
            "instructionsForHandlingAndUse",
            "metrologicalTraceability",
            "subcontractors",
            "referenceToCertificationReport",
            "healthAndSafetyInformation",
            "legalNotice",
            "statement",
        ]

    def test_compact_output(self, complete_document):
        xml = encode_document(complete_document, pretty_print=False)
        assert "\n  <drmd:administrativeData>" not in xml


# ═══════════════════════════════════════════════════════════════════════════════
# DECODER
# ═══════════════════════════════════════════════════════════════════════════════


class TestDecoder:
    """Parsing and tolerance to missing elements."""

    @pytest.mark.parametrize("xml", [
        "<drmd:digitalReferenceMaterialDocument",
        "not xml at all",
        "",
        "   ",
        b"",
    ])
    def test_malformed(self, xml):
        with pytest.raises(MalformedDocumentError):
            decode_document(xml)

    def test_foreign_root(self):
        with pytest.raises(MalformedDocumentError):
            decode_document("<certificate><name>x</name></certificate>")

    def test_minimal_document_uses_defaults(self):
        doc = decode_document(
            '<drmd:digitalReferenceMaterialDocument xmlns:drmd="https://example.org/drmd"/>'
        )
        assert doc.administrative_data.title == DEFAULT_TITLE
        assert doc.administrative_data.unique_identifier
        assert isinstance(doc.administrative_data.validity, UntilRevoked)
        assert doc.materials == []
        assert doc.properties == []
        assert doc.comment == ""
        assert doc.attachment is None

    def test_partial_elements_use_model_defaults(self):
        xml = """<drmd:digitalReferenceMaterialDocument
            xmlns:drmd="https://example.org/drmd"
            xmlns:dcc="https://ptb.de/dcc"
            xmlns:si="https://ptb.de/si">
          <drmd:administrativeData>
            <drmd:coreData>
              <drmd:uniqueIdentifier>ERM-EB317</drmd:uniqueIdentifier>
              <drmd:validity><drmd:timeAfterDispatch>
                <drmd:period>P2Y</drmd:period>
              </drmd:timeAfterDispatch></drmd:validity>
            </drmd:coreData>
            <drmd:respPersons><dcc:respPerson>
              <dcc:person><dcc:name><dcc:content>A. Analyst</dcc:content></dcc:name></dcc:person>
            </dcc:respPerson></drmd:respPersons>
          </drmd:administrativeData>
          <drmd:materialPropertiesList><drmd:materialProperties isCertified="true">
            <drmd:results><drmd:result><drmd:data><drmd:list><drmd:quantity>
              <dcc:name><dcc:content>Lead</dcc:content></dcc:name>
              <si:real>
                <si:value>12.3</si:value><si:unit>\\milli\\gram\\kilogram\\tothe{-1}</si:unit>
                <si:measurementUncertaintyUnivariate><si:expandedMU>
                  <si:valueExpandedMU>0.4</si:valueExpandedMU>
                </si:expandedMU></si:measurementUncertaintyUnivariate>
              </si:real>
            </drmd:quantity></drmd:list></drmd:data></drmd:result></drmd:results>
          </drmd:materialProperties></drmd:materialPropertiesList>
        </drmd:digitalReferenceMaterialDocument>"""
        doc = decode_document(xml)
        admin = doc.administrative_data
        assert admin.title == DEFAULT_TITLE
        assert admin.unique_identifier == "ERM-EB317"
        assert isinstance(admin.validity, TimeAfterDispatch)
        assert admin.validity.years == 2
        assert admin.validity.dispatch_date == TimeAfterDispatch().dispatch_date

        person = admin.responsible_persons[0]
        assert person.name == "A. Analyst"
        assert person.main_signer is True
        assert person.crypt_electronic_seal is False

        quantity = doc.properties[0].results[0].quantities[0]
        assert quantity.uncertainty == "0.4"
        assert quantity.coverage_factor == "2.0"
        assert quantity.coverage_probability == "0.95"
        assert quantity.distribution == "normal"

    def test_explicit_false_flags_are_kept(self, complete_document):
        complete_document.administrative_data.responsible_persons[0].main_signer = False
        decoded = decode_document(encode_document(complete_document))
        assert decoded.administrative_data.responsible_persons[0].main_signer is False

    def test_bytes_with_declaration(self, complete_document):
        xml = encode_document(complete_document).encode("utf-8")
        assert decode_document(xml).administrative_data.unique_identifier == "BAM-M383b"

    def test_period_components_are_independent(self):
        xml = """<drmd:digitalReferenceMaterialDocument
            xmlns:drmd="https://example.org/drmd">
          <drmd:administrativeData><drmd:coreData>
            <drmd:validity><drmd:timeAfterDispatch>
              <drmd:dispatchDate>2025-01-01</drmd:dispatchDate>
              <drmd:period>P18M</drmd:period>
            </drmd:timeAfterDispatch></drmd:validity>
          </drmd:coreData></drmd:administrativeData>
        </drmd:digitalReferenceMaterialDocument>"""
        validity = decode_document(xml).administrative_data.validity
        assert isinstance(validity, TimeAfterDispatch)
        assert (validity.years, validity.months) == (0, 18)
        assert validity.dispatch_date == "2025-01-01"

    def test_no_quantity_sentinel_decodes_to_empty(self):
        doc = new_document()
        doc.materials = [Material(name="A", minimum_sample_size="")]
        decoded = decode_document(encode_document(doc))
        assert decoded.materials[0].minimum_sample_size == ""

    def test_real_quantity_decodes_in_dsi_spelling(self):
        doc = new_document()
        doc.materials = [Material(name="A", minimum_sample_size="4.9 g")]
        decoded = decode_document(encode_document(doc))
        assert decoded.materials[0].minimum_sample_size == r"4.9 \gram"

    def test_statement_name_content_is_not_mistaken_for_content(self, complete_document):
        decoded = decode_document(encode_document(complete_document))
        assert decoded.statements.official.intended_use == (
            "Calibration of ICP-OES instruments."
        )

    def test_legacy_bare_document_payload(self):
        xml = """<drmd:digitalReferenceMaterialDocument
            xmlns:drmd="https://example.org/drmd">
          <drmd:document>
            JVBERi0xLjQK
          </drmd:document>
        </drmd:digitalReferenceMaterialDocument>"""
        attachment = decode_document(xml).attachment
        assert attachment.data_base64 == "JVBERi0xLjQK"
        assert attachment.file_name == "imported_document.pdf"

    def test_fresh_uuids(self, complete_document):
        decoded = decode_document(encode_document(complete_document))
        assert decoded.materials[0].uuid != complete_document.materials[0].uuid


# ═══════════════════════════════════════════════════════════════════════════════
# ROUND TRIP
# ═══════════════════════════════════════════════════════════════════════════════


class TestRoundTrip:
    """decode(encode(doc)) keeps every scalar field."""

    def test_complete_document(self):
        original = build_complete_document()
        # Only the D-SI unit goes on the wire
        for result in original.properties[0].results:
            result.quantities = [
                q.model_copy(update={"unit": q.wire_unit}).with_dsi()
                for q in result.quantities
            ]

        decoded = decode_document(encode_document(original))
        assert _scalars(decoded.model_dump()) == _scalars(original.model_dump())

    def test_raw_units_come_back_as_dsi(self, complete_document):
        decoded = decode_document(encode_document(complete_document))
        lead = decoded.properties[0].results[0].quantities[0]
        assert lead.value == "12.3"
        assert lead.unit == r"\milli\gram\kilogram\tothe{-1}"
        assert lead.dsi_unit == lead.unit
        assert lead.dsi_value == "12.3"
        assert lead.identifiers == []

    def test_coordinates_are_not_persisted(self, complete_document):
        complete_document.materials[0].section_coordinates = [1, 2, 3, 4, 5]
        decoded = decode_document(encode_document(complete_document))
        assert decoded.materials[0].section_coordinates is None

    @pytest.mark.parametrize("validity", [
        UntilRevoked(),
        SpecificTime(date="2030-12-31"),
        TimeAfterDispatch(years=0, months=0, dispatch_date="2025-01-01"),
        TimeAfterDispatch(years=3, months=11, dispatch_date="2025-01-01"),
    ])
    def test_validity(self, validity):
        doc = new_document()
        doc.administrative_data.validity = validity
        decoded = decode_document(encode_document(doc))
        assert decoded.administrative_data.validity == validity
