"""
Shared fixtures for the DRMD test suite.
"""

from __future__ import annotations

import pytest

from drmd.models import (
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
    ResponsiblePerson,
    Statements,
    TimeAfterDispatch,
)


def build_complete_document() -> Document:
    """A document that passes validation and exercises every XML block."""
    return Document(
        administrative_data=AdministrativeData(
            title="referenceMaterialCertificate",
            unique_identifier="BAM-M383b",
            validity=TimeAfterDispatch(
                years=2, months=6, dispatch_date="2025-01-15"
            ),
            producers=[Producer(
                name="Bundesanstalt für Materialforschung und -prüfung (BAM)",
                email="sales.crm@bam.de",
                phone="+49 30 8104 2061",
                fax="+49 30 8104 72061",
                address=Address(
                    street="Richard-Willstätter-Str.",
                    street_no="11",
                    post_code="12489",
                    city="Berlin",
                    country_code="DE",
                ),
                organization_identifiers=[
                    Identifier(scheme="ROR", value="03x516a66", link="https://ror.org/03x516a66"),
                ],
            )],
            responsible_persons=[ResponsiblePerson(
                name="Dr. Jane Doe",
                role="Head of Department",
                description="Project coordinator",
                main_signer=True,
                crypt_electronic_seal=True,
                crypt_electronic_signature=False,
            )],
        ),
        materials=[Material(
            name="BAM-M383b",
            material_class="Pure metal",
            description="Copper granules <2 mm & etched",
            item_quantities="1",
            minimum_sample_size="approx. 5 g",
            is_certified=True,
            material_identifiers=[Identifier(scheme="Lot", value="L-77")],
        )],
        properties=[MaterialProperty(
            name="Certified Values",
            is_certified=True,
            description="Mass fractions",
            procedures="ICP-OES after acid digestion",
            results=[MeasurementResult(
                name="Certified mass fractions",
                description="1) Expanded uncertainty, k = 2",
                quantities=[
                    Quantity(
                        name="Lead", value="12.3", unit="mg/kg",
                        uncertainty="0.4",
                    ).with_dsi(),
                    Quantity(
                        name="Cadmium", value="<0.05", unit="mg/kg",
                    ).with_dsi(),
                    Quantity(
                        name="Purity", value="99.99", unit="%",
                        uncertainty="0.01",
                        identifiers=[Identifier(scheme="Internal", value="P-1")],
                    ).with_dsi(),
                ],
            )],
        )],
        statements=Statements(
            official=OfficialStatements(
                intended_use="Calibration of ICP-OES instruments.",
                commutability="Not assessed.",
                storage_information="Store at room temperature.",
                handling_instructions="Use clean tools \"only\".",
                metrological_traceability="Traceable to the SI.",
                health_and_safety="Not hazardous.",
                subcontractors="None.",
                legal_notice="Certified by BAM.",
                reference_to_certification_report="Report M383b, 2025.",
            ),
            custom=[CustomStatement(name="Homogeneity", content="Tested on 10 units.")],
        ),
        comment="Generated for tests",
        attachment=Attachment(
            file_name="certificate.pdf",
            mime_type="application/pdf",
            data_base64="JVBERi0xLjQK",
        ),
    )


@pytest.fixture
def complete_document() -> Document:
    return build_complete_document()
