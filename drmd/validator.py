"""
Validation Engine
=================
Pre-export completeness check.

Produces a report of errors and warnings for a document:
    - Administrative: title, unique identifier, exactly one producer with
      a name, responsible persons (warning only)
    - Materials: at least one, each with a name and a minimum sample size
    - Statements: intended use, storage and handling instructions

All rules always run; the report is never cut short by the first failure.
Export is allowed if and only if there are no errors.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field, computed_field

from .models import Document

logger = logging.getLogger(__name__)

ADMINISTRATIVE = "Administrative"
MATERIALS = "Materials"
STATEMENTS = "Statements"

# attribute -> error message
MANDATORY_STATEMENTS = (
    ("intended_use", "Intended Use is required."),
    ("storage_information", "Storage Information is required."),
    ("handling_instructions", "Instructions for Handling and Use are required."),
)


class ValidationIssue(BaseModel):
    section: str
    message: str


class ValidationReport(BaseModel):
    """Ordered errors (blocking) and warnings (informational)."""
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)

    @computed_field
    @property
    def is_exportable(self) -> bool:
        return not self.errors

    def error(self, section: str, message: str) -> None:
        self.errors.append(ValidationIssue(section=section, message=message))

    def warn(self, section: str, message: str) -> None:
        self.warnings.append(ValidationIssue(section=section, message=message))


class ValidationEngine:
    """
    Validates a document and produces the export-gating report.
    """

    def validate(self, document: Document) -> ValidationReport:
        """
        Run every rule against the document.

        Args:
            document: Document to check. Not modified.

        Returns:
            ValidationReport with errors and warnings in rule order.
        """
        report = ValidationReport()

        self._check_administrative(document, report)
        self._check_materials(document, report)
        self._check_statements(document, report)

        self._log_summary(report)
        return report

    def _check_administrative(
        self,
        document: Document,
        report: ValidationReport,
    ) -> None:
        admin = document.administrative_data

        if not admin.title.strip():
            report.error(ADMINISTRATIVE, "Document Title is missing.")
        if not admin.unique_identifier.strip():
            report.error(ADMINISTRATIVE, "Unique Identifier is missing.")

        # The schema allows exactly one producer
        if not admin.producers:
            report.error(
                ADMINISTRATIVE,
                "At least one Producer is required.",
            )
        elif len(admin.producers) > 1:
            report.error(
                ADMINISTRATIVE,
                "Only ONE Producer is allowed by schema.",
            )
        for index, producer in enumerate(admin.producers, start=1):
            if not producer.name.strip():
                report.error(ADMINISTRATIVE, f"Producer {index}: Name is required.")

        if not admin.responsible_persons:
            report.warn(ADMINISTRATIVE, "No Responsible Persons defined (Warning).")

    def _check_materials(
        self,
        document: Document,
        report: ValidationReport,
    ) -> None:
        if not document.materials:
            report.error(MATERIALS, "At least one Material is required.")

        for index, material in enumerate(document.materials, start=1):
            if not material.name.strip():
                report.error(MATERIALS, f"Material {index}: Name is required.")
            if not material.minimum_sample_size.strip():
                report.error(
                    MATERIALS,
                    f"Material {index}: Minimum Sample Size is required.",
                )

    def _check_statements(
        self,
        document: Document,
        report: ValidationReport,
    ) -> None:
        official = document.statements.official
        for attribute, message in MANDATORY_STATEMENTS:
            if not getattr(official, attribute).strip():
                report.error(STATEMENTS, message)

    def _log_summary(self, report: ValidationReport) -> None:
        logger.info("=" * 60)
        logger.info("VALIDATION REPORT")
        logger.info("=" * 60)
        logger.info(f"Errors: {len(report.errors)}")
        for issue in report.errors:
            logger.info(f"  • [{issue.section}] {issue.message}")
        logger.info(f"Warnings: {len(report.warnings)}")
        for issue in report.warnings:
            logger.info(f"  • [{issue.section}] {issue.message}")
        logger.info(f"Exportable: {report.is_exportable}")
        logger.info("=" * 60)


def validate_document(document: Document) -> ValidationReport:
    return ValidationEngine().validate(document)
