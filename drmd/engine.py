"""
DRMD Engine
===========
Orchestrator tying the normalizer, validator and XML codec together.

Usage:
    engine = DrmdEngine(config)
    document = engine.apply_extraction(engine.new_document(), payload)
    xml = engine.export_xml(document, save=True)

Architecture:
    extraction JSON → ExtractionNormalizer → Document → ValidationEngine →
    export gate → XML codec → DRMD-<uniqueIdentifier>.xml
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from . import __version__
from .codec import decode_document, encode_document
from .exceptions import ExportBlockedError
from .models import Document, new_document
from .normalizer import ExtractionNormalizer
from .validator import ValidationEngine, ValidationReport

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class EngineConfig:
    """Configuration for the DRMD engine."""

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # Output settings
    output_dir: str = "output"
    pretty_print: bool = True

    # Refuse to export documents whose report has errors
    enforce_validation: bool = True


class DrmdEngine:
    """
    Main DRMD engine.

    Every operation takes a document and returns a new one (or a report,
    or XML); the engine itself holds no document state.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.normalizer = ExtractionNormalizer()
        self.validator = ValidationEngine()
        self._setup_logging()

    def _setup_logging(self):
        """Configure the drmd package logger based on config."""
        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        package_logger = logging.getLogger("drmd")
        package_logger.setLevel(log_level)
        formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

        console = next(
            (
                h for h in package_logger.handlers
                if type(h) is logging.StreamHandler
            ),
            None,
        )
        if console is None:
            console = logging.StreamHandler()
            console.setFormatter(formatter)
            package_logger.addHandler(console)
        console.setLevel(log_level)

        if self.config.log_file:
            log_path = os.path.abspath(self.config.log_file)
            already_attached = any(
                isinstance(h, logging.FileHandler)
                and h.baseFilename == log_path
                for h in package_logger.handlers
            )
            if not already_attached:
                Path(log_path).parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.FileHandler(log_path, encoding="utf-8")
                file_handler.setLevel(log_level)
                file_handler.setFormatter(formatter)
                package_logger.addHandler(file_handler)

    # ─── Operations ───────────────────────────────────────────────────

    def new_document(self) -> Document:
        return new_document()

    def apply_extraction(self, document: Document, payload: Any) -> Document:
        """Merge a raw extraction result into a copy of ``document``."""
        return self.normalizer.apply(document, payload)

    def validate(self, document: Document) -> ValidationReport:
        return self.validator.validate(document)

    def export_xml(self, document: Document, save: bool = False) -> str:
        """
        Validate and encode a document.

        Args:
            document: Document to export.
            save: Also write ``DRMD-<uniqueIdentifier>.xml`` to the
                configured output directory.

        Returns:
            The XML text.

        Raises:
            ExportBlockedError: The report has errors and validation is
                enforced.
        """
        report = self.validate(document)
        if not report.is_exportable:
            if self.config.enforce_validation:
                logger.error(
                    f"Export blocked: {len(report.errors)} validation error(s)"
                )
                raise ExportBlockedError(report)
            logger.warning(
                f"Exporting despite {len(report.errors)} validation error(s)"
            )

        xml = encode_document(document, pretty_print=self.config.pretty_print)

        if save:
            self.save_xml(document, xml)
        return xml

    def import_xml(self, source: Union[str, bytes, Path]) -> Document:
        """
        Decode a DRMD from XML text/bytes or from a file path.

        Raises:
            MalformedDocumentError: The XML cannot be read as a DRMD.
            FileNotFoundError: ``source`` is a path that does not exist.
        """
        if isinstance(source, str) and source.lstrip().startswith("<"):
            return decode_document(source)
        if isinstance(source, bytes):
            return decode_document(source)

        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"XML not found: {path}")
        logger.info(f"Importing: {path}")
        return decode_document(path.read_bytes())

    # ─── Files ────────────────────────────────────────────────────────

    def export_filename(self, document: Document) -> str:
        return f"DRMD-{document.administrative_data.unique_identifier}.xml"

    def save_xml(self, document: Document, xml: str) -> Path:
        output_dir = Path(self.config.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        filepath = output_dir / self.export_filename(document)
        filepath.write_text(xml, encoding="utf-8")
        logger.info(f"Saved XML output: {filepath}")
        return filepath

    def load_document(self, path: Union[str, Path]) -> Document:
        """Load a document from ``.xml`` (DRMD) or any other file as JSON."""
        path = Path(path)
        if path.suffix.lower() == ".xml":
            return self.import_xml(path)
        if not path.exists():
            raise FileNotFoundError(f"Document not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            return Document.model_validate(json.load(f))

    def save_document(self, document: Document, filepath: Union[str, Path]) -> Path:
        """Save a document as camelCase JSON."""
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        data = document.to_json_dict()
        data["generator"] = f"drmd {__version__}"
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        logger.info(f"Saved JSON: {filepath}")
        return filepath
