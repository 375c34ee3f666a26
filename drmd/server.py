"""
HTTP API
========
Flask-based HTTP API for the DRMD engine.

Lets an editing front end (or any other client) use the engine as a
service:
    - Unit conversion previews
    - Extraction normalization
    - Validation reports
    - XML export and import

Endpoints:
    GET    /api/health      → Health check
    GET    /api/info        → Engine version and wire format info
    POST   /api/convert     → D-SI conversion of {value, unit}
    POST   /api/normalize   → Apply an extraction onto a document
    POST   /api/validate    → Validation report for a document
    POST   /api/export      → DRMD XML (422 with the report when blocked)
    POST   /api/import      → Document JSON from DRMD XML
"""

from __future__ import annotations

import logging
from typing import Optional

from flask import Flask, Response, jsonify, request
from flask_cors import CORS
from pydantic import ValidationError

from . import __version__
from .codec import NAMESPACES, SCHEMA_VERSION
from .engine import DrmdEngine, EngineConfig
from .exceptions import ExportBlockedError, MalformedDocumentError
from .models import ALLOWED_TITLES, Document
from .units import convert_to_dsi

logger = logging.getLogger(__name__)

XML_MIMETYPES = ("application/xml", "text/xml")

app = Flask(__name__)
CORS(app)


def create_app(config: Optional[dict] = None) -> Flask:
    """Create and configure the Flask app."""
    if config:
        app.config.update(config)

    app.config.setdefault("ENFORCE_VALIDATION", True)
    app.config.setdefault("LOG_LEVEL", "INFO")
    app.config.setdefault("PRETTY_PRINT", True)
    app.config.setdefault("MAX_CONTENT_LENGTH", 50 * 1024 * 1024)  # 50MB

    return app


def _engine() -> DrmdEngine:
    return DrmdEngine(EngineConfig(
        log_level=app.config.get("LOG_LEVEL", "INFO"),
        enforce_validation=app.config.get("ENFORCE_VALIDATION", True),
        pretty_print=app.config.get("PRETTY_PRINT", True),
    ))


def _json_body() -> Optional[dict]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


def _document_from_request(engine: DrmdEngine) -> Document:
    """
    Read the document of a request: DRMD XML for XML bodies, else a
    document JSON object (optionally wrapped as {"document": ...}).
    """
    if request.mimetype in XML_MIMETYPES:
        return engine.import_xml(request.get_data())

    data = _json_body()
    if data is None:
        raise ValueError("Request body must be a JSON object or DRMD XML")
    if isinstance(data.get("document"), dict):
        data = data["document"]
    return Document.model_validate(data)


# ─── Health Check ─────────────────────────────────────────────────────────────


@app.route("/api/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify({
        "status": "healthy",
        "service": "drmd",
        "version": __version__,
    })


@app.route("/api/info", methods=["GET"])
def info():
    """Engine version and capability info."""
    return jsonify({
        "version": __version__,
        "schemaVersion": SCHEMA_VERSION,
        "namespaces": NAMESPACES,
        "allowedTitles": list(ALLOWED_TITLES),
        "capabilities": [
            "dsi_conversion",
            "extraction_normalization",
            "validation",
            "xml_export",
            "xml_import",
        ],
    })


# ─── Conversion & Normalization ───────────────────────────────────────────────


@app.route("/api/convert", methods=["POST"])
def convert():
    """
    Convert a value/unit pair to D-SI.

    Body: {"value": "2", "unit": "lb"}
    """
    data = _json_body()
    if data is None or "unit" not in data:
        return jsonify({"error": "JSON body with 'unit' is required"}), 400

    dsi = convert_to_dsi(data.get("value"), data.get("unit"))
    return jsonify({
        "dsiValue": dsi.dsi_value,
        "dsiUnit": dsi.dsi_unit,
        "resolved": bool(dsi.dsi_unit),
    })


@app.route("/api/normalize", methods=["POST"])
def normalize():
    """
    Apply an extraction payload onto a document.

    Body: {"extraction": {...}, "document": {...}} where "document" is
    optional (a new document is used). A body without "extraction" is
    taken as the extraction itself.
    """
    data = _json_body()
    if data is None:
        return jsonify({"error": "JSON body is required"}), 400

    engine = _engine()
    payload = data.get("extraction", data)

    if isinstance(data.get("document"), dict):
        try:
            document = Document.model_validate(data["document"])
        except ValidationError as e:
            return jsonify({"error": "Invalid document", "details": e.errors(
                include_url=False, include_context=False,
            )}), 400
    else:
        document = engine.new_document()

    document = engine.apply_extraction(document, payload)
    return jsonify(document.to_json_dict())


# ─── Validation, Export & Import ──────────────────────────────────────────────


@app.route("/api/validate", methods=["POST"])
def validate():
    """Validation report for a document (JSON or DRMD XML body)."""
    engine = _engine()
    try:
        document = _document_from_request(engine)
    except MalformedDocumentError as e:
        return jsonify({"error": str(e)}), 400
    except ValidationError as e:
        return jsonify({"error": "Invalid document", "details": e.errors(
            include_url=False, include_context=False,
        )}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    report = engine.validate(document)
    return jsonify(report.model_dump(by_alias=True, mode="json"))


@app.route("/api/export", methods=["POST"])
def export():
    """
    Export a document JSON as DRMD XML.

    Returns 422 with the validation report when the document has errors
    and ENFORCE_VALIDATION is on.
    """
    engine = _engine()
    try:
        document = _document_from_request(engine)
    except MalformedDocumentError as e:
        return jsonify({"error": str(e)}), 400
    except ValidationError as e:
        return jsonify({"error": "Invalid document", "details": e.errors(
            include_url=False, include_context=False,
        )}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    try:
        xml = engine.export_xml(document)
    except ExportBlockedError as e:
        return jsonify({
            "error": "Export blocked by validation errors",
            "report": e.report.model_dump(mode="json"),
        }), 422

    filename = engine.export_filename(document)
    return Response(
        xml,
        mimetype="application/xml",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.route("/api/import", methods=["POST"])
def import_xml():
    """
    Decode DRMD XML into document JSON.

    Accepts a multipart upload ("file") or the raw XML as request body.
    """
    if "file" in request.files:
        source = request.files["file"].read()
    else:
        source = request.get_data()

    if not source:
        return jsonify({"error": "No XML provided"}), 400

    engine = _engine()
    try:
        document = engine.import_xml(source)
    except MalformedDocumentError as e:
        logger.warning(f"Rejected import: {e}")
        return jsonify({"error": str(e)}), 400

    return jsonify(document.to_json_dict())


# ─── Run Server ──────────────────────────────────────────────────────────────


def run_server(
    host: str = "0.0.0.0",
    port: int = 5000,
    debug: bool = False,
):
    """Start the API server."""
    create_app()
    app.run(host=host, port=port, debug=debug)


if __name__ == "__main__":
    run_server(debug=True)
