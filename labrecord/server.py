"""
HTTP Service
============
Stateless Flask API the form application calls into.

Nothing is stored: every request carries its document and gets its result
back in the response.

Endpoints:
    GET    /api/health     → Health check
    GET    /api/info       → Engine version info
    POST   /api/extract    → PDF upload → extracted record JSON
    POST   /api/plan       → Page image (+ zones) → page slices JSON
    POST   /api/paginate   → Page image (+ zones, register number, logo) → PDF
"""

from __future__ import annotations

import io
import json
import logging

import numpy as np
from flask import Flask, jsonify, request, send_file
from flask_cors import CORS
from PIL import Image, UnidentifiedImageError
from pydantic import ValidationError

from . import __version__
from .engine import LabRecordConfig, LabRecordEngine
from .fragment_extractor import ExtractionFailed
from .models import LabRecord, ProtectedZone

logger = logging.getLogger(__name__)


class BadRequest(ValueError):
    pass


def _read_bitmap() -> np.ndarray:
    upload = request.files.get("image")
    if upload is None or not upload.filename:
        raise BadRequest("An 'image' file upload is required")
    try:
        with Image.open(upload.stream) as img:
            return np.asarray(img.convert("RGB"))
    except (UnidentifiedImageError, OSError) as e:
        raise BadRequest(f"Unreadable image: {e}") from e


def _read_zones() -> list[ProtectedZone]:
    raw = request.form.get("zones")
    if not raw:
        return []
    try:
        return [ProtectedZone(**z) for z in json.loads(raw)]
    except (ValueError, TypeError, ValidationError) as e:
        raise BadRequest(f"Invalid zones: {e}") from e


def create_app(config: dict = None) -> Flask:
    """Create and configure the Flask app."""
    app = Flask(__name__)
    CORS(app)

    if config:
        app.config.update(config)
    app.config.setdefault("MAX_CONTENT_LENGTH", 50 * 1024 * 1024)  # 50MB
    app.config.setdefault("ENGINE_CONFIG", LabRecordConfig())

    engine = LabRecordEngine(app.config["ENGINE_CONFIG"])

    @app.errorhandler(BadRequest)
    def bad_request(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(ExtractionFailed)
    def extraction_failed(e):
        logger.warning(f"Extraction failed: {e}")
        return jsonify({"error": str(e), "source": e.source}), 422

    # ─── Health Check ─────────────────────────────────────────────────────

    @app.route("/api/health", methods=["GET"])
    def health():
        return jsonify({
            "status": "healthy",
            "service": "labrecord",
            "version": __version__,
        })

    @app.route("/api/info", methods=["GET"])
    def info():
        return jsonify({
            "version": __version__,
            "engine": "PyMuPDF",
            "capabilities": [
                "fragment_extraction",
                "student_fields",
                "question_segmentation",
                "page_planning",
                "page_overlays",
            ],
            "supported_formats": ["pdf", "png", "jpeg"],
        })

    # ─── Extraction ───────────────────────────────────────────────────────

    @app.route("/api/extract", methods=["POST"])
    def extract():
        """
        Extract a record from an uploaded submission PDF.

        Returns the extracted record plus the initial edit state
        (selection, test-case toggle, rubric).
        """
        upload = request.files.get("file")
        if upload is None or not upload.filename:
            raise BadRequest("A 'file' PDF upload is required")

        extracted = engine.extract_bytes(upload.read(), source=upload.filename)
        record = LabRecord.from_extracted(extracted)
        return jsonify({
            "record": record.model_dump(),
            "suggested_filename": record.suggested_filename(),
        }), 200

    # ─── Repagination ─────────────────────────────────────────────────────

    @app.route("/api/plan", methods=["POST"])
    def plan():
        slices = engine.plan_pages(_read_bitmap(), _read_zones())
        return jsonify({
            "pages": len(slices),
            "slices": [s.model_dump() for s in slices],
        })

    @app.route("/api/paginate", methods=["POST"])
    def paginate():
        bitmap = _read_bitmap()
        zones = _read_zones()
        logo_upload = request.files.get("logo")
        logo = logo_upload.read() if logo_upload else None

        data = engine.render_pdf(
            bitmap,
            zones,
            register_number=request.form.get("register_number", ""),
            logo=logo,
        )
        filename = request.form.get("filename") or "LabRecord.pdf"
        return send_file(
            io.BytesIO(data),
            mimetype="application/pdf",
            as_attachment=True,
            download_name=filename,
        )

    return app


# ─── Run Server ──────────────────────────────────────────────────────────────


def run_server(
    host: str = "0.0.0.0",
    port: int = 5000,
    debug: bool = False,
):
    """Start the HTTP service."""
    app = create_app()
    app.run(host=host, port=port, debug=debug)


if __name__ == "__main__":
    run_server(debug=True)
