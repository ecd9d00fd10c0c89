from __future__ import annotations

import time
from functools import wraps
from urllib.parse import quote

from flask import Blueprint, Response, current_app, jsonify, request
from werkzeug.utils import secure_filename

from ..services.issuance import get_certificate_services
from ..shared.errors import CertificateServiceError, RenderError, StoreMissError
from ..shared.metrics import process_memory

bp = Blueprint("certificates", __name__, url_prefix="/certificates")

GENERIC_FAILURE = "Error generating certificate"


def rate_limited(scope: str):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            get_certificate_services().rate_limiter.check(request.remote_addr, scope)
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def _content_disposition(filename: str) -> str:
    if filename.isascii() and '"' not in filename:
        return f'attachment; filename="{filename}"'
    fallback = secure_filename(filename) or "Certificate.pdf"
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


@bp.post("")
@rate_limited("issue")
def issue_certificates():
    services = get_certificate_services()
    started = time.perf_counter()
    services.metrics.record_request()

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}

    try:
        result = services.issuer.issue(payload.get("att_code"))
    except RenderError as exc:
        services.metrics.record_failure(str(exc))
        current_app.logger.error("[CERT-FAIL] %s", exc)
        return jsonify({"message": GENERIC_FAILURE}), 500
    except CertificateServiceError:
        services.metrics.record_failure()
        raise
    except Exception as exc:
        services.metrics.record_failure(str(exc))
        current_app.logger.exception("[CERT-FAIL] error processing certificate request")
        return jsonify({"message": GENERIC_FAILURE}), 500

    services.metrics.record_success((time.perf_counter() - started) * 1000)
    return jsonify(result)


@bp.get("/download/<token>")
@rate_limited("download")
def download(token: str):
    preview = token[:8]
    current_app.logger.info("[CERT-DOWNLOAD] token=%s...", preview)
    certificate = get_certificate_services().store.get(token)
    if certificate is None:
        current_app.logger.warning(
            "[CERT-MISSING] token=%s... not found or expired", preview
        )
        raise StoreMissError("Certificate not found or expired")

    current_app.logger.info("[CERT-DOWNLOAD] delivering name=%s", certificate.name)
    resp = Response(certificate.buffer, mimetype=certificate.content_type)
    resp.headers["Content-Disposition"] = _content_disposition(certificate.filename)
    resp.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    resp.headers["Pragma"] = "no-cache"
    resp.headers["Expires"] = "0"
    return resp


@bp.get("/health")
def health():
    services = get_certificate_services()
    current_app.logger.info("[CERT-HEALTH] check initiated")
    report = {
        "status": "healthy",
        "templateStatus": services.renderer.template_status(),
        "fontStatus": services.renderer.font_status(),
        "certificateStore": services.store.snapshot(),
        "circuitBreaker": services.breaker.snapshot(),
        "rateLimiting": services.rate_limiter.snapshot(),
        "metrics": services.metrics.snapshot(),
        "memory": process_memory(),
    }

    started = time.perf_counter()
    try:
        sample = services.renderer.render("Health Check", "System Test")
    except Exception as exc:
        current_app.logger.error("[CERT-HEALTH] test render failed: %s", exc)
        report["status"] = "unhealthy"
        report["certificateGeneration"] = {"successful": False, "error": str(exc)}
        return jsonify(report), 500

    report["certificateGeneration"] = {
        "successful": len(sample) > 0,
        "generationTimeMs": round((time.perf_counter() - started) * 1000, 2),
    }
    return jsonify(report)
