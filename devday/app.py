import logging
import os
import sys

from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

from .models import Event, Team  # registers tables on db.metadata
from .shared.errors import CertificateServiceError


_DEFAULT_TEMPLATES = (
    os.path.join("assets", "certificateDesign2025.png"),
    os.path.join("assets", "certificateDesign1.png"),
)
_DEFAULT_FONTS = (os.path.join("assets", "fonts", "PlayfairDisplay-Italic.ttf"),)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_paths(name: str, default: tuple[str, ...]) -> list[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [part for part in raw.split(os.pathsep) if part.strip()]


def _configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logger = logging.getLogger("devday")
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
        logger.addHandler(handler)
    logger.setLevel(level)


def create_app(config: dict | None = None):
    app = Flask(__name__)
    app.secret_key = os.getenv("SECRET_KEY", "dev")

    DB_USER = os.getenv("DB_USER", "devday")
    DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
    DB_HOST = os.getenv("DB_HOST", "db")
    DB_NAME = os.getenv("DB_NAME", "devday")
    DATABASE_URL = os.getenv(
        "DATABASE_URL",
        f"postgresql+psycopg2://{DB_USER}:{DB_PASSWORD}@{DB_HOST}/{DB_NAME}",
    )

    app.config["SQLALCHEMY_DATABASE_URI"] = DATABASE_URL
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["MAX_CONTENT_LENGTH"] = 1 * 1024 * 1024

    app.config["CERT_TEMPLATE_PATHS"] = _env_paths("CERT_TEMPLATE_PATHS", _DEFAULT_TEMPLATES)
    app.config["CERT_FONT_PATHS"] = _env_paths("CERT_FONT_PATHS", _DEFAULT_FONTS)
    app.config["CERT_AUTHOR"] = os.getenv("CERT_AUTHOR", "DevDay 2025")
    app.config["CERT_TTL_SECONDS"] = _env_float("CERT_TTL_SECONDS", 60)
    app.config["CERT_STORE_MAX_SIZE"] = _env_int("CERT_STORE_MAX_SIZE", 1000)
    app.config["CERT_SWEEP_INTERVAL_SECONDS"] = _env_float("CERT_SWEEP_INTERVAL_SECONDS", 15)
    app.config["CERT_SWEEP_ENABLED"] = _env_flag("CERT_SWEEP_ENABLED", True)
    app.config["CERT_RENDER_ATTEMPTS"] = _env_int("CERT_RENDER_ATTEMPTS", 3)
    app.config["CERT_RENDER_RETRY_DELAY"] = _env_float("CERT_RENDER_RETRY_DELAY", 0.1)
    app.config["CERT_RENDER_CONCURRENCY"] = _env_int("CERT_RENDER_CONCURRENCY", 1)

    app.config["RATE_LIMIT_MAX"] = _env_int("RATE_LIMIT_MAX", 20)
    app.config["RATE_LIMIT_WINDOW_SECONDS"] = _env_int("RATE_LIMIT_WINDOW_SECONDS", 60)

    app.config["BREAKER_FAILURE_THRESHOLD"] = _env_int("BREAKER_FAILURE_THRESHOLD", 5)
    app.config["BREAKER_CONSECUTIVE_FAILURE_THRESHOLD"] = _env_int(
        "BREAKER_CONSECUTIVE_FAILURE_THRESHOLD", 5
    )
    app.config["BREAKER_SUCCESS_THRESHOLD"] = _env_int("BREAKER_SUCCESS_THRESHOLD", 3)
    app.config["BREAKER_RESET_TIMEOUT_SECONDS"] = _env_float(
        "BREAKER_RESET_TIMEOUT_SECONDS", 30
    )

    # Main campus gate
    app.config["ATTENDANCE_CENTER_LAT"] = _env_float("ATTENDANCE_CENTER_LAT", 24.8568496)
    app.config["ATTENDANCE_CENTER_LNG"] = _env_float("ATTENDANCE_CENTER_LNG", 67.2644237)
    app.config["ATTENDANCE_RADIUS_METERS"] = _env_float("ATTENDANCE_RADIUS_METERS", 500)

    app.config["LOG_LEVEL"] = os.getenv("LOG_LEVEL", "INFO")

    if config:
        app.config.update(config)

    _configure_logging(app.config["LOG_LEVEL"])
    app.logger.setLevel(logging.getLogger("devday").level)

    db.init_app(app)

    from .services.issuance import init_certificate_services

    init_certificate_services(app)

    @app.errorhandler(CertificateServiceError)
    def service_error(exc: CertificateServiceError):
        resp = jsonify(exc.to_dict())
        resp.status_code = exc.status_code
        if exc.retry_after is not None:
            resp.headers["Retry-After"] = str(exc.retry_after)
        return resp

    @app.get("/")
    def index():  # pragma: no cover - trivial route
        return jsonify({"msg": "DevDay certificate service"})

    @app.get("/health")
    def health():  # pragma: no cover - simple healthcheck
        return "OK", 200

    from .routes.attendance import bp as attendance_bp
    from .routes.certificates import bp as certificates_bp

    app.register_blueprint(attendance_bp)
    app.register_blueprint(certificates_bp)

    return app
