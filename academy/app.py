import atexit
import logging
import os

from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def create_app():
    app = Flask(__name__, template_folder="templates")
    app.secret_key = os.getenv("SECRET_KEY", "dev")
    app.config["PREFERRED_URL_SCHEME"] = "https"

    DB_USER = os.getenv("DB_USER", "academy")
    DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
    DB_HOST = os.getenv("DB_HOST", "db")
    DB_NAME = os.getenv("DB_NAME", "academy")
    DATABASE_URL = os.getenv(
        "DATABASE_URL",
        f"postgresql+psycopg2://{DB_USER}:{DB_PASSWORD}@{DB_HOST}/{DB_NAME}",
    )

    app.config["SQLALCHEMY_DATABASE_URI"] = DATABASE_URL
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    app.config["SITE_ROOT"] = os.getenv("SITE_ROOT", "/srv")
    app.config["ARTIFACT_PUBLIC_BASE_URL"] = os.getenv(
        "ARTIFACT_PUBLIC_BASE_URL", "/media"
    ).rstrip("/")
    app.config["CLIENT_URL"] = os.getenv(
        "CLIENT_URL", "http://localhost:3000"
    ).rstrip("/")
    app.config["ASSET_FETCH_TIMEOUT"] = float(os.getenv("ASSET_FETCH_TIMEOUT", "10"))
    app.config["NOTIFY_SYNC"] = _env_flag("NOTIFY_SYNC")
    app.config["WEBINAR_SWEEP_INTERVAL_SECONDS"] = int(
        os.getenv("WEBINAR_SWEEP_INTERVAL_SECONDS", "300")
    )

    for key in (
        "SMTP_HOST",
        "SMTP_PORT",
        "SMTP_USER",
        "SMTP_PASS",
        "SMTP_FROM_DEFAULT",
        "SMTP_FROM_NAME",
    ):
        app.config[key] = os.getenv(key)

    app.logger.setLevel(logging.INFO)

    db.init_app(app)

    from . import models  # noqa: F401  registers mappers
    from .shared.storage import LocalArtifactStore
    from .services.notifications import Notifier
    from .services.webinar_sweep import WebinarCertificateSweeper

    app.extensions["academy.artifacts"] = LocalArtifactStore(
        os.path.join(app.config["SITE_ROOT"], "artifacts"),
        app.config["ARTIFACT_PUBLIC_BASE_URL"],
    )
    notifier = Notifier(app, sync=app.config["NOTIFY_SYNC"])
    app.extensions["academy.notifier"] = notifier
    sweeper = WebinarCertificateSweeper(
        app, interval=app.config["WEBINAR_SWEEP_INTERVAL_SECONDS"]
    )
    app.extensions["academy.sweeper"] = sweeper

    @app.get("/health")
    def health():  # pragma: no cover - simple healthcheck
        return jsonify({"ok": True}), 200

    from .routes.progress import bp as progress_bp
    from .routes.certificates import bp as certificates_bp
    from .routes.admin_certificates import bp as admin_certificates_bp
    from .routes.cert_templates import bp as cert_templates_bp

    app.register_blueprint(progress_bp)
    app.register_blueprint(certificates_bp)
    app.register_blueprint(admin_certificates_bp)
    app.register_blueprint(cert_templates_bp)

    if _env_flag("WEBINAR_SWEEP_ENABLED"):
        sweeper.start()

    def _shutdown() -> None:
        sweeper.stop()
        notifier.shutdown()

    atexit.register(_shutdown)

    return app
