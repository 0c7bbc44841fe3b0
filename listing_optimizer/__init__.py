import os

from dotenv import load_dotenv
from flask import Flask

load_dotenv()


def create_app(config_name=None, **engine_overrides):
    """Application factory.

    ``engine_overrides`` replace the remote-backed collaborators (scraper,
    classifier, optimizer, fetch_image, batch_backend, repository).
    """
    flask_app = Flask(__name__)

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV")
        if not config_name:
            # Default to production on managed platforms to avoid accidental
            # debug mode/weak defaults when env selection is omitted.
            if os.environ.get("PORT"):
                config_name = "production"
            else:
                config_name = "development"

    from listing_optimizer.config import config_map

    config_cls = config_map.get(config_name, config_map["development"])
    flask_app.config.from_object(config_cls)

    if hasattr(config_cls, "init_app"):
        config_cls.init_app(flask_app)

    from listing_optimizer.extensions import init_engine

    init_engine(flask_app, **engine_overrides)

    # Register blueprints
    from listing_optimizer.blueprints.api import api_bp

    flask_app.register_blueprint(api_bp, url_prefix="/api/v1")

    # Register CLI commands
    from listing_optimizer.cli import register_cli

    register_cli(flask_app)

    @flask_app.route("/health")
    def health():
        from listing_optimizer.extensions import get_orchestrator

        checks = {"status": "ok"}
        try:
            checks["jobs"] = get_orchestrator().stats()
        except Exception:
            flask_app.logger.exception("Health check job store probe failed")
            checks["jobs"] = "error"
            checks["status"] = "degraded"
        status_code = 200 if checks["status"] == "ok" else 503
        return checks, status_code

    return flask_app
