import os


def _int(name, default):
    return int(os.environ.get(name, default))


def _float(name, default):
    return float(os.environ.get(name, default))


def _flag(name, default):
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Base configuration. All values from env vars."""

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-change-me")

    # Gemini AI
    GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY", "")
    GEMINI_ANALYSIS_MODEL = os.environ.get("GEMINI_ANALYSIS_MODEL", "gemini-2.5-flash")
    GEMINI_OPTIMIZATION_MODEL = os.environ.get(
        "GEMINI_OPTIMIZATION_MODEL", "gemini-2.5-flash-image-preview"
    )
    REMOTE_CALL_TIMEOUT = _float("REMOTE_CALL_TIMEOUT", "60")

    # Apify scraper
    APIFY_TOKEN = os.environ.get("APIFY_TOKEN", "")
    APIFY_ACTOR = os.environ.get("APIFY_ACTOR", "tri_angle/airbnb-rooms-urls-scraper")
    APIFY_BASE_URL = os.environ.get("APIFY_BASE_URL", "https://api.apify.com/v2")
    SCRAPE_TIMEOUT = _float("SCRAPE_TIMEOUT", "120")

    # Batch execution
    BATCH_SIZE_THRESHOLD = _int("BATCH_SIZE_THRESHOLD", "5")
    BATCH_POLL_INTERVAL = _float("BATCH_POLL_INTERVAL", "30")
    BATCH_MAX_POLL_ATTEMPTS = _int("BATCH_MAX_POLL_ATTEMPTS", "2880")  # 24h at 30s
    BATCH_WORKERS = _int("BATCH_WORKERS", "4")

    # Jobs
    MAX_IMAGES_PER_JOB = _int("MAX_IMAGES_PER_JOB", "10")
    JOB_WORKERS = _int("JOB_WORKERS", "4")
    IMAGE_WORKERS = _int("IMAGE_WORKERS", "4")
    RETRY_ATTEMPTS = _int("RETRY_ATTEMPTS", "3")
    RETRY_BASE_DELAY = _float("RETRY_BASE_DELAY", "2")
    JOB_TTL_SECONDS = _int("JOB_TTL_SECONDS", "86400")
    JOB_RETENTION_SECONDS = _int("JOB_RETENTION_SECONDS", "86400")
    SWEEP_INTERVAL_SECONDS = _float("SWEEP_INTERVAL_SECONDS", "3600")
    EXPIRY_SWEEP_ENABLED = _flag("EXPIRY_SWEEP_ENABLED", "true")


class DevelopmentConfig(Config):
    DEBUG = True


class ProductionConfig(Config):
    DEBUG = False
    PREFERRED_URL_SCHEME = "https"

    @classmethod
    def init_app(cls, app):
        import logging
        import sys

        assert app.config["SECRET_KEY"] != "dev-secret-change-me", (
            "SECRET_KEY must be set in production"
        )
        assert app.config["GEMINI_API_KEY"], "GEMINI_API_KEY must be set"
        assert app.config["APIFY_TOKEN"], "APIFY_TOKEN must be set"

        # Stream logs to stdout for the container runtime
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(logging.INFO)
        formatter = logging.Formatter(
            "[%(asctime)s] %(levelname)s in %(module)s: %(message)s"
        )
        handler.setFormatter(formatter)
        app.logger.addHandler(handler)
        app.logger.setLevel(logging.INFO)

        # Pipeline threads log through the package logger, not app.logger
        package_logger = logging.getLogger("listing_optimizer")
        package_logger.addHandler(handler)
        package_logger.setLevel(logging.INFO)
        app.logger.info("Listing optimizer starting in production mode")


class TestingConfig(Config):
    TESTING = True
    BATCH_POLL_INTERVAL = 0.01
    RETRY_BASE_DELAY = 0
    EXPIRY_SWEEP_ENABLED = False


config_map = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}
