# packhouse/app_config.py

import logging
import os


def _env_flag(name, default="0"):
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def load_config(app):
    """
    Load all Flask configuration in a clean centralized way.
    """
    # ------------------------------
    # Mongo
    # ------------------------------
    app.config["MONGO_URI"] = os.getenv(
        "MONGO_URI",
        "mongodb://localhost:27017/packhouse_db"
    )
    app.config["MONGO_TIMEOUT_MS"] = int(os.getenv("MONGO_TIMEOUT_MS", "5000"))

    # ------------------------------
    # Collections (one store per record family)
    # ------------------------------
    app.config["COLLECTION_ORDERS"] = os.getenv("COLLECTION_ORDERS", "client_orders")
    app.config["COLLECTION_PRODUCTION_LOTS"] = os.getenv("COLLECTION_PRODUCTION_LOTS", "shared_lots")
    app.config["COLLECTION_QUALITY_SHARED_LOTS"] = os.getenv("COLLECTION_QUALITY_SHARED_LOTS", "shared_lots")
    app.config["COLLECTION_QUALITY_CONTROL_LOTS"] = os.getenv("COLLECTION_QUALITY_CONTROL_LOTS", "quality_control_lots")
    app.config["COLLECTION_WASTE_TRACKING_LOTS"] = os.getenv("COLLECTION_WASTE_TRACKING_LOTS", "shared_lots")
    app.config["COLLECTION_INTAKE_LOTS"] = os.getenv("COLLECTION_INTAKE_LOTS", "multi_lots")
    app.config["COLLECTION_LEGACY_LOTS"] = os.getenv("COLLECTION_LEGACY_LOTS", "lots")
    app.config["COLLECTION_PROVISIONING_RUNS"] = os.getenv("COLLECTION_PROVISIONING_RUNS", "provisioning_runs")
    app.config["COLLECTION_PROVISIONING_QUEUE"] = os.getenv("COLLECTION_PROVISIONING_QUEUE", "provisioning_queue")

    # ------------------------------
    # Provisioning
    # ------------------------------
    # "inline" runs provisioning inside the request, "background" detaches it
    app.config["PROVISIONING_MODE"] = os.getenv("PROVISIONING_MODE", "inline")
    app.config["PROVISIONING_CONCURRENT"] = _env_flag("PROVISIONING_CONCURRENT")
    app.config["PROVISIONING_STEP_TIMEOUT"] = float(os.getenv("PROVISIONING_STEP_TIMEOUT", "10"))
    app.config["PROVISIONING_IDEMPOTENT"] = _env_flag("PROVISIONING_IDEMPOTENT")
    app.config["PROVISIONING_LEGACY_FALLBACK"] = _env_flag("PROVISIONING_LEGACY_FALLBACK", "1")
    # seconds before a "running" pass counts as crashed and may be reconciled
    app.config["PROVISIONING_STALE_AFTER"] = float(os.getenv("PROVISIONING_STALE_AFTER", "300"))

    # ------------------------------
    # Security Keys
    # ------------------------------
    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", os.urandom(24))
    app.config["JWT_SECRET_KEY"] = os.getenv("JWT_SECRET_KEY", "change-me")

    # ------------------------------
    # Logging
    # ------------------------------
    app.config["LOG_LEVEL"] = os.getenv("LOG_LEVEL", "INFO").upper()


def configure_logging(app):
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logging.getLogger("packhouse").setLevel(level)
    app.logger.setLevel(level)
