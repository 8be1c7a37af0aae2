# packhouse/mongo.py
from __future__ import annotations

import logging
import os

from flask_pymongo import PyMongo

log = logging.getLogger(__name__)

mongo = PyMongo()


def init_mongo(app):
    """
    Initializes Flask-PyMongo.
    Requires app.config["MONGO_URI"] or env var MONGO_URI.
    Call this during app startup (create_app).
    """

    # If app.config doesn't have MONGO_URI, try env var
    if not app.config.get("MONGO_URI"):
        app.config["MONGO_URI"] = os.getenv("MONGO_URI")

    # If still missing, don't crash the app; log and leave mongo uninitialized
    if not app.config.get("MONGO_URI"):
        log.warning("MONGO_URI not set. Mongo will not be initialized.")
        return mongo

    timeout_ms = int(app.config.get("MONGO_TIMEOUT_MS") or 5000)

    try:
        mongo.init_app(
            app,
            serverSelectionTimeoutMS=timeout_ms,
            socketTimeoutMS=timeout_ms,
            connectTimeoutMS=timeout_ms,
        )

        # db is None when the URI carries no database name
        if mongo.db is None:
            log.warning("MONGO_URI has no database name; Mongo collections unavailable")
        else:
            log.info("Mongo initialized (db=%s)", mongo.db.name)
    except Exception as e:
        # don't crash startup; the API answers 503 until Mongo is reachable
        log.warning("Mongo init failed: %s", e)

    return mongo
