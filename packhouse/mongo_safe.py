# packhouse/mongo_safe.py
from __future__ import annotations

import logging
import os
from typing import Optional

log = logging.getLogger(__name__)

# Prevent spamming logs on every request
_WARNED = False


def is_mongo_enabled() -> bool:
    """
    Mongo is enabled unless DISABLE_MONGO=1.
    """
    return os.getenv("DISABLE_MONGO", "0") != "1"


def get_db() -> Optional[object]:
    """
    Returns mongo.db if initialized, else None.
    Safe to call anywhere (won't crash at import time).
    """
    global _WARNED

    if not is_mongo_enabled():
        return None

    from packhouse.mongo import mongo  # Flask-PyMongo instance
    db = getattr(mongo, "db", None)

    # If init_mongo(app) wasn't called, db will be None
    if db is None and not _WARNED:
        _WARNED = True
        log.warning("Mongo is enabled by env, but not initialized (mongo.db is None).")
    return db
