# packhouse/app_factory.py

import os
from datetime import timedelta

from flask import Flask
from flask_cors import CORS
from flask_jwt_extended import JWTManager

from packhouse.app_config import configure_logging, load_config
from packhouse.cli import register_cli
from packhouse.mongo import init_mongo
from packhouse.mongo_safe import get_db
from packhouse.provisioning_ext import init_provisioning
from packhouse.register_blueprints import register_all_blueprints


def create_app(config=None, db=None):
    """
    `config` overrides env-derived settings; `db` injects a database object
    (anything indexable by collection name) instead of Flask-PyMongo.
    """
    app = Flask(__name__)

    # -------------------------
    # Config & logging
    # -------------------------
    load_config(app)
    if config:
        app.config.update(config)
    configure_logging(app)

    CORS(app, resources={r"/api/*": {"origins": "*"}})

    # -------------------------
    # Mongo
    # -------------------------
    if db is None:
        disable = app.config.get("DISABLE_MONGO") or os.getenv("DISABLE_MONGO", "0") == "1"
        if disable:
            app.logger.warning("Mongo disabled by DISABLE_MONGO=1")
        else:
            init_mongo(app)
            db = get_db()

    init_provisioning(app, db)

    # -------------------------
    # JWT
    # -------------------------
    app.config.setdefault("JWT_ACCESS_TOKEN_EXPIRES", timedelta(hours=6))
    app.config["JWT_TOKEN_LOCATION"] = ["headers"]
    app.config["JWT_HEADER_TYPE"] = "Bearer"
    JWTManager(app)

    # -------------------------
    # Blueprints & CLI
    # -------------------------
    register_all_blueprints(app)
    register_cli(app)

    return app
