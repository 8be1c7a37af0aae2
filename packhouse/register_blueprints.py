"""
Centralized Blueprint Registration
All blueprints MUST be registered inside register_all_blueprints(app)
"""
import logging

log = logging.getLogger(__name__)


def register_all_blueprints(app):

    # Root
    from packhouse.routes.root import root_bp
    app.register_blueprint(root_bp)

    # Orders + lot provisioning
    from packhouse.routes.orders import orders_bp
    app.register_blueprint(orders_bp)

    log.info("All blueprints registered")
