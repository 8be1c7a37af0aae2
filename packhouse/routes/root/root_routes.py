# packhouse/routes/root/root_routes.py

from flask import Blueprint, current_app, jsonify

from packhouse.provisioning_ext import get_provisioning

# Root blueprint
root_bp = Blueprint("root", __name__)


# -----------------------------
# HEALTH (no auth: used by the load balancer)
# -----------------------------
@root_bp.get("/health")
def health():
    prov = get_provisioning()
    return jsonify({
        "ok": True,
        "database": prov is not None,
        "provisioningMode": current_app.config.get("PROVISIONING_MODE"),
    })
