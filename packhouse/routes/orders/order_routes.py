# packhouse/routes/orders/order_routes.py

import logging

from flask import Blueprint, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from packhouse.models.provisioning.provisioning_models import LINKAGE_FIELDS, LotVariant
from packhouse.provisioning_ext import get_provisioning
from packhouse.services.errors import OrderNotFound, OrderValidationError, StoreError

log = logging.getLogger(__name__)

# This MUST be named orders_bp so register_blueprints.py can import it.
orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


# -------------------- HELPERS --------------------

def _unavailable():
    return jsonify({"ok": False, "err": "database unavailable"}), 503


def _not_found(e):
    return jsonify({"ok": False, "err": str(e)}), 404


def _store_error(e):
    log.error("store error: %s", e)
    return jsonify({"ok": False, "err": "storage error"}), 502


def _store_for(prov, variant):
    return {
        LotVariant.PRODUCTION: prov.stores.production_lots,
        LotVariant.QUALITY_SHARED: prov.stores.quality_shared_lots,
        LotVariant.QUALITY_CONTROL: prov.stores.quality_control_lots,
        LotVariant.WASTE_TRACKING: prov.stores.waste_tracking_lots,
        LotVariant.INTAKE: prov.stores.intake_lots,
    }[variant]


# ---------------------------------------------------------
# POST /api/orders
# ---------------------------------------------------------
@orders_bp.post("")
@jwt_required()
def create_order():
    prov = get_provisioning()
    if prov is None:
        return _unavailable()

    try:
        report = prov.submission.submit(request.get_json(silent=True), created_by=get_jwt_identity())
    except OrderValidationError as e:
        return jsonify({"ok": False, "err": str(e), "details": e.details}), 400
    except StoreError as e:
        return _store_error(e)

    return jsonify({
        "ok": True,
        "orderId": report.order_id,
        "orderNumber": report.order_number,
        "provisioning": report.to_dict(),
    }), 201


# ---------------------------------------------------------
# GET /api/orders
# ---------------------------------------------------------
@orders_bp.get("")
@jwt_required()
def list_orders():
    prov = get_provisioning()
    if prov is None:
        return _unavailable()

    status = (request.args.get("status") or "").strip() or None
    limit = request.args.get("limit", 50, type=int)

    try:
        items = prov.orders.list_orders(status=status, limit=max(1, min(limit, 500)))
    except StoreError as e:
        return _store_error(e)
    return jsonify({"ok": True, "items": items})


# ---------------------------------------------------------
# GET /api/orders/<order_id>
# ---------------------------------------------------------
@orders_bp.get("/<order_id>")
@jwt_required()
def get_order(order_id):
    prov = get_provisioning()
    if prov is None:
        return _unavailable()

    try:
        return jsonify({"ok": True, "order": prov.orders.get_order(order_id)})
    except OrderNotFound as e:
        return _not_found(e)
    except StoreError as e:
        return _store_error(e)


# ---------------------------------------------------------
# PATCH /api/orders/<order_id>/status
# ---------------------------------------------------------
@orders_bp.patch("/<order_id>/status")
@jwt_required()
def change_status(order_id):
    prov = get_provisioning()
    if prov is None:
        return _unavailable()

    body = request.get_json(silent=True) or {}
    try:
        order = prov.orders.change_status(order_id, body.get("status"))
    except OrderValidationError as e:
        return jsonify({"ok": False, "err": str(e), "details": e.details}), 400
    except OrderNotFound as e:
        return _not_found(e)
    except StoreError as e:
        return _store_error(e)
    return jsonify({"ok": True, "order": order})


# ---------------------------------------------------------
# GET /api/orders/<order_id>/lots
# ---------------------------------------------------------
@orders_bp.get("/<order_id>/lots")
@jwt_required()
def linked_lots(order_id):
    prov = get_provisioning()
    if prov is None:
        return _unavailable()

    try:
        order = prov.orders.get_order(order_id)
        lots = {}
        for variant, field in LINKAGE_FIELDS.items():
            lot_id = order.get(field)
            lots[variant.value] = _store_for(prov, variant).get(lot_id) if lot_id else None
    except OrderNotFound as e:
        return _not_found(e)
    except StoreError as e:
        return _store_error(e)

    return jsonify({"ok": True, "orderNumber": order.get("orderNumber"), "lots": lots})


# ---------------------------------------------------------
# GET /api/orders/<order_id>/provisioning
# ---------------------------------------------------------
@orders_bp.get("/<order_id>/provisioning")
@jwt_required()
def provisioning_run(order_id):
    prov = get_provisioning()
    if prov is None:
        return _unavailable()

    try:
        prov.orders.get_order(order_id)
        run = prov.submission.step_log.latest_run(order_id)
    except OrderNotFound as e:
        return _not_found(e)
    except StoreError as e:
        return _store_error(e)

    return jsonify({"ok": True, "run": run})


# ---------------------------------------------------------
# POST /api/orders/<order_id>/reconcile
# ---------------------------------------------------------
@orders_bp.post("/<order_id>/reconcile")
@jwt_required()
def reconcile(order_id):
    prov = get_provisioning()
    if prov is None:
        return _unavailable()

    try:
        summary = prov.reconciler.reconcile_order(order_id)
    except OrderNotFound as e:
        return _not_found(e)
    except StoreError as e:
        return _store_error(e)

    return jsonify({"ok": True, **summary})
