# packhouse/provisioning_ext.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from flask import current_app

from packhouse.services.lots.lot_writers import build_writers
from packhouse.services.orders.order_service import OrderService
from packhouse.services.provisioning.fallback import FallbackRecorder
from packhouse.services.provisioning.linkback import LinkbackWriter
from packhouse.services.provisioning.provisioner import LotProvisioner
from packhouse.services.provisioning.reconcile import Reconciler
from packhouse.services.provisioning.step_log import StepLog
from packhouse.services.provisioning.workflow import OrderSubmission
from packhouse.services.stores import ProvisioningStores, build_stores

log = logging.getLogger(__name__)

EXTENSION_KEY = "packhouse.provisioning"


@dataclass
class Provisioning:
    stores: ProvisioningStores
    orders: OrderService
    submission: OrderSubmission
    reconciler: Reconciler


def build_provisioning(db, config) -> Provisioning:
    stores = build_stores(db, config)
    orders = OrderService(stores.orders)
    provisioner = LotProvisioner(
        build_writers(stores, idempotent=bool(config.get("PROVISIONING_IDEMPOTENT"))),
        concurrent=bool(config.get("PROVISIONING_CONCURRENT")),
        step_timeout=float(config.get("PROVISIONING_STEP_TIMEOUT") or 10),
    )
    linkback = LinkbackWriter(stores.orders)
    step_log = StepLog(stores.runs, stores.queue)

    submission = OrderSubmission(
        orders=orders,
        provisioner=provisioner,
        linkback=linkback,
        fallback=FallbackRecorder(stores.legacy_lots),
        step_log=step_log,
        mode=config.get("PROVISIONING_MODE") or "inline",
        legacy_fallback=bool(config.get("PROVISIONING_LEGACY_FALLBACK", True)),
    )
    reconciler = Reconciler(
        orders,
        provisioner,
        linkback,
        step_log,
        stale_after=float(config.get("PROVISIONING_STALE_AFTER") or 300),
    )
    return Provisioning(stores=stores, orders=orders, submission=submission, reconciler=reconciler)


def init_provisioning(app, db) -> Optional[Provisioning]:
    """
    Wire stores and services onto the app.
    With no database (Mongo disabled or not initialized) the API answers 503.
    """
    if db is None:
        log.warning("No database: order provisioning disabled")
        app.extensions[EXTENSION_KEY] = None
        return None

    prov = build_provisioning(db, app.config)
    app.extensions[EXTENSION_KEY] = prov
    log.info(
        "Provisioning ready (mode=%s, writers=%s, idempotent=%s)",
        prov.submission.mode,
        prov.submission.provisioner.mode,
        bool(app.config.get("PROVISIONING_IDEMPOTENT")),
    )
    return prov


def get_provisioning() -> Optional[Provisioning]:
    return current_app.extensions.get(EXTENSION_KEY)
