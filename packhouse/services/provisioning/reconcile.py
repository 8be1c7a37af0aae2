# packhouse/services/provisioning/reconcile.py
"""
Retries what a provisioning pass left undone, using the step log as the
source of truth: only steps without a created record are re-run, then the
order is linked again.

A run still marked "running" belongs to a live pass and is left alone until
it goes stale.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from packhouse.models.provisioning.provisioning_models import (
    LINKAGE_FIELDS,
    LotVariant,
    ProvisioningSeed,
    SubmissionState,
)
from packhouse.services.errors import OrderNotFound, StoreError
from packhouse.services.orders.order_service import OrderService
from packhouse.services.provisioning.linkback import LinkbackWriter
from packhouse.services.provisioning.provisioner import LotProvisioner
from packhouse.services.provisioning.step_log import LINKBACK_STEP, StepLog

log = logging.getLogger(__name__)


class Reconciler:

    def __init__(
        self,
        orders: OrderService,
        provisioner: LotProvisioner,
        linkback: LinkbackWriter,
        step_log: StepLog,
        stale_after: float = 300.0,
    ):
        self.orders = orders
        self.provisioner = provisioner
        self.linkback = linkback
        self.step_log = step_log
        # a "running" run not touched for this many seconds is taken as crashed
        self.stale_after = stale_after

    def in_flight(self, run: Optional[dict]) -> bool:
        if run is None or run.get("status") != "running":
            return False
        touched = run.get("updatedAt") or run.get("createdAt")
        if not isinstance(touched, datetime):
            return False
        if touched.tzinfo is None:
            # pymongo hands back naive UTC datetimes
            touched = touched.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) - touched < timedelta(seconds=self.stale_after)

    def reconcile_order(self, order_id: str) -> dict:
        order = self.orders.get_order(order_id)
        run = self.step_log.latest_run(order_id)

        if self.in_flight(run):
            log.info("reconcile %s skipped: provisioning pass %s still running", order.get("orderNumber"), run["id"])
            return {
                "orderId": order_id,
                "orderNumber": order.get("orderNumber"),
                "runId": run["id"],
                "retried": [],
                "failed": [],
                "linkbackError": None,
                "linkage": {f: order.get(f) for f in LINKAGE_FIELDS.values()},
                "complete": False,
                "inFlight": True,
            }

        # ids already on the order count as done, whatever the log says
        known: Dict[LotVariant, str] = {
            v: order[f] for v, f in LINKAGE_FIELDS.items() if order.get(f)
        }

        if run is None:
            seed = ProvisioningSeed.from_order(order)
            run_id = self.step_log.open_run(seed, self.provisioner.variants, self.provisioner.mode)
            linkback_done = False
        else:
            seed = ProvisioningSeed.from_doc(run["seed"])
            run_id = run["id"]
            for name, step in (run.get("steps") or {}).items():
                if step.get("status") == "succeeded" and step.get("resultId"):
                    known.setdefault(LotVariant(name), step["resultId"])
            linkback_done = (run.get("linkback") or {}).get("status") == "succeeded"

        retry = [v for v in self.provisioner.variants if v not in known]
        failed: List[LotVariant] = []

        if retry:
            log.info("reconciling %s: retrying %s", seed.order_number, ", ".join(v.value for v in retry))
            result = self.provisioner.run_steps(
                seed,
                retry,
                on_step=lambda outcome: self.step_log.record_step(run_id, outcome),
            )
            for variant, outcome in result.outcomes.items():
                if outcome.ok:
                    known[variant] = outcome.record_id
                    self.step_log.resolve(seed.order_id, variant.value)
                else:
                    failed.append(variant)
                    self.step_log.enqueue(run_id, seed, variant.value, outcome.error)

        linkage = {f: known.get(v) for v, f in LINKAGE_FIELDS.items()}
        on_order = {f: order.get(f) for f in LINKAGE_FIELDS.values()}

        err = None
        if retry or not linkback_done or linkage != on_order:
            err = self.linkback.linkback(order_id, linkage)
            self.step_log.record_linkback(run_id, err is None, err)
        if err:
            self.step_log.enqueue(run_id, seed, LINKBACK_STEP, err)
        else:
            self.step_log.resolve(seed.order_id, LINKBACK_STEP)

        complete = not failed and err is None and len(known) == len(LINKAGE_FIELDS)
        state = SubmissionState.ALL_LINKED if complete else SubmissionState.PARTIALLY_LINKED
        self.step_log.close_run(run_id, state.value, "completed" if complete else "partial")

        return {
            "orderId": order_id,
            "orderNumber": seed.order_number,
            "runId": run_id,
            "retried": [v.value for v in retry],
            "failed": [v.value for v in failed],
            "linkbackError": err,
            "linkage": linkage,
            "complete": complete,
            "inFlight": False,
        }

    def reconcile_pending(self, limit: int = 50) -> List[dict]:
        """Reconcile every order that has pending queue entries; one bad order does not stop the batch."""
        order_ids = []
        for entry in self.step_log.pending(limit):
            oid = entry.get("orderId")
            if oid and oid not in order_ids:
                order_ids.append(oid)

        summary = []
        for oid in order_ids:
            try:
                summary.append(self.reconcile_order(oid))
            except (OrderNotFound, StoreError) as e:
                log.error("reconcile %s failed: %s", oid, e)
                summary.append({"orderId": oid, "complete": False, "error": str(e)})
        return summary
