# packhouse/services/provisioning/step_log.py
"""
Persisted saga log for provisioning passes, plus the pending-reconciliation
queue fed from it.

Writes here are best effort: a log that cannot be written is reported and
never changes what the provisioning pass did.
"""
import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from packhouse.models.provisioning.provisioning_models import LotVariant, ProvisioningSeed, StepOutcome
from packhouse.services.errors import StoreError
from packhouse.services.stores import DocumentStore

log = logging.getLogger(__name__)

LINKBACK_STEP = "linkback"


def _now():
    return datetime.now(timezone.utc)


class StepLog:

    def __init__(self, runs: DocumentStore, queue: DocumentStore):
        self.runs = runs
        self.queue = queue

    # -------------------------
    # runs
    # -------------------------
    def open_run(self, seed: ProvisioningSeed, variants: Iterable[LotVariant], mode: str = "sequential") -> Optional[str]:
        now = _now()
        doc = {
            "orderId": seed.order_id,
            "orderNumber": seed.order_number,
            "seed": seed.to_doc(),
            "mode": mode,
            "state": "provisioning",
            "status": "running",
            "steps": {
                v.value: {"status": "pending", "resultId": None, "error": None, "attempts": 0}
                for v in variants
            },
            "linkback": {"status": "pending", "error": None},
            "fallback": {"status": "skipped", "recordId": None, "error": None},
            "createdAt": now,
            "updatedAt": now,
        }
        try:
            return self.runs.create(doc)
        except StoreError as e:
            log.error("step log: cannot open run for %s: %s", seed.order_number, e)
            return None

    def record_step(self, run_id: Optional[str], outcome: StepOutcome) -> None:
        if not run_id:
            return
        prefix = f"steps.{outcome.variant.value}"
        self._update_run(run_id, {
            "$set": {
                f"{prefix}.status": "succeeded" if outcome.ok else "failed",
                f"{prefix}.resultId": outcome.record_id,
                f"{prefix}.error": outcome.error,
                f"{prefix}.updatedAt": _now(),
                "updatedAt": _now(),
            },
            "$inc": {f"{prefix}.attempts": 1},
        })

    def record_linkback(self, run_id: Optional[str], ok: bool, error: str = None) -> None:
        if not run_id:
            return
        self._update_run(run_id, {"$set": {
            "linkback": {"status": "succeeded" if ok else "failed", "error": error},
            "updatedAt": _now(),
        }})

    def record_fallback(self, run_id: Optional[str], record_id: str = None, error: str = None) -> None:
        if not run_id:
            return
        self._update_run(run_id, {"$set": {
            "fallback": {
                "status": "succeeded" if record_id else "failed",
                "recordId": record_id,
                "error": error,
            },
            "updatedAt": _now(),
        }})

    def close_run(self, run_id: Optional[str], state: str, status: str) -> None:
        if not run_id:
            return
        self._update_run(run_id, {"$set": {"state": state, "status": status, "updatedAt": _now()}})

    def latest_run(self, order_id: str) -> Optional[dict]:
        rows = self.runs.find({"orderId": order_id}, sort=[("createdAt", -1)], limit=1)
        return rows[0] if rows else None

    def _update_run(self, run_id, update):
        try:
            self.runs.update(run_id, update)
        except StoreError as e:
            log.error("step log: cannot update run %s: %s", run_id, e)

    # -------------------------
    # reconciliation queue
    # -------------------------
    @staticmethod
    def _queue_key(order_id: str, step: str) -> str:
        return f"{order_id}:{step}"

    def enqueue(self, run_id: Optional[str], seed: ProvisioningSeed, step: str, error: str = None) -> None:
        now = _now()
        try:
            self.queue.upsert(self._queue_key(seed.order_id, step), {
                "$set": {
                    "runId": run_id,
                    "status": "pending",
                    "lastError": error,
                    "updatedAt": now,
                },
                "$setOnInsert": {
                    "orderId": seed.order_id,
                    "orderNumber": seed.order_number,
                    "step": step,
                    "createdAt": now,
                },
                "$inc": {"attempts": 1},
            })
        except StoreError as e:
            log.error("reconcile queue: cannot enqueue %s/%s: %s", seed.order_number, step, e)

    def resolve(self, order_id: str, step: str) -> None:
        try:
            self.queue.update(self._queue_key(order_id, step), {
                "$set": {"status": "done", "lastError": None, "updatedAt": _now()},
            })
        except StoreError as e:
            log.error("reconcile queue: cannot resolve %s/%s: %s", order_id, step, e)

    def pending(self, limit: int = 50) -> List[dict]:
        return self.queue.find({"status": "pending"}, sort=[("createdAt", 1)], limit=limit)
