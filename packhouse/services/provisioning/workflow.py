# packhouse/services/provisioning/workflow.py
"""
One order submission, end to end:

    validating -> order_created -> provisioning -> all_linked | partially_linked -> done

Only validation and the order insert can fail the submission. Once the order
exists, every later problem is logged, recorded in the step log and queued
for reconciliation; the caller still gets "order created".
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from packhouse.models.provisioning.provisioning_models import (
    ProvisioningSeed,
    SubmissionReport,
    SubmissionState,
)
from packhouse.services.orders.order_service import OrderService
from packhouse.services.provisioning.fallback import FallbackRecorder
from packhouse.services.provisioning.linkback import LinkbackWriter
from packhouse.services.provisioning.provisioner import LotProvisioner
from packhouse.services.provisioning.step_log import LINKBACK_STEP, StepLog

log = logging.getLogger(__name__)

MODES = ("inline", "background")


class OrderSubmission:

    def __init__(
        self,
        orders: OrderService,
        provisioner: LotProvisioner,
        linkback: LinkbackWriter,
        fallback: FallbackRecorder,
        step_log: StepLog,
        mode: str = "inline",
        legacy_fallback: bool = True,
        background_workers: int = 4,
    ):
        if mode not in MODES:
            raise ValueError(f"unknown provisioning mode: {mode!r} (expected one of {MODES})")
        self.orders = orders
        self.provisioner = provisioner
        self.linkback = linkback
        self.fallback = fallback
        self.step_log = step_log
        self.mode = mode
        self.legacy_fallback = legacy_fallback
        self._background_workers = background_workers
        self._executor: Optional[ThreadPoolExecutor] = None

    # -------------------------
    # entry point
    # -------------------------
    def submit(self, payload, created_by: str = None) -> SubmissionReport:
        """
        Validate and create the order, then provision its lots.
        Raises OrderValidationError / StoreError only if the order itself
        could not be created.
        """
        model = self.orders.validate(payload)
        order = self.orders.intake(model, created_by)

        report = SubmissionReport(
            order_id=order["id"],
            order_number=order["orderNumber"],
            history=[SubmissionState.VALIDATING],
        )
        report.move(SubmissionState.ORDER_CREATED)

        if self.mode == "background":
            # the run is opened here so reconciliation sees the pass as in flight
            # before the worker starts
            self._open_run(ProvisioningSeed.from_order(order), report)
            accepted = report.snapshot()
            # detached so a dropped client connection cannot cut the pass short
            accepted.future = self._pool().submit(self._provision_detached, order, report)
            return accepted

        return self.provision_order(order, report)

    # -------------------------
    # provisioning pass
    # -------------------------
    def _open_run(self, seed: ProvisioningSeed, report: SubmissionReport) -> None:
        report.move(SubmissionState.PROVISIONING)
        report.run_id = self.step_log.open_run(seed, self.provisioner.variants, self.provisioner.mode)

    def provision_order(self, order: dict, report: SubmissionReport = None) -> SubmissionReport:
        """Run one provisioning pass for an existing order."""
        seed = ProvisioningSeed.from_order(order)
        if report is None:
            report = SubmissionReport(order_id=seed.order_id, order_number=seed.order_number)

        if report.state is not SubmissionState.PROVISIONING:
            self._open_run(seed, report)
        run_id = report.run_id

        result = self.provisioner.run_steps(
            seed,
            on_step=lambda outcome: self.step_log.record_step(run_id, outcome),
        )
        report.result = result
        for variant in result.failed:
            self.step_log.enqueue(run_id, seed, variant.value, result.outcomes[variant].error)

        err = self.linkback.linkback(seed.order_id, result)
        self.step_log.record_linkback(run_id, err is None, err)
        if err:
            self.step_log.enqueue(run_id, seed, LINKBACK_STEP, err)
        report.linked = err is None

        if result.ok and report.linked:
            report.move(SubmissionState.ALL_LINKED)
        else:
            report.move(SubmissionState.PARTIALLY_LINKED)

        if not result.ok and self.legacy_fallback:
            record_id, fallback_err = self.fallback.fallback(seed)
            self.step_log.record_fallback(run_id, record_id, fallback_err)
            report.fallback_attempted = True
            report.fallback_record_id = record_id

        self.step_log.close_run(
            run_id,
            report.state.value,
            "completed" if report.state is SubmissionState.ALL_LINKED else "partial",
        )
        report.move(SubmissionState.DONE)
        return report

    def provision_existing(self, order_id: str) -> SubmissionReport:
        return self.provision_order(self.orders.get_order(order_id))

    # -------------------------
    # background mode
    # -------------------------
    def _pool(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._background_workers,
                thread_name_prefix="provisioning",
            )
        return self._executor

    def _provision_detached(self, order: dict, report: SubmissionReport) -> SubmissionReport:
        try:
            return self.provision_order(order, report)
        except Exception:
            # nobody awaits this future in a request; make the failure visible
            log.exception("background provisioning for %s crashed", order.get("orderNumber"))
            raise

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
