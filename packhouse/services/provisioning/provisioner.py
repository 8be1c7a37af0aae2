# packhouse/services/provisioning/provisioner.py
"""
Creates the five lot records that hang off a client order.

Steps are independent: a failing step is recorded and the pass carries on.
Nothing already written is undone; the caller decides what a failed pass
means (linkback, fallback, reconciliation).
"""
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Iterable, List, Optional

from packhouse.models.provisioning.provisioning_models import (
    LotVariant,
    ProvisioningResult,
    ProvisioningSeed,
    StepOutcome,
)
from packhouse.services.errors import StoreError
from packhouse.services.lots.lot_writers import RecordWriter

log = logging.getLogger(__name__)

StepCallback = Callable[[StepOutcome], None]


class LotProvisioner:

    def __init__(self, writers: List[RecordWriter], concurrent: bool = False, step_timeout: float = 10.0):
        self.writers = writers
        self.concurrent = concurrent
        self.step_timeout = step_timeout
        if concurrent:
            # a timed-out write can still land later; keyed upserts let a retry
            # meet it instead of creating a second record
            for w in writers:
                w.idempotent = True

    @property
    def mode(self) -> str:
        return "concurrent" if self.concurrent else "sequential"

    @property
    def variants(self) -> List[LotVariant]:
        return [w.variant for w in self.writers]

    def provision(self, order: dict, on_step: Optional[StepCallback] = None) -> ProvisioningResult:
        seed = ProvisioningSeed.from_order(order)
        return self.run_steps(seed, on_step=on_step)

    def run_steps(
        self,
        seed: ProvisioningSeed,
        variants: Optional[Iterable[LotVariant]] = None,
        on_step: Optional[StepCallback] = None,
    ) -> ProvisioningResult:
        """Run the given steps (all of them by default) in provisioning order."""
        wanted = set(variants) if variants is not None else None
        writers = [w for w in self.writers if wanted is None or w.variant in wanted]

        result = ProvisioningResult(order_number=seed.order_number)
        if self.concurrent and len(writers) > 1:
            outcomes = self._run_concurrent(writers, seed)
        else:
            outcomes = (self._run_one(w, seed) for w in writers)

        for outcome in outcomes:
            result.add(outcome)
            if on_step is not None:
                on_step(outcome)

        if result.ok:
            log.info("provisioning %s: %d/%d lots created", seed.order_number, len(result.outcomes), len(writers))
        else:
            log.error(
                "provisioning %s failed for %s",
                seed.order_number,
                ", ".join(v.value for v in result.failed),
            )
        return result

    def _run_one(self, writer: RecordWriter, seed: ProvisioningSeed) -> StepOutcome:
        try:
            record_id = writer.write(seed)
        except StoreError as e:
            log.warning("lot %s for %s not created: %s", writer.variant.value, seed.order_number, e)
            return StepOutcome(writer.variant, error=str(e))
        except Exception as e:
            log.exception("lot %s for %s crashed", writer.variant.value, seed.order_number)
            return StepOutcome(writer.variant, error=f"{type(e).__name__}: {e}")
        log.debug("lot %s for %s created id=%s", writer.variant.value, seed.order_number, record_id)
        return StepOutcome(writer.variant, record_id=record_id)

    def _run_concurrent(self, writers: List[RecordWriter], seed: ProvisioningSeed) -> List[StepOutcome]:
        # a hung store must not hold the join: don't wait on shutdown
        pool = ThreadPoolExecutor(max_workers=len(writers), thread_name_prefix="lot-writer")
        try:
            futures = [(w, pool.submit(self._run_one, w, seed)) for w in writers]
            done, _ = wait([f for _, f in futures], timeout=self.step_timeout)

            outcomes = []
            for writer, fut in futures:
                if fut in done:
                    outcomes.append(fut.result())
                    continue
                log.warning("lot %s for %s timed out after %ss", writer.variant.value, seed.order_number, self.step_timeout)
                outcomes.append(StepOutcome(writer.variant, error=f"timed out after {self.step_timeout}s"))
                fut.add_done_callback(self._late_write_logger(writer, seed))
            return outcomes
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    @staticmethod
    def _late_write_logger(writer: RecordWriter, seed: ProvisioningSeed):
        def _log(fut):
            if fut.cancelled():
                return
            outcome = fut.result()
            if outcome.ok:
                log.warning(
                    "lot %s for %s landed after its timeout as %s",
                    writer.variant.value, seed.order_number, outcome.record_id,
                )
        return _log
