# packhouse/services/provisioning/fallback.py
import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from packhouse.models.provisioning.provisioning_models import ProvisioningSeed
from packhouse.services.lots.lot_writers import quality_control_form
from packhouse.services.stores import DocumentStore

log = logging.getLogger(__name__)


class FallbackRecorder:
    """
    Writes a placeholder QC lot into the legacy `lots` collection when
    provisioning fails, so quality review still lists the order.
    """

    def __init__(self, legacy_lots: DocumentStore):
        self.legacy_lots = legacy_lots

    def build(self, seed: ProvisioningSeed) -> dict:
        now = datetime.now(timezone.utc)
        return {
            "lotNumber": seed.order_number,
            "formData": quality_control_form(seed),
            "images": [],
            "status": "draft",
            "phase": "controller",
            "createdAt": now,
            "updatedAt": now,
            "syncedToFirebase": False,
        }

    def fallback(self, order) -> Tuple[Optional[str], Optional[str]]:
        """
        Best effort: returns (record_id, None) or (None, error). Never raises,
        the order is already committed when this runs.
        """
        seed = order if isinstance(order, ProvisioningSeed) else ProvisioningSeed.from_order(order)
        try:
            record_id = self.legacy_lots.create(self.build(seed))
        except Exception as e:
            log.error("legacy fallback for %s also failed: %s", seed.order_number, e)
            return None, str(e)

        log.warning("legacy QC lot %s created for %s as fallback", record_id, seed.order_number)
        return record_id, None
