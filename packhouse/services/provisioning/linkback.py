# packhouse/services/provisioning/linkback.py
import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from packhouse.models.provisioning.provisioning_models import ProvisioningResult
from packhouse.services.errors import StoreError
from packhouse.services.stores import DocumentStore

log = logging.getLogger(__name__)


class LinkbackWriter:
    """Writes the ids of the created lots back onto the order."""

    def __init__(self, orders: DocumentStore):
        self.orders = orders

    def linkback(self, order_id: str, results) -> Optional[str]:
        """
        Patch the order's linkage fields. `results` is a ProvisioningResult
        (failed steps become null) or a ready field -> id mapping.
        Returns None on success, the error text otherwise. Never raises.
        """
        if isinstance(results, ProvisioningResult):
            fields: Dict[str, Optional[str]] = results.linkage_fields()
        else:
            fields = dict(results)
        fields["updatedAt"] = datetime.now(timezone.utc)

        try:
            matched = self.orders.patch(order_id, fields)
        except StoreError as e:
            log.error("linkback for order %s failed: %s", order_id, e)
            return str(e)

        if not matched:
            log.error("linkback for order %s failed: order not found", order_id)
            return "order not found"

        linked = sum(1 for k, v in fields.items() if k != "updatedAt" and v)
        log.info("order %s linked to %d lots", order_id, linked)
        return None
