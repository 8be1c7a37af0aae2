# packhouse/services/orders/order_service.py

import logging
import random
import string
import time
from datetime import datetime, timezone

from pydantic import ValidationError

from packhouse.models.orders.order_models import OrderCreateModel, OrderStatusUpdateModel
from packhouse.models.provisioning.provisioning_models import LINKAGE_FIELDS
from packhouse.services.errors import OrderNotFound, OrderValidationError
from packhouse.services.stores import DocumentStore

log = logging.getLogger(__name__)

_B36 = string.digits + string.ascii_uppercase


def _base36(n: int) -> str:
    if n == 0:
        return "0"
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(_B36[r])
    return "".join(reversed(out))


def _validation_error(e: ValidationError) -> OrderValidationError:
    details = [
        {"field": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
        for err in e.errors()
    ]
    first = details[0] if details else {"field": "-", "msg": "invalid order"}
    return OrderValidationError(f"{first['field']}: {first['msg']}", details)


class OrderService:

    def __init__(self, store: DocumentStore):
        self.store = store

    # =========================
    # ID GENERATORS
    # =========================
    @staticmethod
    def generate_order_number():
        # ORD-<base36 epoch millis>
        return f"ORD-{_base36(int(time.time() * 1000))}"

    @staticmethod
    def generate_item_id():
        suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
        return f"item-{int(time.time() * 1000)}-{suffix}"

    # =========================
    # CREATE ORDER (intake)
    # =========================
    @staticmethod
    def validate(payload) -> OrderCreateModel:
        if isinstance(payload, OrderCreateModel):
            return payload
        if not isinstance(payload, dict):
            raise OrderValidationError("order payload must be an object")
        try:
            return OrderCreateModel(**payload)
        except ValidationError as e:
            raise _validation_error(e) from e

    def build_order_doc(self, model: OrderCreateModel, created_by: str = None) -> dict:
        now = datetime.now(timezone.utc)
        delivery = model.requestedDeliveryDate or now
        if delivery.tzinfo is None:
            delivery = delivery.replace(tzinfo=timezone.utc)

        products = [
            {
                "id": item.id or self.generate_item_id(),
                "name": item.name,
                "quantity": item.quantity,
                "unit": item.unit,
                "processingTime": item.processingTime,
                "pricePerUnit": 0,
                "totalPrice": 0,
                "completed": False,
                "lotNumber": item.lotNumber or "",
                "caliber": item.caliber or "",
            }
            for item in model.items
        ]

        doc = {
            "orderNumber": model.orderNumber or self.generate_order_number(),
            "clientName": model.clientName,
            "clientEmail": model.clientEmail or "N/A",
            "clientPhone": model.clientPhone or "",
            # dates stay ISO strings; created/updated are real timestamps for ordering
            "orderDate": now.isoformat(),
            "requestedDeliveryDate": delivery.isoformat(),
            "status": "pending",
            "priority": model.priority,
            "products": products,
            "totalProcessingTime": sum(p["processingTime"] for p in products),
            "progress": 0,
            "totalAmount": 0,
            "shippingAddress": {
                "street": "",
                "city": "",
                "state": "",
                "zipCode": "",
                "country": "",
            },
            "paymentStatus": "pending",
            "notes": model.notes or "",
            "createdBy": created_by or "",
            "createdAt": now,
            "updatedAt": now,
        }
        for linkage_field in LINKAGE_FIELDS.values():
            doc[linkage_field] = None
        return doc

    def intake(self, payload, created_by: str = None) -> dict:
        """
        Validate and persist one order. Returns the stored order (with `id`).
        Raises OrderValidationError before any write; StoreError if the insert fails.
        """
        model = self.validate(payload)
        doc = self.build_order_doc(model, created_by)
        order_id = self.store.create(doc)
        log.info("order created id=%s orderNumber=%s client=%s", order_id, doc["orderNumber"], doc["clientName"])
        return {**doc, "id": order_id}

    def create_order(self, payload, created_by: str = None) -> str:
        return self.intake(payload, created_by)["id"]

    # =========================
    # READ
    # =========================
    def get_order(self, order_id: str) -> dict:
        order = self.store.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def list_orders(self, status: str = None, limit: int = 50):
        query = {"status": status} if status else {}
        return self.store.find(query, sort=[("createdAt", -1)], limit=limit)

    # =========================
    # STATUS
    # =========================
    def change_status(self, order_id: str, status: str) -> dict:
        try:
            update = OrderStatusUpdateModel(status=status)
        except ValidationError as e:
            raise _validation_error(e) from e

        fields = {"status": update.status, "updatedAt": datetime.now(timezone.utc)}
        if update.status == "delivered":
            fields["actualDeliveryDate"] = fields["updatedAt"].isoformat()

        if not self.store.patch(order_id, fields):
            raise OrderNotFound(order_id)
        log.info("order %s status -> %s", order_id, update.status)
        return self.get_order(order_id)
