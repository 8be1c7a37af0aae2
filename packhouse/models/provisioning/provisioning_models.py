# packhouse/models/provisioning/provisioning_models.py
from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional


class LotVariant(str, Enum):
    # declaration order is the provisioning order
    PRODUCTION = "production"
    QUALITY_SHARED = "quality_shared"
    QUALITY_CONTROL = "quality_control"
    WASTE_TRACKING = "waste_tracking"
    INTAKE = "intake"


# Order field that points at each variant's record
LINKAGE_FIELDS: Dict[LotVariant, str] = {
    LotVariant.PRODUCTION: "linkedProductionLotId",
    LotVariant.QUALITY_SHARED: "linkedQualitySharedLotId",
    LotVariant.QUALITY_CONTROL: "linkedQualityLotId",
    LotVariant.WASTE_TRACKING: "linkedWasteTrackingLotId",
    LotVariant.INTAKE: "linkedNewEntryLotId",
}


class SubmissionState(str, Enum):
    VALIDATING = "validating"
    ORDER_CREATED = "order_created"
    PROVISIONING = "provisioning"
    ALL_LINKED = "all_linked"
    PARTIALLY_LINKED = "partially_linked"
    DONE = "done"


DEFAULT_PRODUCT = "AVOCAT"


@dataclass(frozen=True)
class ProvisioningSeed:
    """Everything a record writer needs to build its default payload."""

    order_id: str
    order_number: str
    product_name: str
    day: str  # YYYY-MM-DD
    year: int

    @classmethod
    def from_order(cls, order: dict, now: Optional[datetime] = None) -> "ProvisioningSeed":
        now = now or datetime.now(timezone.utc)
        products = order.get("products") or []
        first = products[0] if products else {}
        return cls(
            order_id=str(order.get("id") or ""),
            order_number=order["orderNumber"],
            product_name=(first.get("name") or DEFAULT_PRODUCT),
            day=now.strftime("%Y-%m-%d"),
            year=now.year,
        )

    @property
    def campaign(self) -> str:
        return f"{self.year}-{self.year + 1}"

    def to_doc(self) -> dict:
        return {
            "orderId": self.order_id,
            "orderNumber": self.order_number,
            "productName": self.product_name,
            "day": self.day,
            "year": self.year,
        }

    @classmethod
    def from_doc(cls, doc: dict) -> "ProvisioningSeed":
        return cls(
            order_id=doc["orderId"],
            order_number=doc["orderNumber"],
            product_name=doc.get("productName") or DEFAULT_PRODUCT,
            day=doc["day"],
            year=int(doc["year"]),
        )


@dataclass
class StepOutcome:
    variant: LotVariant
    record_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.record_id is not None and self.error is None


@dataclass
class ProvisioningResult:
    """variant -> (id | error) for one provisioning pass."""

    order_number: str
    outcomes: Dict[LotVariant, StepOutcome] = field(default_factory=dict)

    def add(self, outcome: StepOutcome) -> None:
        self.outcomes[outcome.variant] = outcome

    @property
    def ok(self) -> bool:
        return bool(self.outcomes) and all(o.ok for o in self.outcomes.values())

    @property
    def failed(self) -> List[LotVariant]:
        return [v for v, o in self.outcomes.items() if not o.ok]

    def record_id(self, variant: LotVariant) -> Optional[str]:
        o = self.outcomes.get(variant)
        return o.record_id if o is not None and o.ok else None

    def linkage_fields(self, variants: Iterable[LotVariant] = tuple(LotVariant)) -> Dict[str, Optional[str]]:
        return {LINKAGE_FIELDS[v]: self.record_id(v) for v in variants}

    def to_dict(self) -> dict:
        return {
            "orderNumber": self.order_number,
            "ok": self.ok,
            "steps": {
                v.value: {"id": o.record_id, "error": o.error}
                for v, o in self.outcomes.items()
            },
        }


@dataclass
class SubmissionReport:
    order_id: str
    order_number: str
    state: SubmissionState = SubmissionState.ORDER_CREATED
    run_id: Optional[str] = None
    result: Optional[ProvisioningResult] = None
    linked: bool = False
    fallback_attempted: bool = False
    fallback_record_id: Optional[str] = None
    history: List[SubmissionState] = field(default_factory=list)
    # set when provisioning was detached to a worker thread
    future: Optional[Future] = None

    def move(self, state: SubmissionState) -> None:
        self.state = state
        self.history.append(state)

    def snapshot(self) -> "SubmissionReport":
        """Detached copy; the live report keeps changing on its worker thread."""
        return replace(self, history=list(self.history), future=None)

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "scheduled": self.future is not None,
            "runId": self.run_id,
            "linked": self.linked,
            "fallbackAttempted": self.fallback_attempted,
            "fallbackRecordId": self.fallback_record_id,
            "result": self.result.to_dict() if self.result else None,
        }
