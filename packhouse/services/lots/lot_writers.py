# packhouse/services/lots/lot_writers.py
"""
Default payloads for the five lot records created per client order.

Field names and nesting are what the reception, production and quality
editors expect to find pre-populated, so keep them stable.
"""
from datetime import datetime, timezone
from typing import List

from packhouse.models.provisioning.provisioning_models import LotVariant, ProvisioningSeed
from packhouse.services.stores import DocumentStore, ProvisioningStores

CALIBRES = ("12", "14", "16", "18", "20", "22", "24", "26", "28", "30", "32")
PRODUCTION_ROWS = 26
WASTE_ROWS = 26
QC_PALETTES = 5

EXPORTER_NUMBER = "106040"
QC_FREQUENCY = "1 Carton/palette"


def quality_control_form(seed: ProvisioningSeed) -> dict:
    """QC form skeleton; also used for the legacy fallback record."""
    return {
        "date": seed.day,
        "product": seed.product_name,
        "variety": "",
        "campaign": seed.campaign,
        "clientLot": seed.order_number,
        "shipmentNumber": "",
        "packagingType": "",
        "category": "I",
        "exporterNumber": EXPORTER_NUMBER,
        "frequency": QC_FREQUENCY,
        "palettes": [{} for _ in range(QC_PALETTES)],
    }


class RecordWriter:
    """
    Builds one variant's default payload and persists it through its store.
    Subclasses set `variant` and implement `build`.
    """

    variant: LotVariant = None

    def __init__(self, store: DocumentStore, idempotent: bool = False):
        self.store = store
        self.idempotent = idempotent

    def build(self, seed: ProvisioningSeed) -> dict:
        raise NotImplementedError

    def record_key(self, seed: ProvisioningSeed) -> str:
        return f"{seed.order_number}:{self.variant.value}"

    def write(self, seed: ProvisioningSeed) -> str:
        now = datetime.now(timezone.utc)
        doc = {
            **self.build(seed),
            "createdAt": now,
            "updatedAt": now,
        }
        key = self.record_key(seed) if self.idempotent else None
        return self.store.create(doc, key=key)


class ProductionLotWriter(RecordWriter):
    variant = LotVariant.PRODUCTION

    def build(self, seed):
        rows = [
            {
                "numero": i + 1,
                "date": "",
                "heure": "",
                "calibre": "",
                "poidsBrut": "",
                "poidsNet": "",
                "numeroLotInterne": "",
                "variete": "",
                "nbrCP": "",
                "chambreFroide": "",
                "decision": "",
            }
            for i in range(PRODUCTION_ROWS)
        ]
        return {
            "lotNumber": seed.order_number,
            "status": "brouillon",
            "type": "production",
            "productionData": {
                "headerData": {
                    "date": seed.day,
                    "produit": seed.product_name,
                    "numeroLotClient": seed.order_number,
                    "typeProduction": "CONVENTIONNEL",
                },
                "calibreData": {c: 0 for c in CALIBRES},
                "nombrePalettes": "",
                "productionRows": rows,
                "visas": {
                    "controleurQualite": "",
                    "responsableQualite": "",
                    "directeurOperationnel": "",
                },
            },
        }


class QualitySharedLotWriter(RecordWriter):
    variant = LotVariant.QUALITY_SHARED

    def build(self, seed):
        return {
            "lotNumber": seed.order_number,
            "status": "brouillon",
            "type": "quality",
            "qualityData": {
                "headerData": {
                    "date": seed.day,
                    "produit": seed.product_name,
                    "numeroLotClient": seed.order_number,
                },
            },
        }


class QualityControlLotWriter(RecordWriter):
    variant = LotVariant.QUALITY_CONTROL

    def build(self, seed):
        return {
            "lotNumber": seed.order_number,
            "formData": quality_control_form(seed),
            "images": [],
            "status": "draft",
            "phase": "controller",
        }


class WasteTrackingLotWriter(RecordWriter):
    variant = LotVariant.WASTE_TRACKING

    def build(self, seed):
        return {
            "lotNumber": seed.order_number,
            "status": "brouillon",
            "type": "dechets",
            "dechetData": {
                "header": {
                    "code": "F.S.D",
                    "date": seed.day,
                    "version": "00",
                    "dateTraitement": seed.day,
                    "responsableTracabilite": "Auto-created",
                    "produit": seed.product_name,
                    "conventionnel": True,
                    "biologique": False,
                },
                "rows": [
                    {
                        "numeroPalette": "",
                        "nombreCaisses": "",
                        "poidsBrut": "",
                        "poidsNet": "",
                        "natureDechet": "",
                        "variete": "",
                    }
                    for _ in range(WASTE_ROWS)
                ],
            },
        }


class IntakeLotWriter(RecordWriter):
    """Multi-lot reception record: one sub-section per stage, filled in step by step."""

    variant = LotVariant.INTAKE

    def build(self, seed):
        lot = seed.order_number
        return {
            "lotNumber": lot,
            "harvest": {
                "harvestDate": seed.day,
                "farmLocation": "",
                "farmerId": "",
                "lotNumber": lot,
                "variety": "hass",
                "avocadoType": "",
            },
            "transport": {
                "lotNumber": lot,
                "transportCompany": "",
                "driverName": "",
                "vehicleId": "",
                "departureDateTime": "",
                "arrivalDateTime": "",
                "temperature": 0,
            },
            "sorting": {
                "lotNumber": lot,
                "sortingDate": "",
                "qualityGrade": "A",
                "rejectedCount": 0,
                "notes": "",
            },
            "packaging": {
                "lotNumber": lot,
                "packagingDate": "",
                "boxId": "",
                "workerIds": [],
                "netWeight": 0,
                "avocadoCount": 0,
                "boxType": "case",
                "boxTypes": [],
                "calibers": [],
                "boxWeights": [],
                "paletteNumbers": [],
            },
            "storage": {
                "boxId": "",
                "entryDate": "",
                "storageTemperature": 0,
                "storageRoomId": "",
                "exitDate": "",
                "warehouseId": "",
                "warehouseName": "",
            },
            "export": {
                "boxId": "",
                "loadingDate": "",
                "containerId": "",
                "driverName": "",
                "vehicleId": "",
                "destination": "",
            },
            "delivery": {
                "boxId": "",
                "estimatedDeliveryDate": "",
                "actualDeliveryDate": "",
                "clientName": "",
                "clientLocation": "",
                "notes": "",
            },
            "selectedFarm": "",
            "packagingDate": "",
            "boxId": "",
            "boxTypes": [],
            "calibers": [],
            "avocadoCount": 0,
            "status": "draft",
            "completedSteps": [],
            "currentStep": 1,
            "assignedUsers": [],
            "globallyAccessible": True,
            "createdBy": "auto-system",
        }


def build_writers(stores: ProvisioningStores, idempotent: bool = False) -> List[RecordWriter]:
    """Writers in provisioning order."""
    return [
        ProductionLotWriter(stores.production_lots, idempotent),
        QualitySharedLotWriter(stores.quality_shared_lots, idempotent),
        QualityControlLotWriter(stores.quality_control_lots, idempotent),
        WasteTrackingLotWriter(stores.waste_tracking_lots, idempotent),
        IntakeLotWriter(stores.intake_lots, idempotent),
    ]
