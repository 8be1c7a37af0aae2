import pytest

from packhouse.models.provisioning.provisioning_models import LINKAGE_FIELDS, LotVariant, SubmissionState
from packhouse.provisioning_ext import EXTENSION_KEY
from packhouse.services.errors import OrderValidationError, StoreError


def _lot(prov, variant, lot_id):
    store = {
        LotVariant.PRODUCTION: prov.stores.production_lots,
        LotVariant.QUALITY_SHARED: prov.stores.quality_shared_lots,
        LotVariant.QUALITY_CONTROL: prov.stores.quality_control_lots,
        LotVariant.WASTE_TRACKING: prov.stores.waste_tracking_lots,
        LotVariant.INTAKE: prov.stores.intake_lots,
    }[variant]
    return store.get(lot_id)


def test_submission_links_all_five_lots(prov, acme_order):
    report = prov.submission.submit(acme_order)

    order = prov.orders.get_order(report.order_id)
    assert order["status"] == "pending"
    assert report.state is SubmissionState.DONE
    assert report.history == [
        SubmissionState.VALIDATING,
        SubmissionState.ORDER_CREATED,
        SubmissionState.PROVISIONING,
        SubmissionState.ALL_LINKED,
        SubmissionState.DONE,
    ]
    assert report.linked
    assert not report.fallback_attempted

    for variant, field in LINKAGE_FIELDS.items():
        assert order[field], field
        lot = _lot(prov, variant, order[field])
        assert lot["lotNumber"] == order["orderNumber"]


def test_lot_variants_keep_their_discriminators(prov, acme_order):
    order = prov.orders.get_order(prov.submission.submit(acme_order).order_id)

    assert _lot(prov, LotVariant.PRODUCTION, order["linkedProductionLotId"])["type"] == "production"
    assert _lot(prov, LotVariant.QUALITY_SHARED, order["linkedQualitySharedLotId"])["type"] == "quality"
    assert _lot(prov, LotVariant.WASTE_TRACKING, order["linkedWasteTrackingLotId"])["type"] == "dechets"
    qc = _lot(prov, LotVariant.QUALITY_CONTROL, order["linkedQualityLotId"])
    assert qc["formData"]["product"] == "Hass Avocado"


def test_quality_control_outage_leaves_partial_links_and_one_fallback(prov, db, acme_order):
    db.fail("quality_control_lots", "insert_one")

    report = prov.submission.submit(acme_order)

    order = prov.orders.get_order(report.order_id)
    assert order["linkedQualityLotId"] is None
    for field in ("linkedProductionLotId", "linkedQualitySharedLotId",
                  "linkedWasteTrackingLotId", "linkedNewEntryLotId"):
        assert order[field]

    legacy = prov.stores.legacy_lots.find({"lotNumber": order["orderNumber"]})
    assert len(legacy) == 1
    assert legacy[0]["syncedToFirebase"] is False
    assert legacy[0]["formData"]["clientLot"] == order["orderNumber"]

    assert report.state is SubmissionState.DONE
    assert SubmissionState.PARTIALLY_LINKED in report.history
    assert report.fallback_attempted
    assert report.fallback_record_id == legacy[0]["id"]


def test_failed_steps_are_logged_and_queued(prov, db, acme_order):
    db.fail("quality_control_lots", "insert_one")

    report = prov.submission.submit(acme_order)

    run = prov.submission.step_log.latest_run(report.order_id)
    assert run["id"] == report.run_id
    assert run["status"] == "partial"
    assert run["state"] == "partially_linked"
    assert run["steps"]["quality_control"]["status"] == "failed"
    assert run["steps"]["quality_control"]["attempts"] == 1
    assert run["steps"]["production"]["status"] == "succeeded"
    assert run["linkback"]["status"] == "succeeded"
    assert run["fallback"]["status"] == "succeeded"

    pending = prov.submission.step_log.pending()
    assert [(p["orderId"], p["step"]) for p in pending] == [(report.order_id, "quality_control")]


def test_successful_run_log(prov, acme_order):
    report = prov.submission.submit(acme_order)

    run = prov.submission.step_log.latest_run(report.order_id)
    assert run["status"] == "completed"
    assert run["seed"]["orderNumber"] == report.order_number
    assert {s["status"] for s in run["steps"].values()} == {"succeeded"}
    assert prov.submission.step_log.pending() == []


def test_reprovisioning_duplicates_lots(prov, db, acme_order):
    # no idempotency by default: a second pass creates a second set of lots
    report = prov.submission.submit(acme_order)
    order = prov.orders.get_order(report.order_id)

    prov.submission.provision_existing(report.order_id)

    lot_number = order["orderNumber"]
    assert prov.stores.production_lots.count({"lotNumber": lot_number, "type": "production"}) == 2
    assert prov.stores.quality_control_lots.count({"lotNumber": lot_number}) == 2
    assert prov.stores.intake_lots.count({"lotNumber": lot_number}) == 2

    relinked = prov.orders.get_order(report.order_id)
    assert relinked["linkedProductionLotId"] != order["linkedProductionLotId"]


def test_idempotent_mode_does_not_duplicate(make_app, acme_order):
    app = make_app(PROVISIONING_IDEMPOTENT=True)
    prov = app.extensions[EXTENSION_KEY]

    report = prov.submission.submit(acme_order)
    prov.submission.provision_existing(report.order_id)

    order = prov.orders.get_order(report.order_id)
    lot_number = order["orderNumber"]
    assert order["linkedQualityLotId"] == f"{lot_number}:quality_control"
    assert prov.stores.production_lots.count({"lotNumber": lot_number}) == 3  # one per shared_lots variant
    assert prov.stores.quality_control_lots.count({"lotNumber": lot_number}) == 1
    assert prov.stores.intake_lots.count({"lotNumber": lot_number}) == 1


def test_validation_error_has_no_side_effects(prov, db):
    with pytest.raises(OrderValidationError):
        prov.submission.submit({"clientName": "", "items": []})

    assert all(not col.docs for col in db.collections.values())


def test_order_insert_failure_rejects_submission(prov, db, acme_order):
    db.fail("client_orders", "insert_one")

    with pytest.raises(StoreError):
        prov.submission.submit(acme_order)

    assert db["shared_lots"].docs == []
    assert db["multi_lots"].docs == []


def test_linkback_failure_is_swallowed_and_queued(prov, db, acme_order):
    db.fail("client_orders", "update_one")

    report = prov.submission.submit(acme_order)

    assert not report.linked
    assert report.state is SubmissionState.DONE
    assert SubmissionState.PARTIALLY_LINKED in report.history
    assert not report.fallback_attempted  # every lot was created

    db.heal()
    order = prov.orders.get_order(report.order_id)
    assert all(order[f] is None for f in LINKAGE_FIELDS.values())
    steps = [p["step"] for p in prov.submission.step_log.pending()]
    assert steps == ["linkback"]


def test_fallback_failure_is_swallowed(prov, db, acme_order):
    db.fail("multi_lots", "insert_one")
    db.fail("lots", "insert_one")

    report = prov.submission.submit(acme_order)

    assert report.fallback_attempted
    assert report.fallback_record_id is None
    run = prov.submission.step_log.latest_run(report.order_id)
    assert run["fallback"]["status"] == "failed"
    assert prov.orders.get_order(report.order_id)["linkedProductionLotId"]


def test_step_log_outage_does_not_change_outcome(prov, db, acme_order):
    db.fail("provisioning_runs", "insert_one", "update_one")

    report = prov.submission.submit(acme_order)

    assert report.run_id is None
    assert report.linked
    order = prov.orders.get_order(report.order_id)
    assert all(order[f] for f in LINKAGE_FIELDS.values())


def test_legacy_fallback_can_be_disabled(make_app, db, acme_order):
    prov = make_app(PROVISIONING_LEGACY_FALLBACK=False).extensions[EXTENSION_KEY]
    db.fail("quality_control_lots", "insert_one")

    report = prov.submission.submit(acme_order)

    assert not report.fallback_attempted
    assert db["lots"].docs == []


def test_background_mode_detaches_provisioning(make_app, acme_order):
    prov = make_app(PROVISIONING_MODE="background").extensions[EXTENSION_KEY]

    report = prov.submission.submit(acme_order)
    assert report.future is not None
    assert report.run_id

    done = report.future.result(timeout=5)
    assert done.state is SubmissionState.DONE
    assert done.run_id == report.run_id
    order = prov.orders.get_order(report.order_id)
    assert all(order[f] for f in LINKAGE_FIELDS.values())


def test_background_report_is_a_snapshot(make_app, db, acme_order):
    prov = make_app(PROVISIONING_MODE="background").extensions[EXTENSION_KEY]
    db["multi_lots"].slow_ops["insert_one"] = 0.2

    report = prov.submission.submit(acme_order)
    done = report.future.result(timeout=5)

    assert report is not done
    assert report.state is SubmissionState.PROVISIONING
    assert report.result is None
    assert report.to_dict()["scheduled"] is True
    assert done.result.ok


def test_reconcile_leaves_running_background_pass_alone(make_app, db, acme_order):
    prov = make_app(PROVISIONING_MODE="background").extensions[EXTENSION_KEY]
    db["multi_lots"].slow_ops["insert_one"] = 0.5

    report = prov.submission.submit(acme_order)
    summary = prov.reconciler.reconcile_order(report.order_id)
    report.future.result(timeout=5)

    assert summary["inFlight"] is True
    assert summary["retried"] == []
    assert not summary["complete"]
    assert len(prov.stores.intake_lots.find({"lotNumber": report.order_number})) == 1
    run = prov.submission.step_log.latest_run(report.order_id)
    assert run["status"] == "completed"
    assert run["steps"]["intake"]["attempts"] == 1


def test_concurrent_mode_end_to_end(make_app, db, acme_order):
    prov = make_app(PROVISIONING_CONCURRENT=True).extensions[EXTENSION_KEY]
    # concurrent writers upsert on their record key
    db.fail("quality_control_lots", "update_one")

    report = prov.submission.submit(acme_order)

    order = prov.orders.get_order(report.order_id)
    assert order["linkedQualityLotId"] is None
    assert order["linkedNewEntryLotId"]
    assert len(prov.stores.legacy_lots.find({"lotNumber": order["orderNumber"]})) == 1


def test_unknown_mode_is_rejected(make_app):
    with pytest.raises(ValueError):
        make_app(PROVISIONING_MODE="eventually")
