from conftest import create_rfp, invite, supplier_client

from app.fyndr.modules.activity.events import event_category


def test_rfp_activity_is_paginated(buyer):
    rfp = create_rfp(buyer)
    invite(buyer, rfp["id"])

    r = buyer.get(f"/api/rfps/{rfp['id']}/activity?pageSize=2")
    assert r.status_code == 200
    assert r.json["total"] == 3
    assert r.json["totalPages"] == 2
    assert r.json["pageSize"] == 2
    # newest first
    assert [e["eventType"] for e in r.json["events"]] == ["SUPPLIER_INVITATION_SENT", "SUPPLIER_CONTACT_CREATED"]

    last = buyer.get(f"/api/rfps/{rfp['id']}/activity?pageSize=2&page=2").json["events"]
    assert [e["eventType"] for e in last] == ["RFP_CREATED"]
    assert last[0]["actorRole"] == "BUYER"
    assert last[0]["category"] == "RFP"


def test_activity_filters(app, buyer):
    rfp = create_rfp(buyer)
    contact = invite(buyer, rfp["id"])
    supplier_client(app, contact)

    events = buyer.get(f"/api/rfps/{rfp['id']}/activity?actorRole=supplier").json["events"]
    assert events
    assert {e["actorRole"] for e in events} == {"SUPPLIER"}

    r = buyer.get(f"/api/rfps/{rfp['id']}/activity?eventType=RFP_CREATED,SUPPLIER_CONTACT_CREATED")
    assert r.json["total"] == 2

    assert buyer.get(f"/api/rfps/{rfp['id']}/activity?dateTo=2000-01-01").json["total"] == 0
    r = buyer.get(f"/api/rfps/{rfp['id']}/activity?dateFrom=yesterday")
    assert r.status_code == 400
    assert r.json["error"] == "Invalid date filter"


def test_activity_csv_export(buyer):
    rfp = create_rfp(buyer)
    r = buyer.get(f"/api/rfps/{rfp['id']}/activity/export")
    assert r.status_code == 200
    assert r.mimetype == "text/csv"
    assert r.headers["Content-Disposition"].endswith(f"rfp-{rfp['id']}-activity.csv")
    lines = r.data.decode().splitlines()
    assert lines[0] == "Timestamp,Event Type,Category,Actor Role,User ID,Summary,Details"
    assert ",RFP_CREATED,RFP,BUYER," in lines[1]

    # the export itself is logged
    events = buyer.get(f"/api/rfps/{rfp['id']}/activity?eventType=ACTIVITY_EXPORTED_CSV").json["events"]
    assert events[0]["details"]["count"] == 1


def test_supplier_contact_activity(buyer):
    rfp = create_rfp(buyer)
    contact = invite(buyer, rfp["id"])
    events = buyer.get(f"/api/rfps/{rfp['id']}/suppliers/{contact['id']}/activity").json["events"]
    assert [e["eventType"] for e in events] == ["SUPPLIER_INVITATION_SENT", "SUPPLIER_CONTACT_CREATED"]


def test_activity_is_company_scoped(buyer, other_buyer):
    rfp = create_rfp(buyer)
    assert other_buyer.get(f"/api/rfps/{rfp['id']}/activity").status_code == 404


def test_event_categories():
    assert event_category("AUTO_SCORE_RUN") == "SCORING"
    assert event_category("SUPPLIER_QUESTION_ANSWERED") == "QA_SYSTEM"
    assert event_category("RFP_ARCHIVED") == "ARCHIVE"
    assert event_category("SOMETHING_ELSE") == "OTHER"
