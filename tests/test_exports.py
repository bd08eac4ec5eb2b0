import json

from conftest import create_rfp, invite, submit


def _execute(buyer, export_id, **params):
    return buyer.post("/api/exports/execute", json={"exportId": export_id, "params": params})


def test_catalogue_is_grouped(buyer):
    categories = buyer.get("/api/exports").json["categories"]
    names = [c["category"] for c in categories]
    assert names[0] == "RFP"
    assert "Compliance" in names

    r = buyer.get("/api/exports/scoring_matrix_csv")
    assert r.json["export"]["exportType"] == "csv"
    assert r.json["export"]["requiresRfpId"] is True
    assert buyer.get("/api/exports/nope").status_code == 404


def test_execute_validates_params(buyer):
    r = buyer.post("/api/exports/execute", json={})
    assert r.status_code == 400
    assert r.json["error"] == "exportId is required"

    r = _execute(buyer, "rfp_timeline_csv")
    assert r.status_code == 400
    assert r.json["error"] == "RFP ID required for this export"

    rfp = create_rfp(buyer)
    r = _execute(buyer, "evaluation_pdf", rfpId=rfp["id"])
    assert r.json["error"] == "Supplier ID required for this export"
    assert _execute(buyer, "missing_export").status_code == 404


def test_rfp_list_excel(buyer):
    create_rfp(buyer)
    r = _execute(buyer, "rfp_list_excel")
    assert r.status_code == 200
    assert r.data.startswith(b"PK")
    assert r.headers["X-Export-File-Size"] == str(len(r.data))
    assert int(r.headers["X-Export-Duration-Ms"]) >= 0
    assert r.headers["Content-Disposition"].endswith("rfp-list.xlsx")


def test_rfp_list_json_is_company_scoped(buyer, other_buyer):
    create_rfp(buyer)
    data = json.loads(_execute(other_buyer, "rfp_list_export").data)
    assert data["count"] == 0


def test_rfp_exports(app, buyer):
    rfp = create_rfp(buyer)
    invite(buyer, rfp["id"])

    r = _execute(buyer, "rfp_suppliers_export", rfpId=rfp["id"])
    lines = r.data.decode().splitlines()
    assert lines[0].startswith("Name,Email,Organization")
    assert lines[1].startswith("Jane Vendor,jane@vendor.test,Vendor Inc,SENT")

    bundle = json.loads(_execute(buyer, "rfp_bundle_export", rfpId=rfp["id"]).data)
    assert bundle["rfp"]["title"] == "Cloud Hosting RFP"
    assert len(bundle["suppliers"]) == 1

    assert _execute(buyer, "rfp_timeline_pdf", rfpId=rfp["id"]).data.startswith(b"%PDF")
    assert _execute(buyer, "rfp_compliance_pack_docx", rfpId=rfp["id"]).data.startswith(b"PK")


def test_rfp_exports_are_company_scoped(buyer, other_buyer):
    rfp = create_rfp(buyer)
    assert _execute(other_buyer, "rfp_timeline_csv", rfpId=rfp["id"]).status_code == 404


def test_supplier_scorecard(app, buyer):
    first = create_rfp(buyer, title="First")
    second = create_rfp(buyer, title="Second")
    contact = submit(app, buyer, first["id"], {"R1": "answer"})
    invite(buyer, second["id"])

    data = json.loads(_execute(buyer, "supplier_scorecard_export", supplierId=contact["id"]).data)
    assert data["supplier"]["email"] == "jane@vendor.test"
    assert data["totals"]["rfpsInvited"] == 2
    assert data["totals"]["responsesSubmitted"] == 1
    assert [p["rfpTitle"] for p in data["participation"]] == ["First", "Second"]


def test_execute_logs_export(buyer):
    rfp = create_rfp(buyer)
    _execute(buyer, "rfp_tasks_export", rfpId=rfp["id"])
    events = buyer.get(f"/api/rfps/{rfp['id']}/activity?eventType=EXPORT_GENERATED").json["events"]
    assert len(events) == 1
    assert events[0]["details"]["exportId"] == "rfp_tasks_export"
    assert events[0]["category"] == "EXPORT"
