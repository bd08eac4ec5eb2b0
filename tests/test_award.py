from conftest import create_rfp, invite, submit


def _response_id(buyer, rfp_id, contact_id):
    responses = buyer.get(f"/api/rfps/{rfp_id}/responses").json["responses"]
    return next(r["id"] for r in responses if r["supplierContactId"] == contact_id)


def test_preview_does_not_persist(app, buyer):
    rfp = create_rfp(buyer)
    contact = invite(buyer, rfp["id"])
    r = buyer.post(f"/api/rfps/{rfp['id']}/award/preview", json={"status": "recommended", "selectedSupplierId": contact["id"]})
    assert r.status_code == 200
    snapshot = r.json["snapshot"]
    assert snapshot["recommendedSupplierName"] == "Vendor Inc"
    assert snapshot["portfolioSummary"]["companyName"] == "Acme Corp"
    assert snapshot["timelineSummary"]["elapsedDays"] == 0

    r = buyer.get(f"/api/rfps/{rfp['id']}/award")
    assert r.json["awardStatus"] is None
    assert r.json["awardSnapshot"] is None


def test_commit_award_with_outcomes(app, buyer):
    rfp = create_rfp(buyer)
    winner = submit(app, buyer, rfp["id"], {"R1": "winning answer"})
    loser = submit(app, buyer, rfp["id"], {"R1": "other answer"}, name="Bob", email="bob@other.test", organization="Other Co")
    outcomes = {
        str(_response_id(buyer, rfp["id"], winner["id"])): "recommended",
        str(_response_id(buyer, rfp["id"], loser["id"])): "not_selected",
    }

    r = buyer.post(
        f"/api/rfps/{rfp['id']}/award/commit",
        json={"status": "awarded", "selectedSupplierId": winner["id"], "buyerNotes": "Best value", "supplierOutcomeMap": outcomes},
    )
    assert r.status_code == 200
    award = r.json["award"]
    assert award["awardStatus"] == "awarded"
    assert award["awardedSupplierId"] == winner["id"]
    assert award["awardNotes"] == "Best value"
    by_contact = {o["supplierContactId"]: o["awardOutcomeStatus"] for o in award["supplierOutcomes"]}
    assert by_contact == {winner["id"]: "recommended", loser["id"]: "not_selected"}

    contacts = buyer.get(f"/api/rfps/{rfp['id']}/suppliers").json["suppliers"]
    assert {c["id"]: c["awardOutcomeStatus"] for c in contacts}[loser["id"]] == "not_selected"


def test_cancelled_award_clears_supplier(buyer):
    rfp = create_rfp(buyer)
    contact = invite(buyer, rfp["id"])
    r = buyer.post(f"/api/rfps/{rfp['id']}/award/commit", json={"status": "cancelled", "selectedSupplierId": contact["id"]})
    assert r.status_code == 200
    assert r.json["snapshot"]["recommendedSupplierId"] is None
    assert r.json["award"]["awardStatus"] == "cancelled"


def test_award_validation(buyer):
    rfp = create_rfp(buyer)
    base = f"/api/rfps/{rfp['id']}/award/commit"
    assert buyer.post(base, json={"status": "won"}).status_code == 400
    r = buyer.post(base, json={"status": "awarded"})
    assert r.status_code == 400
    assert r.json["error"] == "A supplier must be selected unless the award is cancelled"
    r = buyer.post(base, json={"status": "awarded", "selectedSupplierId": 12345})
    assert r.json["error"] == "Selected supplier is not part of this RFP"

    contact = invite(buyer, rfp["id"])
    r = buyer.post(base, json={"status": "awarded", "selectedSupplierId": contact["id"], "supplierOutcomeMap": {"1": "winner"}})
    assert r.status_code == 400
    assert r.json["error"] == "Invalid supplier outcome: winner"


def test_export_requires_decision(buyer):
    rfp = create_rfp(buyer)
    r = buyer.get(f"/api/rfps/{rfp['id']}/award/export")
    assert r.status_code == 400

    contact = invite(buyer, rfp["id"])
    buyer.post(f"/api/rfps/{rfp['id']}/award/commit", json={"status": "awarded", "selectedSupplierId": contact["id"]})
    r = buyer.get(f"/api/rfps/{rfp['id']}/award/export")
    assert r.data.startswith(b"%PDF")
    r = buyer.get(f"/api/rfps/{rfp['id']}/award/export?format=docx")
    assert r.data.startswith(b"PK")
    assert r.headers["Content-Disposition"].endswith(f"award-decision-rfp-{rfp['id']}.docx")


def test_award_is_company_scoped(buyer, other_buyer):
    rfp = create_rfp(buyer)
    assert other_buyer.post(f"/api/rfps/{rfp['id']}/award/preview", json={"status": "cancelled"}).status_code == 404
