import json

from conftest import create_rfp, submit


def test_preview_builds_pack_without_archiving(app, buyer):
    rfp = create_rfp(buyer, description="Managed hosting for the storefront")
    submit(app, buyer, rfp["id"], {"R1": "answer"})

    r = buyer.post(f"/api/rfps/{rfp['id']}/archive/preview")
    assert r.status_code == 200
    pack = r.json["snapshot"]
    assert pack["rfpDescription"] == "Managed hosting for the storefront"
    assert pack["decisionBrief"]["available"] is False
    assert pack["timelineSummary"]["submittedResponses"] == 1
    assert pack["supplierOutcomes"][0]["responseStatus"] == "SUBMITTED"
    assert pack["portfolioContext"]["totalActiveRFPs"] == 1
    assert pack["metadata"]["generatedBy"]["email"] == "buyer@acme.test"

    status = buyer.get(f"/api/rfps/{rfp['id']}/archive").json
    assert status["isArchived"] is False
    assert status["compliancePack"] is None


def test_commit_archives_and_freezes_pack(buyer):
    rfp = create_rfp(buyer)
    r = buyer.post(f"/api/rfps/{rfp['id']}/archive/commit")
    assert r.status_code == 200
    assert r.json["isArchived"] is True
    assert r.json["stage"] == "ARCHIVED"
    archived_at = r.json["snapshot"]["timeline"]["archivedAt"]

    r = buyer.post(f"/api/rfps/{rfp['id']}/archive/commit")
    assert r.status_code == 400
    assert r.json["error"] == "RFP is already archived"

    # later edits do not change the stored pack
    buyer.patch(f"/api/rfps/{rfp['id']}", json={"description": "changed afterwards"})
    r = buyer.get(f"/api/rfps/{rfp['id']}/archive/compliance-pack?format=json")
    assert r.mimetype == "application/json"
    pack = json.loads(r.data)
    assert pack["timeline"]["archivedAt"] == archived_at
    assert pack["rfpDescription"] is None


def test_compliance_pack_formats(buyer):
    rfp = create_rfp(buyer)
    r = buyer.get(f"/api/rfps/{rfp['id']}/archive/compliance-pack")
    assert r.data.startswith(b"%PDF")
    r = buyer.get(f"/api/rfps/{rfp['id']}/archive/compliance-pack?format=docx")
    assert r.data.startswith(b"PK")
    # unknown formats fall back to PDF
    r = buyer.get(f"/api/rfps/{rfp['id']}/archive/compliance-pack?format=xml")
    assert r.mimetype == "application/pdf"


def test_archive_is_company_scoped(buyer, other_buyer):
    rfp = create_rfp(buyer)
    assert other_buyer.post(f"/api/rfps/{rfp['id']}/archive/commit").status_code == 404
