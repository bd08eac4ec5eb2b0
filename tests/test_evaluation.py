from conftest import create_rfp, submit

from app.fyndr.modules.evaluation.service import variance_level

REQUIREMENTS = [
    {"id": "R1", "title": "Hosting approach", "question": "Describe your hosting approach", "mustHave": True},
    {"id": "R2", "title": "Latency", "question": "Median response time?", "scoringType": "numeric", "weight": 0.5},
    {"id": "R3", "title": "Certification", "question": "Are you ISO certified?", "scoringType": "pass/fail", "weight": 0.5},
]
ANSWERS = {
    "R1": "Active-active across three regions.",
    "R2": "Response time 80 ms",
    "R3": "Yes, fully certified ISO 27001",
}


def _scored(app, buyer):
    rfp = create_rfp(buyer, requirements=REQUIREMENTS)
    contact = submit(app, buyer, rfp["id"], ANSWERS)
    buyer.post(f"/api/rfps/{rfp['id']}/scoring/auto/{contact['id']}", json={})
    return rfp, contact


def test_workspace_summary(app, buyer):
    rfp, contact = _scored(app, buyer)
    r = buyer.get(f"/api/rfps/{rfp['id']}/evaluation/{contact['id']}")
    assert r.status_code == 200
    assert [i["autoScore"] for i in r.json["scoringItems"]] == [50, 80, 100]
    summary = r.json["summary"]
    assert summary["totalAutoScore"] == 76.7
    assert summary["totalWeightedAutoScore"] == 140
    assert summary["overrideCount"] == 0
    assert summary["mustHaveFailures"] == 0


def test_override_updates_final_score_and_variance(app, buyer):
    rfp, contact = _scored(app, buyer)
    base = f"/api/rfps/{rfp['id']}/evaluation/{contact['id']}"

    r = buyer.post(f"{base}/override", json={"requirementId": "R1", "score": 90, "justification": "Reference calls were strong"})
    assert r.status_code == 200
    assert r.json["override"]["userName"] == "Buyer"

    r = buyer.get(base)
    assert r.json["supplierResponse"]["finalScore"] == 90.0
    summary = r.json["summary"]
    assert summary["totalOverrideScore"] == 90.0
    assert summary["totalWeightedOverrideScore"] == 180
    assert summary["overrideCount"] == 1
    assert summary["averageVariance"] == 40
    assert r.json["scoringItems"][0]["varianceLevel"] == "high"

    r = buyer.get(f"{base}/variance")
    assert r.json["maxVariance"] == 40
    assert r.json["itemsWithHighVariance"] == 1

    assert buyer.delete(f"{base}/override/R1").status_code == 200
    assert buyer.get(base).json["supplierResponse"]["finalScore"] == 76.7


def test_override_validation(app, buyer):
    rfp, contact = _scored(app, buyer)
    base = f"/api/rfps/{rfp['id']}/evaluation/{contact['id']}/override"
    assert buyer.post(base, json={"requirementId": "R1", "score": 150, "justification": "x"}).status_code == 400
    assert buyer.post(base, json={"requirementId": "R1", "score": 10}).status_code == 400
    r = buyer.post(base, json={"requirementId": "NOPE", "score": 10, "justification": "x"})
    assert r.status_code == 400
    assert r.json["error"] == "Requirement not found in scoring matrix"


def test_low_override_flags_must_have_violation(app, buyer):
    rfp, contact = _scored(app, buyer)
    base = f"/api/rfps/{rfp['id']}/evaluation/{contact['id']}"
    buyer.post(f"{base}/override", json={"requirementId": "R1", "score": 20, "justification": "No DR plan"})
    r = buyer.get(base)
    assert r.json["scoringItems"][0]["mustHaveViolation"] is True
    assert r.json["summary"]["mustHaveFailures"] == 1


def test_comments(app, buyer):
    rfp, contact = _scored(app, buyer)
    base = f"/api/rfps/{rfp['id']}/evaluation/{contact['id']}"
    assert buyer.post(f"{base}/comments", json={"requirementId": "R2", "commentText": " "}).status_code == 400

    r = buyer.post(f"{base}/comments", json={"requirementId": "R2", "commentText": "Benchmark looks optimistic"})
    assert r.status_code == 201
    r = buyer.get(base)
    assert r.json["summary"]["commentCount"] == 1
    assert r.json["scoringItems"][1]["comments"][0]["commentText"] == "Benchmark looks optimistic"


def test_export_formats(app, buyer):
    rfp, contact = _scored(app, buyer)
    base = f"/api/rfps/{rfp['id']}/evaluation/{contact['id']}/export"
    r = buyer.get(base)
    assert r.status_code == 200
    assert r.data.startswith(b"%PDF")
    r = buyer.get(f"{base}?format=docx")
    assert r.data.startswith(b"PK")


def test_unknown_supplier_is_404(buyer):
    rfp = create_rfp(buyer, requirements=REQUIREMENTS)
    assert buyer.get(f"/api/rfps/{rfp['id']}/evaluation/999").status_code == 404


def test_variance_levels():
    assert variance_level(0) == "low"
    assert variance_level(1) == "low"
    assert variance_level(2.5) == "medium"
    assert variance_level(3.5) == "high"
