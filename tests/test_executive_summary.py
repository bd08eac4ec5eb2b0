from types import SimpleNamespace

from conftest import create_rfp

from app.fyndr.modules.executive_summary import service as summaries


def _generate(buyer, rfp_id, **payload):
    r = buyer.post(f"/api/rfps/{rfp_id}/summaries", json=payload)
    assert r.status_code == 201, r.json
    return r.json["summary"]


def test_generate_uses_template_without_ai(buyer):
    rfp = create_rfp(buyer)
    doc = _generate(buyer, rfp["id"], tone="analytical", audience="technical")
    assert doc["version"] == 1
    assert doc["title"] == "Executive Summary v1"
    assert doc["tone"] == "analytical"
    assert "Cloud Hosting RFP" in doc["content"]
    assert doc["isOfficial"] is False

    r = buyer.post(f"/api/rfps/{rfp['id']}/summaries", json={"tone": "angry"})
    assert r.status_code == 400
    assert r.json["error"].startswith("Invalid tone")


def test_update_sanitizes_html(buyer):
    rfp = create_rfp(buyer)
    doc = _generate(buyer, rfp["id"])
    r = buyer.put(
        f"/api/rfps/{rfp['id']}/summaries/{doc['id']}",
        json={"content": '<p onclick="steal()">Hello</p><script>alert(1)</script>', "title": "Board pack"},
    )
    assert r.status_code == 200
    assert r.json["summary"]["content"] == "<p>Hello</p>"
    assert r.json["summary"]["title"] == "Board pack"

    assert buyer.put(f"/api/rfps/{rfp['id']}/summaries/{doc['id']}", json={"title": ""}).status_code == 400

    r = buyer.post(f"/api/rfps/{rfp['id']}/summaries/{doc['id']}/autosave", json={"content": "<p>Draft</p>"})
    assert r.json["ok"] is True


def test_final_is_exclusive(buyer):
    rfp = create_rfp(buyer)
    first = _generate(buyer, rfp["id"])
    second = _generate(buyer, rfp["id"])
    buyer.post(f"/api/rfps/{rfp['id']}/summaries/{first['id']}/final")
    buyer.post(f"/api/rfps/{rfp['id']}/summaries/{second['id']}/final")

    listed = buyer.get(f"/api/rfps/{rfp['id']}/summaries").json["summaries"]
    assert [(d["version"], d["isOfficial"]) for d in listed] == [(2, True), (1, False)]
    assert "content" not in listed[0]


def test_clone_restore_delete(buyer):
    rfp = create_rfp(buyer)
    doc = _generate(buyer, rfp["id"], title="Draft")

    clone = buyer.post(f"/api/rfps/{rfp['id']}/summaries/{doc['id']}/clone").json["summary"]
    assert clone["version"] == 2
    assert clone["title"] == "Draft (Copy)"
    assert clone["content"] == doc["content"]

    restored = buyer.post(f"/api/rfps/{rfp['id']}/summaries/{doc['id']}/restore").json["summary"]
    assert restored["version"] == 3
    assert restored["title"] == "Draft (Restored from v1)"

    assert buyer.delete(f"/api/rfps/{rfp['id']}/summaries/{clone['id']}").status_code == 200
    assert buyer.get(f"/api/rfps/{rfp['id']}/summaries/{clone['id']}").status_code == 404


def test_compare_near_identical(buyer):
    rfp = create_rfp(buyer)
    doc = _generate(buyer, rfp["id"])
    clone = buyer.post(f"/api/rfps/{rfp['id']}/summaries/{doc['id']}/clone").json["summary"]

    r = buyer.post(f"/api/rfps/{rfp['id']}/summaries/compare", json={"summaryAId": doc["id"], "summaryBId": clone["id"]})
    assert r.status_code == 200
    assert r.json["AIComparisonNarrative"].startswith("Minimal Changes Detected")
    assert r.json["scoring"]["overallChangeScore"] == 5
    assert r.json["metadata"]["summaryB"]["version"] == 2

    r = buyer.post(f"/api/rfps/{rfp['id']}/summaries/compare", json={"summaryAId": doc["id"], "summaryBId": doc["id"]})
    assert r.status_code == 400
    assert buyer.post(f"/api/rfps/{rfp['id']}/summaries/compare", json={}).status_code == 400


def test_exports(buyer):
    rfp = create_rfp(buyer)
    doc = _generate(buyer, rfp["id"])
    other = _generate(buyer, rfp["id"])

    r = buyer.get(f"/api/rfps/{rfp['id']}/summaries/{doc['id']}/export")
    assert r.data.startswith(b"%PDF")
    r = buyer.get(f"/api/rfps/{rfp['id']}/summaries/{doc['id']}/export?format=docx")
    assert r.data.startswith(b"PK")

    r = buyer.get(f"/api/rfps/{rfp['id']}/summaries/compare/export?summaryAId={doc['id']}&summaryBId={other['id']}")
    assert r.status_code == 200
    assert r.data.startswith(b"%PDF")


# ---------- pure helpers ----------
def _doc(content, tone="professional", version=1):
    return SimpleNamespace(id=version, version=version, tone=tone, audience="executive", content=content, updated_at=None)


def test_sanitize_html_strips_iframes():
    html = '<div>Keep</div><iframe src="https://evil.test"></iframe><a href="#" onmouseover=\'x()\'>link</a>'
    assert summaries.sanitize_html(html) == '<div>Keep</div><a href="#">link</a>'


def test_similarity():
    assert summaries.similarity("Same  Text", "same text") == 1.0
    assert summaries.similarity("", "") == 1.0
    assert summaries.similarity("abcd", "abzz") == 0.5


def test_rule_based_comparison_detects_risk_shift():
    a = _doc("The vendor is strong.")
    b = _doc("The vendor is strong but there is a risk and a concern about delivery.", tone="analytical", version=2)
    result = summaries.rule_based_comparison(a, b)
    assert result["semanticDiff"]["riskShifts"] == ["Increased emphasis on risks or concerns"]
    assert result["structuralDiff"]["sectionsModified"] == ["Content structure modified"]
    assert result["scoring"]["riskShiftScore"] == 20
    assert result["scoring"]["recommendationShiftScore"] == 30
    assert result["scoring"]["overallChangeScore"] == 100
    assert "longer than Version A" in result["AIComparisonNarrative"]
    assert "from professional to analytical" in result["AIComparisonNarrative"]


def test_empty_content_is_not_compared():
    result = summaries.compare_documents(_doc(""), _doc("Something", version=2))
    assert result["AIComparisonNarrative"].startswith("Not Enough Data to Compare")
    assert result["scoring"]["overallChangeScore"] == 0
