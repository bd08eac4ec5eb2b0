import csv
import io

import pytest
from conftest import create_rfp, invite, submit, supplier_client

from app.fyndr.ai import AIUnavailable
from app.fyndr.modules.scoring import autoscore, matrix

REQUIREMENTS = [
    {"id": "R1", "title": "Hosting approach", "question": "Describe your hosting approach", "mustHave": True},
    {"id": "R2", "title": "Latency", "question": "Median response time?", "scoringType": "numeric", "weight": 0.5},
    {"id": "R3", "title": "Certification", "question": "Are you ISO certified?", "scoringType": "pass/fail", "weight": 0.5},
]

STRONG = {
    "R1": "We run active-active across three regions with automated failover and daily restore drills.",
    "R2": "Response time 80 ms",
    "R3": "Yes, fully certified ISO 27001",
}
WEAK = {"R1": "no", "R3": "n/a"}


def _setup(app, buyer):
    rfp = create_rfp(buyer, requirements=REQUIREMENTS)
    strong = submit(app, buyer, rfp["id"], STRONG)
    weak = submit(app, buyer, rfp["id"], WEAK, name="Bob Weak", email="bob@weak.test", organization="Weak LLC")
    responses = buyer.get(f"/api/rfps/{rfp['id']}/responses").json["responses"]
    by_contact = {r["supplierContactId"]: r for r in responses}
    return rfp, strong, weak, by_contact


def test_autoscore_rule_based(app, buyer):
    rfp, strong, weak, _ = _setup(app, buyer)

    r = buyer.post(f"/api/rfps/{rfp['id']}/scoring/auto", json={})
    assert r.json == {"totalSuppliers": 2, "successCount": 2, "failureCount": 0}

    r = buyer.get(f"/api/rfps/{rfp['id']}/scoring/auto/{strong['id']}")
    assert r.json["finalScore"] == 76.7
    methods = {sc["requirementId"]: sc["autoScore"]["scoringMethod"] for sc in r.json["scores"]}
    assert methods == {"R1": "pass_fail", "R2": "numeric", "R3": "pass_fail"}

    r = buyer.get(f"/api/rfps/{rfp['id']}/scoring/auto/{weak['id']}")
    assert r.json["finalScore"] == 0
    r1 = next(sc for sc in r.json["scores"] if sc["requirementId"] == "R1")
    assert r1["autoScore"]["failedMustHave"] is True


def test_autoscore_requires_requirements(app, buyer):
    rfp = create_rfp(buyer)
    contact = submit(app, buyer, rfp["id"], {"x": "some answer"})
    r = buyer.post(f"/api/rfps/{rfp['id']}/scoring/auto/{contact['id']}", json={})
    assert r.status_code == 400
    assert r.json["error"] == "Scoring matrix not configured for this RFP"


def test_extract_coverage_and_matrix(app, buyer):
    rfp, strong, weak, by_contact = _setup(app, buyer)
    response_id = by_contact[strong["id"]]["id"]

    r = buyer.post(f"/api/rfps/{rfp['id']}/responses/{response_id}/extract")
    assert r.status_code == 200
    statuses = {i["requirementId"]: i["status"] for i in r.json["coverage"]["requirements"]}
    assert statuses == {"R1": "fully_addressed", "R2": "partially_addressed", "R3": "partially_addressed"}
    assert r.json["coverage"]["method"] == "rule_based"
    assert r.json["response"]["readinessScore"] == 66.7
    assert {f["category"] for f in r.json["response"]["riskFlags"]} == {"coverage", "commercial"}

    r = buyer.post(f"/api/rfps/{rfp['id']}/scoring/matrix")
    m = r.json["matrix"]
    assert m["meta"]["totalRequirements"] == 3
    assert m["meta"]["totalSuppliers"] == 2
    summaries = {sm["supplierId"]: sm for sm in m["supplierSummaries"]}
    assert summaries[strong["id"]]["overallScore"] == 66.7
    assert summaries[strong["id"]]["mustHaveCompliance"] == {"total": 1, "passed": 1, "failed": 0}
    # no coverage extracted for the weak supplier
    assert summaries[weak["id"]]["overallScore"] == 0
    weak_cells = [c for c in m["cells"] if c["supplierId"] == weak["id"]]
    assert {c["justification"] for c in weak_cells} == {matrix.NO_COVERAGE}

    # cached snapshot is served by GET
    assert buyer.get(f"/api/rfps/{rfp['id']}/scoring/matrix").json["matrix"]["generatedAt"] == m["generatedAt"]


def test_extract_requires_submitted(app, buyer):
    rfp = create_rfp(buyer, requirements=REQUIREMENTS)
    sc = supplier_client(app, invite(buyer, rfp["id"]))
    response_id = sc.get(f"/api/portal/rfps/{rfp['id']}/response").json["response"]["id"]
    r = buyer.post(f"/api/rfps/{rfp['id']}/responses/{response_id}/extract")
    assert r.status_code == 400


def test_matrix_csv_export(app, buyer):
    rfp, strong, _, by_contact = _setup(app, buyer)
    buyer.post(f"/api/rfps/{rfp['id']}/responses/{by_contact[strong['id']]['id']}/extract")

    r = buyer.get(f"/api/rfps/{rfp['id']}/scoring/matrix/export?onlyFailedOrPartial=true")
    assert r.status_code == 200
    assert r.headers["Content-Disposition"].startswith("attachment")
    rows = list(csv.reader(io.StringIO(r.data.decode("utf-8"))))
    assert rows[0][:5] == ["Requirement ID", "Category", "Importance", "Short Label", "Description"]
    assert "Vendor Inc - Score" in rows[0]
    # missing cells are not failures
    assert [row[0] for row in rows[1:]] == ["R2", "R3"]


def test_comparison_orders_by_final_score(app, buyer):
    rfp, strong, weak, _ = _setup(app, buyer)
    buyer.post(f"/api/rfps/{rfp['id']}/scoring/auto", json={})
    r = buyer.get(f"/api/rfps/{rfp['id']}/comparison")
    assert [x["supplierContactId"] for x in r.json["suppliers"]] == [strong["id"], weak["id"]]
    assert r.json["suppliers"][0]["supplierName"] == "Vendor Inc"


# ---------- pure helpers ----------
def test_first_number():
    assert autoscore.first_number("about 1,250.5 units") == 1250.5
    assert autoscore.first_number("none") is None


def test_score_single_requirement_types():
    numeric = autoscore.score_single_requirement({"scoringType": "numeric", "weight": 50}, "Supports 250 users")
    assert numeric["rawScore"] == 100
    assert numeric["weightedScore"] == 50

    weighted = autoscore.score_single_requirement({"scoringType": "weighted"}, "A long descriptive answer")
    assert weighted["rawScore"] == 100

    pf = autoscore.score_single_requirement({"scoringType": "pass_fail"}, "No")
    assert pf["rawScore"] == 0


def test_must_have_zeroes_low_score():
    score = autoscore.score_single_requirement({"mustHave": True, "scoringType": "numeric"}, "30")
    assert score["failedMustHave"] is True
    assert score["rawScore"] == 0

    kept = autoscore.score_single_requirement(
        {"mustHave": True, "scoringType": "numeric"}, "30", {"mustHaveFailBehavior": "flag_only"}
    )
    assert kept["rawScore"] == 30


def test_ai_scorer_used_for_qualitative():
    def scorer(question, answer):
        return {"rawScore": 88, "reasoning": "Solid", "confidence": 0.9}

    score = autoscore.score_single_requirement({"question": "Why you?"}, "Because we are great", ai_scorer=scorer)
    assert score["scoringMethod"] == "ai_semantic"
    assert score["rawScore"] == 88
    assert score["aiConfidence"] == pytest.approx(0.9)


def test_ai_failure_falls_back():
    def scorer(question, answer):
        raise AIUnavailable("timeout")

    score = autoscore.score_single_requirement({}, "A reasonably long answer", ai_scorer=scorer)
    assert score["rawScore"] == 50
    assert score["aiReasoning"] == autoscore.AI_FALLBACK_REASONING
    assert score["aiError"] == "timeout"


def test_effective_scores_prefers_override():
    scores = [
        {"requirementId": "A", "autoScore": {"rawScore": 40}},
        {"requirementId": "B", "autoScore": {"rawScore": 70}},
    ]
    assert autoscore.effective_scores(scores, {"A": {"score": 90}}) == {"A": 90.0, "B": 70.0}


def test_section_category_mapping():
    assert matrix.map_section_to_category("SEC-01") == "security"
    assert matrix.map_section_to_category("Price schedule") == "commercial"
    assert matrix.map_section_to_category(None) == "other"
    assert matrix.map_weight_to_importance(0.7) == "should_have"


def test_draft_responses_are_not_scored(app, buyer):
    rfp = create_rfp(buyer, requirements=REQUIREMENTS)
    contact = invite(buyer, rfp["id"])
    sc = supplier_client(app, contact)
    sc.put(f"/api/portal/rfps/{rfp['id']}/response", json={"structuredAnswers": STRONG})

    r = buyer.post(f"/api/rfps/{rfp['id']}/scoring/auto/{contact['id']}", json={})
    assert r.status_code == 400
    assert r.json["error"] == "Only submitted responses can be scored"
    assert buyer.get(f"/api/rfps/{rfp['id']}/scoring/auto/{contact['id']}").json["finalScore"] is None
