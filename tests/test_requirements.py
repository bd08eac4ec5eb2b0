from conftest import PASSWORD, create_rfp, login
from werkzeug.security import generate_password_hash

from app.fyndr.db import session_scope
from app.fyndr.models import Company, User
from app.fyndr.rbac import ensure_roles


def _block(buyer, **fields):
    payload = {"title": "Data residency", "category": "Security", "question": "Where is customer data stored?"}
    payload.update(fields)
    r = buyer.post("/api/requirements", json=payload)
    assert r.status_code == 201, r.json
    return r.json["requirement"]


def _colleague(app):
    with session_scope(app) as s:
        roles = ensure_roles(s)
        acme = s.query(Company).filter(Company.name == "Acme Corp").one()
        u = User(
            email="colleague@acme.test",
            name="Colleague",
            password_hash=generate_password_hash(PASSWORD),
            company_id=acme.id,
            is_active=True,
        )
        u.roles.append(roles["buyer"])
        s.add(u)
    c = app.test_client()
    login(c, "colleague@acme.test")
    return c


def test_create_defaults_and_validation(buyer):
    block = _block(buyer)
    assert block["content"] == {"question": "Where is customer data stored?", "mustHave": False, "scoringType": "numeric", "weight": 1.0}
    assert block["visibility"] == "company"
    assert block["currentVersion"] == 1

    assert buyer.post("/api/requirements", json={"title": "X"}).status_code == 400
    r = buyer.post("/api/requirements", json={"title": "X", "category": "Y", "question": "Q?", "scoringType": "vibes"})
    assert r.json["error"] == "Invalid scoring type"
    r = buyer.post("/api/requirements", json={"title": "X", "category": "Y", "question": "Q?", "weight": -1})
    assert r.status_code == 400


def test_update_creates_version(buyer):
    block = _block(buyer)
    r = buyer.put(f"/api/requirements/{block['id']}", json={"content": {"mustHave": True}, "title": "Data residency (EU)"})
    assert r.json["requirement"]["currentVersion"] == 2
    assert r.json["requirement"]["content"]["mustHave"] is True

    versions = buyer.get(f"/api/requirements/{block['id']}/versions").json["versions"]
    assert [(v["version"], v["title"]) for v in versions] == [(2, "Data residency (EU)"), (1, "Data residency")]


def test_search_and_filters(buyer):
    _block(buyer)
    _block(buyer, title="Payment terms", category="Commercial", question="What are your payment terms?")
    r = buyer.get("/api/requirements?search=payment")
    assert [b["title"] for b in r.json["requirements"]] == ["Payment terms"]
    r = buyer.get("/api/requirements?category=Security")
    assert [b["title"] for b in r.json["requirements"]] == ["Data residency"]


def test_private_blocks_hidden_from_colleagues(app, buyer):
    private = _block(buyer, title="My notes", visibility="private")
    shared = _block(buyer)
    colleague = _colleague(app)

    titles = [b["title"] for b in colleague.get("/api/requirements").json["requirements"]]
    assert titles == ["Data residency"]
    assert colleague.get(f"/api/requirements/{private['id']}").status_code == 403
    assert colleague.get(f"/api/requirements/{shared['id']}").status_code == 200


def test_blocks_are_company_scoped(buyer, other_buyer):
    block = _block(buyer)
    assert other_buyer.get(f"/api/requirements/{block['id']}").status_code == 404
    assert other_buyer.get("/api/requirements").json["requirements"] == []


def test_archive_and_clone(buyer):
    block = _block(buyer)
    clone = buyer.post(f"/api/requirements/{block['id']}/clone").json["requirement"]
    assert clone["title"] == "Data residency (Copy)"
    assert clone["currentVersion"] == 1

    assert buyer.delete(f"/api/requirements/{block['id']}").status_code == 200
    assert [b["id"] for b in buyer.get("/api/requirements").json["requirements"]] == [clone["id"]]
    r = buyer.put(f"/api/requirements/{block['id']}", json={"title": "Edit"})
    assert r.status_code == 400


def test_insert_copies_content_into_rfp(buyer):
    block = _block(buyer, mustHave=True, scoringType="qualitative")
    rfp = create_rfp(buyer)
    r = buyer.post(f"/api/requirements/{block['id']}/insert", json={"rfpId": rfp["id"]})
    entry = r.json["requirement"]
    assert entry["id"] == f"RB-{block['id']}"
    assert entry["mustHave"] is True

    # later library edits leave the RFP copy alone
    buyer.put(f"/api/requirements/{block['id']}", json={"question": "Changed?"})
    requirements = buyer.get(f"/api/rfps/{rfp['id']}").json["rfp"]["requirements"]
    assert requirements[0]["question"] == "Where is customer data stored?"

    assert buyer.post(f"/api/requirements/{block['id']}/insert", json={}).status_code == 400


def test_bulk_insert_into_template(buyer):
    first = _block(buyer)
    second = _block(buyer, title="SSO", question="Do you support SAML?")
    template = buyer.post("/api/templates", json={"title": "SaaS baseline"}).json["template"]

    r = buyer.post(
        "/api/requirements/bulk-insert",
        json={"requirementIds": [second["id"], first["id"]], "targetType": "template", "targetId": template["id"]},
    )
    assert r.json["insertedCount"] == 2
    assert [e["title"] for e in r.json["requirements"]] == ["SSO", "Data residency"]

    templates = buyer.get("/api/templates").json["templates"]
    assert templates[0]["requirementCount"] == 2

    r = buyer.post(
        "/api/requirements/bulk-insert",
        json={"requirementIds": [first["id"], 99999], "targetType": "template", "targetId": template["id"]},
    )
    assert r.status_code == 400
    assert r.json["error"] == "Some requirements not found or access denied"
