import io
from datetime import timedelta

from conftest import OTHER_BUYER_EMAIL, create_rfp, invite, submit, supplier_client

from app.fyndr.db import session_scope
from app.fyndr.modules.suppliers.models import SupplierContact
from app.fyndr.utils import utcnow


def test_invite_supplier(buyer):
    rfp = create_rfp(buyer)
    contact = invite(buyer, rfp["id"])
    assert contact["invitationStatus"] == "SENT"
    assert contact["magicLink"].startswith("http://fyndr.test/supplier/access?token=")

    r = buyer.post(f"/api/rfps/{rfp['id']}/suppliers", json={"name": "Dup", "email": "JANE@vendor.test"})
    assert r.status_code == 400
    r = buyer.post(f"/api/rfps/{rfp['id']}/suppliers", json={"name": "Bad", "email": "nope"})
    assert r.status_code == 400
    assert r.json["error"] == "Invalid email format"

    r = buyer.get(f"/api/rfps/{rfp['id']}/suppliers")
    assert [c["email"] for c in r.json["suppliers"]] == ["jane@vendor.test"]


def test_magic_link_grants_portal_access(app, buyer):
    rfp = create_rfp(buyer, requirements=[{"id": "R1", "title": "Uptime", "question": "What is your SLA?"}])
    contact = invite(buyer, rfp["id"])
    sc = supplier_client(app, contact)

    r = sc.get("/api/portal/rfps")
    assert [x["rfpId"] for x in r.json["rfps"]] == [rfp["id"]]
    r = sc.get(f"/api/portal/rfps/{rfp['id']}")
    assert r.json["rfp"]["requirements"][0]["question"] == "What is your SLA?"

    # suppliers cannot reach buyer endpoints
    assert sc.get("/api/rfps").status_code == 403

    r = buyer.get(f"/api/rfps/{rfp['id']}/suppliers")
    assert r.json["suppliers"][0]["invitationStatus"] == "ACCEPTED"


def test_expired_token_is_rejected_and_marked(app, buyer):
    rfp = create_rfp(buyer)
    contact = invite(buyer, rfp["id"])
    with session_scope(app) as s:
        s.get(SupplierContact, contact["id"]).access_token_expires = utcnow() - timedelta(minutes=1)

    token = contact["magicLink"].split("token=", 1)[1]
    r = app.test_client().get(f"/supplier/access?token={token}")
    assert r.status_code == 401

    r = buyer.get(f"/api/rfps/{rfp['id']}/suppliers")
    assert r.json["suppliers"][0]["invitationStatus"] == "EXPIRED"


def test_unknown_token(client):
    assert client.get("/supplier/access?token=deadbeef").status_code == 404


def test_draft_then_submit(app, buyer):
    rfp = create_rfp(buyer)
    contact = invite(buyer, rfp["id"])
    sc = supplier_client(app, contact)

    r = sc.get(f"/api/portal/rfps/{rfp['id']}/response")
    assert r.json["response"]["status"] == "DRAFT"

    r = sc.post(f"/api/portal/rfps/{rfp['id']}/response/submit")
    assert r.status_code == 400
    assert "empty response" in r.json["error"]

    sc.put(f"/api/portal/rfps/{rfp['id']}/response", json={"structuredAnswers": {"R1": "We offer 99.99%"}})
    r = sc.post(f"/api/portal/rfps/{rfp['id']}/response/submit")
    assert r.json["response"]["status"] == "SUBMITTED"

    r = sc.put(f"/api/portal/rfps/{rfp['id']}/response", json={"notesFromSupplier": "late edit"})
    assert r.status_code == 400

    r = buyer.get(f"/api/rfps/{rfp['id']}/responses?status=submitted")
    assert len(r.json["responses"]) == 1


def test_attachment_upload_and_download(app, buyer):
    rfp = create_rfp(buyer)
    contact = invite(buyer, rfp["id"])
    sc = supplier_client(app, contact)

    r = sc.post(
        f"/api/portal/rfps/{rfp['id']}/response/attachments",
        data={"file": (io.BytesIO(b"%PDF-1.4 pricing"), "pricing sheet.pdf"), "attachmentType": "PRICING_SHEET"},
        content_type="multipart/form-data",
    )
    assert r.status_code == 201, r.json
    attachment = r.json["attachment"]
    assert attachment["fileName"] == "pricing sheet.pdf"

    response_id = sc.get(f"/api/portal/rfps/{rfp['id']}/response").json["response"]["id"]
    r = buyer.get(f"/api/rfps/{rfp['id']}/responses/{response_id}/attachments/{attachment['id']}/download")
    assert r.status_code == 200
    assert r.data == b"%PDF-1.4 pricing"


def test_questions_window_and_answer_broadcast(app, buyer):
    rfp = create_rfp(buyer)
    contact = invite(buyer, rfp["id"])
    sc = supplier_client(app, contact)

    r = sc.post(f"/api/portal/rfps/{rfp['id']}/questions", json={"question": "Is on-prem acceptable?"})
    assert r.status_code == 400
    assert "Questions window is not open" in r.json["error"]

    now = utcnow()
    buyer.put(
        f"/api/rfps/{rfp['id']}/timeline",
        json={"askQuestionsStart": (now - timedelta(days=1)).isoformat(), "askQuestionsEnd": (now + timedelta(days=5)).isoformat()},
    )
    r = sc.post(f"/api/portal/rfps/{rfp['id']}/questions", json={"question": "Is on-prem acceptable?"})
    assert r.status_code == 201
    question_id = r.json["question"]["id"]

    r = buyer.post(
        f"/api/rfps/{rfp['id']}/questions/answer",
        json={"questionId": question_id, "answer": "Cloud only.", "broadcast": True},
    )
    assert r.json["question"]["status"] == "ANSWERED"
    assert r.json["broadcast"]["message"].endswith("A: Cloud only.")

    r = sc.get(f"/api/portal/rfps/{rfp['id']}/questions")
    assert r.json["questions"][0]["answer"] == "Cloud only."
    assert len(r.json["broadcasts"]) == 1


def test_supplier_cannot_see_other_rfp(app, buyer):
    rfp = create_rfp(buyer)
    other = create_rfp(buyer, title="Other")
    contact = submit(app, buyer, rfp["id"], {"R1": "answer"})
    sc = supplier_client(app, contact)
    assert sc.get(f"/api/portal/rfps/{other['id']}").status_code == 403


def test_remove_supplier(buyer):
    rfp = create_rfp(buyer)
    contact = invite(buyer, rfp["id"])
    assert buyer.delete(f"/api/rfps/{rfp['id']}/suppliers/{contact['id']}").status_code == 200
    assert buyer.get(f"/api/rfps/{rfp['id']}/suppliers").json["suppliers"] == []


def test_magic_link_never_adopts_existing_account(app, buyer, other_buyer):
    rfp = create_rfp(buyer)
    contact = invite(buyer, rfp["id"], name="Globex Buyer", email=OTHER_BUYER_EMAIL)
    token = contact["magicLink"].split("token=", 1)[1]

    c = app.test_client()
    r = c.get(f"/supplier/access?token={token}")
    assert r.status_code == 409
    assert c.get("/auth/me").status_code == 401

    # the other company's buyer keeps exactly its own roles
    me = other_buyer.get("/auth/me").json["user"]
    assert me["roles"] == ["buyer"]


def test_each_invitation_gets_its_own_portal_user(app, buyer, other_buyer):
    ours = create_rfp(buyer)
    theirs = create_rfp(other_buyer, title="Globex RFP")
    first = invite(other_buyer, theirs["id"])
    supplier_client(app, first)

    second = invite(buyer, ours["id"])
    sc = supplier_client(app, second)
    # same supplier email, but the new portal user only sees this invitation
    assert [x["rfpId"] for x in sc.get("/api/portal/rfps").json["rfps"]] == [ours["id"]]
    assert sc.get(f"/api/portal/rfps/{theirs['id']}").status_code == 403

    with session_scope(app) as s:
        users = {s.get(SupplierContact, cid).portal_user_id for cid in (first["id"], second["id"])}
    assert len(users) == 2


def _upload(sc, rfp_id, name="doc.pdf"):
    return sc.post(
        f"/api/portal/rfps/{rfp_id}/response/attachments",
        data={"file": (io.BytesIO(b"content"), name)},
        content_type="multipart/form-data",
    )


def test_attachment_limits(app, buyer):
    rfp = create_rfp(buyer)
    contact = invite(buyer, rfp["id"])
    sc = supplier_client(app, contact)

    for i in range(20):
        assert _upload(sc, rfp["id"], f"doc-{i}.pdf").status_code == 201
    r = _upload(sc, rfp["id"], "doc-20.pdf")
    assert r.status_code == 400
    assert r.json["error"] == "Maximum of 20 attachments allowed per response."


def test_no_upload_after_submit(app, buyer):
    rfp = create_rfp(buyer)
    contact = submit(app, buyer, rfp["id"], {"R1": "answer"})
    sc = supplier_client(app, contact)
    r = _upload(sc, rfp["id"])
    assert r.status_code == 400
    assert r.json["error"] == "Cannot add attachments to a submitted response."


def test_question_length_and_blank(app, buyer):
    rfp = create_rfp(buyer)
    now = utcnow()
    buyer.put(
        f"/api/rfps/{rfp['id']}/timeline",
        json={"askQuestionsStart": (now - timedelta(days=1)).isoformat(), "askQuestionsEnd": (now + timedelta(days=5)).isoformat()},
    )
    sc = supplier_client(app, invite(buyer, rfp["id"]))
    url = f"/api/portal/rfps/{rfp['id']}/questions"

    r = sc.post(url, json={"question": "   "})
    assert r.status_code == 400
    assert r.json["error"] == "Question cannot be empty"

    r = sc.post(url, json={"question": "x" * 501})
    assert r.status_code == 400
    assert r.json["error"] == "Question cannot exceed 500 characters"

    # surrounding whitespace does not count towards the limit
    r = sc.post(url, json={"question": "  " + "x" * 500 + "  "})
    assert r.status_code == 201
    assert r.json["question"]["question"] == "x" * 500
