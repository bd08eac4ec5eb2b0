import pytest
from werkzeug.security import generate_password_hash

from app.fyndr import create_app
from app.fyndr.auth import _login_attempts
from app.fyndr.db import session_scope
from app.fyndr.models import Base, Company, User
from app.fyndr.rbac import ensure_roles

BUYER_EMAIL = "buyer@acme.test"
OTHER_BUYER_EMAIL = "buyer@globex.test"
PASSWORD = "password123"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_LOCAL_ROOT", str(tmp_path / "storage"))
    monkeypatch.setenv("APP_BASE_URL", "http://fyndr.test")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY", "AI_API_KEY"):
        monkeypatch.delenv(k, raising=False)
    _login_attempts.clear()

    app = create_app()
    app.config["TESTING"] = True

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        roles = ensure_roles(s)
        acme = Company(name="Acme Corp")
        globex = Company(name="Globex")
        s.add_all([acme, globex])
        s.flush()
        for email, company in ((BUYER_EMAIL, acme), (OTHER_BUYER_EMAIL, globex)):
            u = User(
                email=email,
                name=email.split("@")[0].title(),
                password_hash=generate_password_hash(PASSWORD),
                company_id=company.id,
                is_active=True,
            )
            u.roles.append(roles["buyer"])
            s.add(u)

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def login(client, email=BUYER_EMAIL, password=PASSWORD):
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.get_json()
    client.environ_base["HTTP_X_CSRF_TOKEN"] = r.get_json()["csrf_token"]
    return r


@pytest.fixture()
def buyer(app):
    c = app.test_client()
    login(c)
    return c


@pytest.fixture()
def other_buyer(app):
    c = app.test_client()
    login(c, OTHER_BUYER_EMAIL)
    return c


def create_rfp(buyer_client, **fields):
    payload = {"title": "Cloud Hosting RFP", "priority": "HIGH", "budget": 250000}
    payload.update(fields)
    r = buyer_client.post("/api/rfps", json=payload)
    assert r.status_code == 201, r.get_json()
    return r.get_json()["rfp"]


def invite(buyer_client, rfp_id, name="Jane Vendor", email="jane@vendor.test", organization="Vendor Inc"):
    r = buyer_client.post(f"/api/rfps/{rfp_id}/suppliers", json={"name": name, "email": email, "organization": organization})
    assert r.status_code == 201, r.get_json()
    return r.get_json()["supplier"]


def supplier_client(app, contact):
    c = app.test_client()
    token = contact["magicLink"].split("token=", 1)[1]
    r = c.get(f"/supplier/access?token={token}")
    assert r.status_code == 200, r.get_json()
    c.environ_base["HTTP_X_CSRF_TOKEN"] = r.get_json()["csrf_token"]
    return c


def submit(app, buyer_client, rfp_id, answers, **contact_fields):
    """Invite a supplier, save `answers` through the portal and submit. Returns the contact dict."""
    contact = invite(buyer_client, rfp_id, **contact_fields)
    sc = supplier_client(app, contact)
    r = sc.put(f"/api/portal/rfps/{rfp_id}/response", json={"structuredAnswers": answers})
    assert r.status_code == 200, r.get_json()
    r = sc.post(f"/api/portal/rfps/{rfp_id}/response/submit")
    assert r.status_code == 200, r.get_json()
    return contact
