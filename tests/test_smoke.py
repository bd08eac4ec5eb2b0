from conftest import BUYER_EMAIL, PASSWORD, login


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_healthz_plain(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_anonymous_api_is_401(client):
    r = client.get("/api/rfps")
    assert r.status_code == 401
    assert r.json["error"]


def test_login_and_me(client):
    r = login(client)
    assert r.json["user"]["email"] == BUYER_EMAIL
    assert "buyer" in r.json["user"]["roles"]

    r = client.get("/auth/me")
    assert r.status_code == 200
    assert r.json["user"]["companyName"] == "Acme Corp"
    assert r.json["csrf_token"]


def test_login_invalid_credentials(client):
    r = client.post("/auth/login", json={"email": BUYER_EMAIL, "password": "wrong"})
    assert r.status_code == 401
    assert r.json["error"] == "Invalid credentials"


def test_login_rate_limited(client):
    for _ in range(5):
        client.post("/auth/login", json={"email": BUYER_EMAIL, "password": "wrong"})
    r = client.post("/auth/login", json={"email": BUYER_EMAIL, "password": PASSWORD})
    assert r.status_code == 429


def test_mutation_without_csrf_rejected(client):
    login(client)
    client.environ_base.pop("HTTP_X_CSRF_TOKEN")
    r = client.post("/api/rfps", json={"title": "No token"})
    assert r.status_code == 400
    assert "CSRF" in r.json["error"]


def test_signup_creates_company_and_buyer(client):
    r = client.post(
        "/auth/signup",
        json={"companyName": "Initech", "name": "Peter", "email": "peter@initech.test", "password": "longenough"},
    )
    assert r.status_code == 201
    user = r.json["user"]
    assert user["companyName"] == "Initech"
    assert user["roles"] == ["buyer"]

    # signed in straight away
    client.environ_base["HTTP_X_CSRF_TOKEN"] = r.json["csrf_token"]
    assert client.get("/api/rfps").status_code == 200


def test_signup_validation(client):
    r = client.post("/auth/signup", json={"companyName": "X", "name": "Y", "email": "bad", "password": "longenough"})
    assert r.status_code == 400
    r = client.post("/auth/signup", json={"companyName": "X", "name": "Y", "email": "y@x.test", "password": "short"})
    assert r.status_code == 400
    r = client.post("/auth/signup", json={"companyName": "X", "name": "Y", "email": BUYER_EMAIL, "password": "longenough"})
    assert r.status_code == 409


def test_logout(buyer):
    r = buyer.post("/auth/logout")
    assert r.status_code == 200
    assert buyer.get("/api/rfps").status_code == 401
