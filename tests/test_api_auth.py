from conftest import bearer, login, register


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json()["status"] == "healthy"


def test_unknown_route_is_json_404(client):
    response = client.get("/api/nope")
    assert response.status_code == 404
    assert response.get_json() == {"error": "Route not found"}


def test_register_and_login(client):
    response = register(client, email=" User1@Example.com ")
    assert response.status_code == 201
    body = response.get_json()
    assert body["user"]["email"] == "user1@example.com"
    assert body["accessToken"] and body["refreshToken"]

    response = login(client)
    assert response.status_code == 200
    assert response.get_json()["user"]["subscriptionTier"] == "free"


def test_register_validation_and_conflict(client):
    response = client.post("/api/auth/register", json={"email": "bad", "password": "short"})
    assert response.status_code == 400
    fields = {e["field"] for e in response.get_json()["errors"]}
    assert fields == {"email", "password", "firstName", "lastName"}

    assert register(client).status_code == 201
    response = register(client)
    assert response.status_code == 409
    assert response.get_json()["error"] == "Email already registered"


def test_login_with_wrong_password(client):
    register(client)
    response = login(client, password="wrong-password")
    assert response.status_code == 401
    assert response.get_json()["error"] == "Invalid credentials"


def test_protected_route_requires_token(client):
    assert client.get("/api/transactions").get_json()["error"] == "Access token required"
    response = client.get("/api/transactions", headers=bearer("garbage"))
    assert response.status_code == 401
    assert response.get_json()["error"] == "Invalid token"


def test_refresh_rotates_token(client):
    tokens = register(client).get_json()
    response = client.post("/api/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert response.status_code == 200
    rotated = response.get_json()
    assert client.get("/api/user/profile", headers=bearer(rotated["accessToken"])).status_code == 200

    reused = client.post("/api/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert reused.status_code == 401
    assert reused.get_json()["error"] == "Invalid refresh token"


def test_logout_revokes_refresh_token(client):
    tokens = register(client).get_json()
    response = client.post("/api/auth/logout", json={"refreshToken": tokens["refreshToken"]})
    assert response.status_code == 200
    response = client.post("/api/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert response.status_code == 401


def test_refresh_requires_token(client):
    response = client.post("/api/auth/refresh", json={})
    assert response.status_code == 401
    assert response.get_json()["error"] == "Refresh token required"


def test_forgot_password_does_not_leak_accounts(client):
    register(client)
    known = client.post("/api/auth/forgot-password", json={"email": "user1@example.com"})
    unknown = client.post("/api/auth/forgot-password", json={"email": "ghost@example.com"})
    assert known.status_code == unknown.status_code == 200
    assert known.get_json() == unknown.get_json()


def test_login_attempts_are_rate_limited(client):
    register(client)
    for _ in range(4):
        assert login(client, password="wrong-password").status_code == 401
    response = login(client)
    assert response.status_code == 429
    assert response.get_json()["error"] == "Too many login attempts, please try again later."


def test_health_is_not_rate_limited(client):
    for _ in range(6):
        assert client.get("/health").status_code == 200


def test_cors_preflight_allows_frontend_origin(tmp_path):
    from finance_tracker.webapp import create_app

    app = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test",
            "DATABASE": str(tmp_path / "cors.sqlite"),
            "FRONTEND_URL": "https://dashboard.example.com",
        }
    )
    client = app.test_client()
    response = client.options(
        "/api/transactions",
        headers={"Origin": "https://dashboard.example.com", "Access-Control-Request-Method": "GET"},
    )
    assert response.headers["Access-Control-Allow-Origin"] == "https://dashboard.example.com"
    assert response.headers["Access-Control-Allow-Credentials"] == "true"

    other = client.options(
        "/api/transactions",
        headers={"Origin": "https://evil.example.com", "Access-Control-Request-Method": "GET"},
    )
    assert "Access-Control-Allow-Origin" not in other.headers
