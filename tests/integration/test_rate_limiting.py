def test_public_listing_is_throttled_by_the_auth_preset(client):
    for _ in range(10):
        assert client.get("/api/guest-wishes/invitation/inv-1").status_code == 200

    response = client.get("/api/guest-wishes/invitation/inv-1")

    assert response.status_code == 429
    assert response.json() == {
        "success": False,
        "error": "Too many API request attempts. Please try again later.",
        "retryAfter": 900,
    }
    assert response.headers["Retry-After"] == "900"
    assert response.headers["X-RateLimit-Limit"] == "10"
    assert response.headers["X-RateLimit-Remaining"] == "0"
    assert "X-RateLimit-Reset" in response.headers


def test_headers_count_down(client):
    first = client.get("/api/guest-wishes/invitation/inv-1")
    second = client.get("/api/guest-wishes/invitation/inv-1")

    assert first.headers["X-RateLimit-Remaining"] == "9"
    assert second.headers["X-RateLimit-Remaining"] == "8"


def test_window_resets_after_expiry(client, clock):
    for _ in range(11):
        client.get("/api/guest-wishes/invitation/inv-1")

    clock.advance(15 * 60 * 1000 + 1)

    assert client.get("/api/guest-wishes/invitation/inv-1").status_code == 200


def test_clients_are_counted_separately(client):
    for _ in range(11):
        client.get("/api/guest-wishes/invitation/inv-1", headers={"User-Agent": "browser-a"})

    other = client.get("/api/guest-wishes/invitation/inv-1", headers={"User-Agent": "browser-b"})

    assert other.status_code == 200


def test_login_uses_the_progressive_limiter(client, make_user):
    make_user(email="bride@example.com")
    attempt = {"email": "bride@example.com", "password": "wrong-password"}

    for _ in range(5):
        assert client.post("/api/auth/login", json=attempt).status_code == 401

    response = client.post("/api/auth/login", json=attempt)

    assert response.status_code == 429
    body = response.json()
    assert body["error"] == "Rate limit exceeded. Current penalty: 1x. Please try again later."
    assert body["penaltyMultiplier"] == 1.0
    assert response.headers["X-RateLimit-Penalty"] == "1.00"


def test_rate_limiting_can_be_disabled(client, monkeypatch):
    from invitegate.config import settings

    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", False)

    for _ in range(12):
        response = client.get("/api/guest-wishes/invitation/inv-1")

    assert response.status_code == 200
    assert "X-RateLimit-Limit" not in response.headers
