from invitegate.auth.verify import MISSING_TOKEN_MESSAGE
from invitegate.middleware.csrf import EXPIRED_MESSAGE


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


def _profile_csrf(client, token):
    response = client.get("/api/profile", headers=_bearer(token))
    assert response.status_code == 200
    return response.headers["X-CSRF-Token"]


def test_register_then_login(client):
    registration = client.post(
        "/api/auth/register",
        json={"email": "Bride@Example.com", "password": "correct-horse-battery", "full_name": "Siti"},
    )

    assert registration.status_code == 201
    user = registration.json()["data"]["user"]
    assert user["email"] == "bride@example.com"
    assert user["membership_tier"] == "free"

    login = client.post(
        "/api/auth/login",
        json={"email": "bride@example.com", "password": "correct-horse-battery"},
    )

    assert login.status_code == 200
    token = login.json()["data"]["token"]
    assert client.get("/api/profile", headers=_bearer(token)).json()["data"]["full_name"] == "Siti"


def test_duplicate_registration(client, make_user):
    make_user(email="bride@example.com")

    response = client.post(
        "/api/auth/register",
        json={"email": "bride@example.com", "password": "correct-horse-battery", "full_name": "Siti"},
    )

    assert response.status_code == 400
    assert response.json()["details"] == ["email is already registered"]


def test_login_with_bad_password(client, make_user):
    make_user(email="bride@example.com")

    response = client.post(
        "/api/auth/login", json={"email": "bride@example.com", "password": "nope-nope"}
    )

    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Invalid email or password."}


def test_profile_requires_a_token(client):
    response = client.get("/api/profile")

    assert response.status_code == 401
    assert response.json() == {"success": False, "error": MISSING_TOKEN_MESSAGE}


def test_profile_update_needs_csrf(client, make_user):
    _, token = make_user()
    csrf = _profile_csrf(client, token)

    rejected = client.put("/api/profile", json={"full_name": "Ahmad"}, headers=_bearer(token))
    assert rejected.status_code == 403

    updated = client.put(
        "/api/profile",
        json={"full_name": "Ahmad"},
        headers={**_bearer(token), "X-CSRF-Token": csrf},
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["full_name"] == "Ahmad"


def test_logout_invalidates_the_csrf_session(client, make_user):
    _, token = make_user()
    csrf = _profile_csrf(client, token)
    headers = {**_bearer(token), "X-CSRF-Token": csrf}

    logout = client.post("/api/auth/logout", headers=headers)
    assert logout.status_code == 200
    assert logout.json()["message"] == "Logged out successfully"

    after = client.put("/api/profile", json={"full_name": "Ahmad"}, headers=headers)
    assert after.status_code == 403
    assert after.json()["error"] == EXPIRED_MESSAGE


def test_insights_require_pro_membership(client, make_user):
    _, free_token = make_user(email="free@example.com", tier="free")

    response = client.get("/api/profile/insights", headers=_bearer(free_token))

    assert response.status_code == 403
    assert response.json() == {
        "success": False,
        "error": "Pro membership or higher required for this feature.",
    }


def test_insights_allow_pro_and_elite(client, make_user):
    for tier in ("pro", "elite"):
        _, token = make_user(email=f"{tier}@example.com", tier=tier)

        response = client.get("/api/profile/insights", headers=_bearer(token))

        assert response.status_code == 200
        assert response.json()["data"]["membership_tier"] == tier


def test_admin_stats_are_admin_only(client, make_user):
    _, user_token = make_user(email="guest@example.com")
    _, admin_token = make_user(email="admin@example.com", role="admin")

    denied = client.get("/api/admin/security/stats", headers=_bearer(user_token))
    assert denied.status_code == 403
    assert denied.json()["error"] == "Access denied. Admin privileges required."

    allowed = client.get("/api/admin/security/stats", headers=_bearer(admin_token))
    assert allowed.status_code == 200
    assert allowed.json()["data"]["maps"]["csrf"] >= 1


def test_admin_sweep(client, make_user):
    _, admin_token = make_user(email="admin@example.com", role="admin")
    csrf = client.get("/api/admin/security/stats", headers=_bearer(admin_token)).headers["X-CSRF-Token"]

    response = client.post(
        "/api/admin/security/sweep",
        headers={**_bearer(admin_token), "X-CSRF-Token": csrf},
    )

    assert response.status_code == 200
    assert response.json()["data"]["removed"] == 0


def test_registration_with_script_is_moderated(client, users):
    response = client.post(
        "/api/auth/register",
        json={
            "email": "bride@example.com",
            "password": "correct-horse-battery",
            "full_name": "<script>alert(1)</script>",
        },
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Content not allowed"
    assert users.find_by_email("bride@example.com") is None


def test_profile_update_with_script_is_moderated(client, make_user, users):
    record, token = make_user()
    csrf = _profile_csrf(client, token)

    response = client.put(
        "/api/profile",
        json={"full_name": "<script>alert(1)</script>"},
        headers={**_bearer(token), "X-CSRF-Token": csrf},
    )

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": "Content not allowed",
        "reason": "Content contains potentially malicious code or scripts",
    }
    assert users.get(record.id).full_name is None


def test_logout_limit_counts_the_signed_in_user(client, make_user, security):
    security.limiters["sensitive_operation"].max_attempts = 1
    _, first_token = make_user(email="first@example.com")
    _, second_token = make_user(email="second@example.com")

    for token in (first_token, second_token):
        csrf = _profile_csrf(client, token)
        response = client.post("/api/auth/logout", headers={**_bearer(token), "X-CSRF-Token": csrf})
        assert response.status_code == 200
