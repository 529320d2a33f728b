from invitegate.middleware.csrf import EXPIRED_MESSAGE, MISSING_MESSAGE


def _wish(message="Selamat pengantin baru, semoga berbahagia selalu"):
    return {"invitation_id": "inv-1", "name": "Aminah", "message": message}


def test_clean_wish_is_stored(client, csrf_token, content):
    token = csrf_token()

    response = client.post("/api/guest-wishes", json=_wish(), headers={"X-CSRF-Token": token})

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["name"] == "Aminah"
    assert len(content.wishes("inv-1")) == 1
    assert response.headers["X-RateLimit-Limit"] == "10"


def test_profane_wish_is_blocked_before_the_handler(client, csrf_token, content):
    token = csrf_token()

    response = client.post(
        "/api/guest-wishes",
        json=_wish("damn this shit, what the hell, you bastard"),
        headers={"X-CSRF-Token": token},
    )

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": "Content not allowed",
        "reason": "Content contains inappropriate language",
    }
    assert content.wishes() == []


def test_script_injection_is_blocked(client, csrf_token, content):
    token = csrf_token()

    response = client.post(
        "/api/guest-wishes",
        json=_wish("<script>document.location='https://evil.example'</script>"),
        headers={"X-CSRF-Token": token},
    )

    assert response.status_code == 400
    assert response.json()["reason"] == "Content contains potentially malicious code or scripts"
    assert content.wishes() == []


def test_csrf_token_required(client, csrf_token, content):
    csrf_token()

    response = client.post("/api/guest-wishes", json=_wish())

    assert response.status_code == 403
    assert response.json() == {"success": False, "error": MISSING_MESSAGE}
    assert content.wishes() == []


def test_without_prior_token_the_session_is_unknown(client):
    response = client.post("/api/guest-wishes", json=_wish(), headers={"X-CSRF-Token": "a" * 64})

    assert response.status_code == 403
    assert response.json()["error"] == EXPIRED_MESSAGE


def test_token_in_body_is_accepted(client, csrf_token):
    token = csrf_token()

    response = client.post("/api/guest-wishes", json={**_wish(), "csrf_token": token})

    assert response.status_code == 201


def test_validation_errors(client, csrf_token):
    token = csrf_token()

    response = client.post(
        "/api/guest-wishes",
        json={"invitation_id": "inv-1", "message": "Hi"},
        headers={"X-CSRF-Token": token},
    )

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": "Validation failed",
        "details": ["name is required", "message must be at least 5 characters long"],
    }


def test_malformed_json(client, csrf_token):
    token = csrf_token()

    response = client.post(
        "/api/guest-wishes",
        content=b"{not json",
        headers={"X-CSRF-Token": token, "Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["details"] == ["Request body must be valid JSON"]


def test_rsvp_submission(client, csrf_token, content):
    token = csrf_token()
    payload = {
        "invitation_id": "inv-9",
        "guest_name": "Nur Aisyah",
        "pax": 2,
        "is_attending": True,
        "phone_number": "0123467890",
        "message": "See you at the reception!",
    }

    response = client.post("/api/rsvps", json=payload, headers={"X-CSRF-Token": token})

    assert response.status_code == 201
    assert content.rsvps("inv-9")[0]["guest_name"] == "Nur Aisyah"


def test_rsvp_invalid_guest_name_is_moderated(client, csrf_token, content):
    token = csrf_token()
    payload = {
        "invitation_id": "inv-9",
        "guest_name": "xX_guest_Xx",
        "pax": 1,
        "is_attending": False,
        "phone_number": "0123467890",
    }

    response = client.post("/api/rsvps", json=payload, headers={"X-CSRF-Token": token})

    assert response.status_code == 400
    assert response.json()["reason"] == "Name contains invalid characters"
    assert content.rsvps() == []


def test_public_wish_listing(client, csrf_token):
    token = csrf_token()
    client.post("/api/guest-wishes", json=_wish(), headers={"X-CSRF-Token": token})

    response = client.get("/api/guest-wishes/invitation/inv-1")

    assert response.status_code == 200
    assert [w["name"] for w in response.json()["data"]] == ["Aminah"]


def test_non_finite_numbers_are_not_json(client, csrf_token, content):
    token = csrf_token()
    raw = (
        b'{"invitation_id":"inv-9","guest_name":"Nur Aisyah","pax":NaN,'
        b'"is_attending":true,"phone_number":"0123467890"}'
    )

    response = client.post(
        "/api/rsvps",
        content=raw,
        headers={"X-CSRF-Token": token, "Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["details"] == ["Request body must be valid JSON"]
    assert content.rsvps() == []


def test_rsvps_sort_numerically(client, content, make_user):
    _, owner_token = make_user(email="couple@example.com")
    for name, pax in (("Ali", 10), ("Badrul", 2), ("Chong", 7)):
        content.add_rsvp("inv-9", {"guest_name": name, "pax": pax})

    response = client.get(
        "/api/rsvps",
        params={"invitation_id": "inv-9", "sortBy": "pax", "sortOrder": "asc"},
        headers={"Authorization": f"Bearer {owner_token}"},
    )

    assert response.status_code == 200
    assert [r["pax"] for r in response.json()["data"]["rsvps"]] == [2, 7, 10]
