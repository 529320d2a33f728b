import pytest

from invitegate.middleware.pipeline import (
    CSRFIssueStage,
    Proceed,
    Respond,
    SecurityContext,
    SecurityPipeline,
    ValidationStage,
    route_policy,
)
from invitegate.middleware.request_validation import FieldRule

IP = "198.51.100.20"
UA = "pytest-agent"

WISH_SCHEMA = {
    "invitation_id": FieldRule(type="string", required=True),
    "name": FieldRule(type="string", required=True, min=2, max=100),
    "message": FieldRule(type="string", required=True, min=5, max=500),
}


def _ctx(method="POST", body=None, headers=None, **kwargs):
    return SecurityContext(
        method=method,
        path="/api/guest-wishes",
        ip=IP,
        user_agent=UA,
        headers=headers or {},
        body=body,
        **kwargs,
    )


def _wish(message="Selamat pengantin baru, semoga bahagia"):
    return {"invitation_id": "inv-1", "name": "Aminah", "message": message}


def test_clean_submission_proceeds_with_rate_limit_headers(security):
    token = security.csrf.issue(IP, UA)
    pipeline = security.pipeline("guest_wish", body_schema=WISH_SCHEMA)

    outcome = pipeline.run(_ctx(body=_wish(), headers={"x-csrf-token": token}))

    assert isinstance(outcome, Proceed)
    assert outcome.headers["X-RateLimit-Limit"] == "10"
    assert outcome.headers["X-RateLimit-Remaining"] == "9"


def test_csrf_runs_before_validation(security):
    pipeline = security.pipeline("guest_wish", body_schema=WISH_SCHEMA)

    outcome = pipeline.run(_ctx(body={}))

    assert isinstance(outcome, Respond)
    assert outcome.status_code == 403
    # headers gathered before the rejection are kept
    assert "X-RateLimit-Limit" in outcome.headers


def test_validation_errors_are_listed(security):
    token = security.csrf.issue(IP, UA)
    pipeline = security.pipeline("guest_wish", body_schema=WISH_SCHEMA)

    outcome = pipeline.run(_ctx(body={"name": "A"}, headers={"x-csrf-token": token}))

    assert outcome.status_code == 400
    assert outcome.body == {
        "success": False,
        "error": "Validation failed",
        "details": [
            "invitation_id is required",
            "name must be at least 2 characters long",
            "message is required",
        ],
    }


def test_profanity_is_rejected_with_reason(security):
    token = security.csrf.issue(IP, UA)
    pipeline = security.pipeline("guest_wish", body_schema=WISH_SCHEMA)

    outcome = pipeline.run(
        _ctx(body=_wish("damn this shit, what the hell, you bastard"), headers={"x-csrf-token": token})
    )

    assert outcome.status_code == 400
    assert outcome.body == {
        "success": False,
        "error": "Content not allowed",
        "reason": "Content contains inappropriate language",
    }


def test_field_wrappers_run_for_guest_wishes(security):
    token = security.csrf.issue(IP, UA)
    pipeline = security.pipeline("guest_wish", body_schema=WISH_SCHEMA)

    outcome = pipeline.run(_ctx(body=_wish("Tahniah!"), headers={"x-csrf-token": token}))

    assert outcome.status_code == 400
    assert outcome.body["reason"] == "Wish length is invalid (must be 10-300 characters)"


def test_rate_limit_runs_first_and_reports_retry_after(security):
    pipeline = security.pipeline("guest_wish", body_schema=WISH_SCHEMA)
    for _ in range(10):
        pipeline.run(_ctx(body={}))

    outcome = pipeline.run(_ctx(body={}))

    assert outcome.status_code == 429
    assert outcome.body["success"] is False
    assert outcome.body["error"] == "Too many API request attempts. Please try again later."
    assert outcome.body["retryAfter"] == 3600
    assert outcome.headers["Retry-After"] == "3600"


def test_route_families_have_independent_limits(security):
    wishes = security.pipeline("guest_wish")
    rsvps = security.pipeline("rsvp")
    for _ in range(11):
        wishes.run(_ctx(body={}))

    assert wishes.run(_ctx(body={})).status_code == 429
    assert rsvps.run(_ctx(body={})).status_code == 403  # reaches CSRF, not throttled


def test_authentication_required_for_profile(security):
    outcome = security.pipeline("profile").run(_ctx(method="GET"))

    assert outcome.status_code == 401
    assert outcome.body["error"] == "Access denied. No token provided or invalid format."


def test_safe_request_gets_csrf_token(security, make_user):
    _, token = make_user()
    outcome = security.pipeline("profile").run(
        _ctx(method="GET", headers={"authorization": f"Bearer {token}"})
    )

    assert isinstance(outcome, Proceed)
    csrf = outcome.headers["X-CSRF-Token"]
    cookie = outcome.cookies[0]
    assert cookie.name == "csrf-token"
    assert cookie.value == csrf
    assert cookie.httponly is False
    assert cookie.samesite == "strict"
    assert cookie.max_age == 3600


def test_stage_crash_becomes_500(security):
    def broken(ctx):
        raise RuntimeError("boom")

    pipeline = SecurityPipeline("broken", [ValidationStage(), broken, CSRFIssueStage(security.csrf)])
    outcome = pipeline.run(_ctx(method="GET"))

    assert outcome == Respond(
        status_code=500, body={"success": False, "error": "Internal server error"}
    )


def test_malformed_and_oversized_bodies(security):
    stage = ValidationStage()

    malformed = stage(_ctx(body_malformed=True))
    assert malformed.body["details"] == ["Request body must be valid JSON"]

    oversized = stage(_ctx(body={"message": "x" * 10001}))
    assert oversized.body == {
        "success": False,
        "error": "Validation failed",
        "details": ["Input too large"],
    }


def test_query_and_param_failures_have_their_own_messages():
    stage = ValidationStage(
        query_schema={"page": FieldRule(type="number", min=1)},
        params_schema={"id": FieldRule(type="string", required=True)},
    )

    params_failure = stage(_ctx(method="GET", query={"page": "2"}))
    assert params_failure.body["error"] == "Parameter validation failed"

    query_failure = stage(_ctx(method="GET", params={"id": "x"}, query={"page": "zero"}))
    assert query_failure.body["error"] == "Query validation failed"
    assert query_failure.body["details"] == ["page must be a valid number"]


def test_presets():
    assert route_policy("auth").require_csrf is False
    assert route_policy("auth").require_auth is False
    assert route_policy("rsvp").content_moderation.content_type == "rsvp"
    assert route_policy("guest_wish").content_moderation.content_type == "guest-wish"
    assert route_policy("file_upload").file_upload.enabled
    assert route_policy("file_upload").content_moderation.enabled is False
    for preset in ("auth", "profile", "admin"):
        moderation = route_policy(preset).content_moderation
        assert moderation.enabled
        assert moderation.content_type == "general"
    assert route_policy("admin").rate_limit.max_attempts == 100
    with pytest.raises(ValueError):
        route_policy("nope")


def test_general_moderation_scores_the_whole_body(security, make_user):
    _, token = make_user()
    csrf = security.csrf.issue(IP, UA)
    headers = {"authorization": f"Bearer {token}", "x-csrf-token": csrf}
    pipeline = security.pipeline("profile")

    rejected = pipeline.run(
        _ctx(method="PUT", body={"full_name": "<script>alert(1)</script>"}, headers=headers)
    )
    assert rejected.status_code == 400
    assert rejected.body == {
        "success": False,
        "error": "Content not allowed",
        "reason": "Content contains potentially malicious code or scripts",
    }

    # no name/message wrappers for general content: a short name is fine
    allowed = pipeline.run(_ctx(method="PUT", body={"full_name": "Al"}, headers=headers))
    assert isinstance(allowed, Proceed)
