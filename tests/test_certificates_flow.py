import re

import pytest

from devday.app import db
from devday.models import Team
from devday.services.issuance import get_certificate_services
from devday.shared.errors import InvalidInputError, RenderError

TOKEN_URL_RE = re.compile(r"^/certificates/download/[a-f0-9]{32}$")


def _issue(client, att_code="ATT-001"):
    return client.post("/certificates", json={"att_code": att_code})


@pytest.mark.smoke
def test_issue_and_download_certificates(app, client, seed_team):
    seed_team()

    resp = _issue(client)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["message"] == "Certificate generated successfully"
    assert body["certificateData"]["teamName"] == "Team X"
    assert body["certificateData"]["consumerNumber"] == "C-1001"
    assert body["certificateData"]["members"] == ["Alice", "Bob"]
    assert body["certificateData"]["competition"] == "Robotics"
    assert body["certificateData"]["eventDate"].endswith("Z")
    assert body["failedMembers"] == []

    tokens = body["downloadTokens"]
    assert [t["memberName"] for t in tokens] == ["Alice", "Bob"]
    assert [t["memberIndex"] for t in tokens] == [0, 1]
    assert all(TOKEN_URL_RE.match(t["downloadUrl"]) for t in tokens)

    first = client.get(tokens[0]["downloadUrl"])
    assert first.status_code == 200
    assert first.mimetype == "application/pdf"
    assert first.headers["Content-Disposition"] == 'attachment; filename="Alice-Certificate.pdf"'
    assert first.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"
    assert first.headers["Pragma"] == "no-cache"
    assert first.headers["Expires"] == "0"
    assert first.data.startswith(b"%PDF")

    again = client.get(tokens[0]["downloadUrl"])
    assert again.data == first.data

    second = client.get(tokens[1]["downloadUrl"])
    assert second.headers["Content-Disposition"] == 'attachment; filename="Bob-Certificate.pdf"'


def test_numeric_attendance_code_accepted(app, client, seed_team):
    seed_team(att_code="12345")
    resp = _issue(client, 12345)
    assert resp.status_code == 200
    assert len(resp.get_json()["downloadTokens"]) == 2


def test_event_not_ended_is_rejected(app, client, seed_team):
    seed_team(ended=False)
    resp = _issue(client)
    assert resp.status_code == 400
    assert resp.get_json() == {
        "message": "Certificates are only available after the event has ended"
    }
    assert len(get_certificate_services().store) == 0


def test_attendance_not_marked_is_rejected(app, client, seed_team):
    seed_team(attendance=False)
    resp = _issue(client)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Certificate unavailable: Attendance was not marked"


@pytest.mark.parametrize("payload", [{}, {"att_code": ""}, {"att_code": "   "}, {"att_code": None}])
def test_missing_attendance_code(client, payload):
    resp = client.post("/certificates", json=payload)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Attendance code is required"


def test_non_json_body_treated_as_missing_code(client):
    resp = client.post("/certificates", data="att_code=ATT-001")
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Attendance code is required"


def test_unknown_attendance_code(client):
    resp = _issue(client, "NOPE")
    assert resp.status_code == 404
    assert resp.get_json()["message"] == "Team not found"


def test_missing_event(app, client, seed_team):
    seed_team(with_event=False)
    resp = _issue(client)
    assert resp.status_code == 404
    assert resp.get_json()["message"] == "Event not found"


def test_unknown_download_token(client):
    resp = client.get("/certificates/download/" + "0" * 32)
    assert resp.status_code == 404
    assert resp.get_json() == {"message": "Certificate not found or expired"}


def test_expired_download_token(app, client, seed_team, clock, monkeypatch):
    seed_team()
    monkeypatch.setattr(get_certificate_services().store, "_clock", clock)
    url = _issue(client).get_json()["downloadTokens"][0]["downloadUrl"]

    clock.advance(61)
    resp = client.get(url)
    assert resp.status_code == 404
    assert resp.get_json()["message"] == "Certificate not found or expired"


def test_partial_render_failure_reports_failed_members(app, client, seed_team, monkeypatch):
    seed_team(members=("Alice", "Bob", "Cara"))
    renderer = get_certificate_services().renderer
    real_render = renderer.render

    def render(name, competition, team=""):
        if name == "Bob":
            raise RenderError("render failed for Bob")
        return real_render(name, competition, team)

    monkeypatch.setattr(renderer, "render", render)
    body = _issue(client).get_json()
    assert [t["memberName"] for t in body["downloadTokens"]] == ["Alice", "Cara"]
    assert [t["memberIndex"] for t in body["downloadTokens"]] == [0, 1]
    assert body["failedMembers"] == ["Bob"]
    assert get_certificate_services().breaker.consecutive_failures == 0


def test_rate_limit_rejects_21st_request(client):
    for _ in range(20):
        assert client.post("/certificates", json={}).status_code == 400

    resp = client.post("/certificates", json={})
    assert resp.status_code == 429
    body = resp.get_json()
    assert body["message"] == "Too many requests, please try again later"
    assert body["retryAfter"] > 0
    assert int(resp.headers["Retry-After"]) == body["retryAfter"]

    # downloads have their own allowance
    assert client.get("/certificates/download/" + "0" * 32).status_code == 404


def test_render_failures_open_the_breaker(app_factory, tmp_path, monkeypatch, seed_team):
    failing_app = app_factory(CERT_TEMPLATE_PATHS=[str(tmp_path / "missing.png")])
    client = failing_app.test_client()
    with failing_app.app_context():
        seed_team()
        services = get_certificate_services()
        renderer = services.renderer
        calls = {"n": 0}
        real_render = renderer.render

        def counting_render(*args, **kwargs):
            calls["n"] += 1
            return real_render(*args, **kwargs)

        monkeypatch.setattr(renderer, "render", counting_render)

        for _ in range(5):
            resp = _issue(client)
            assert resp.status_code == 500
            assert resp.get_json() == {"message": "Error generating certificate"}
        assert services.breaker.state == "open"
        rendered = calls["n"]

        resp = _issue(client)
        assert resp.status_code == 503
        body = resp.get_json()
        assert body["message"] == (
            "Certificate generation temporarily unavailable due to system load"
        )
        assert body["retryAfter"] > 0
        assert "Retry-After" in resp.headers
        assert calls["n"] == rendered

        metrics = services.metrics.snapshot()
        assert metrics["totalRequests"] == 6
        assert metrics["failedRequests"] == 6
        assert "all team members" in metrics["lastError"]


def test_unexpected_error_is_generic_and_counts_as_failure(app, client, seed_team, monkeypatch):
    seed_team()
    services = get_certificate_services()

    def broken_lookup(att_code):
        raise RuntimeError("db down")

    monkeypatch.setattr(services.issuer.directory, "find_team", broken_lookup)
    resp = _issue(client)
    assert resp.status_code == 500
    assert resp.get_json() == {"message": "Error generating certificate"}
    assert services.breaker.failure_count == 1
    assert services.metrics.snapshot()["lastError"] == "db down"


def test_blank_leader_is_left_off_the_roster(app, seed_team):
    seed_team(members=("   ", "Bob"))
    team = db.session.query(Team).filter_by(att_code="ATT-001").one()
    assert team.member_names == ["Bob"]


def test_blank_roster_is_rejected_without_tripping_the_breaker(app, client, seed_team):
    seed_team(members=("   ",))
    seed_team(att_code="ATT-002", team_name="Team Y", members=("Cara",))
    services = get_certificate_services()

    for _ in range(5):
        resp = _issue(client)
        assert resp.status_code == 400
        assert resp.get_json() == {"message": "No team members to issue certificates for"}

    assert services.breaker.state == "closed"
    assert services.breaker.failure_count == 0
    assert _issue(client, "ATT-002").status_code == 200


def test_invalid_member_data_does_not_count_against_the_breaker(
    app, client, seed_team, monkeypatch
):
    seed_team()
    services = get_certificate_services()

    def reject(*args, **kwargs):
        raise InvalidInputError("recipientName is required")

    monkeypatch.setattr(services.renderer, "render", reject)
    for _ in range(6):
        resp = _issue(client)
        assert resp.status_code == 500
        assert resp.get_json() == {"message": "Error generating certificate"}

    assert services.breaker.state == "closed"
    assert services.breaker.failure_count == 0
    assert services.breaker.total_requests == 6


def test_health_reports_components(app, client, seed_team):
    seed_team()
    _issue(client)

    resp = client.get("/certificates/health")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "healthy"
    assert body["templateStatus"][0] == {
        "name": "primary",
        "file": "certificateDesign2025.png",
        "exists": True,
    }
    assert body["templateStatus"][1]["exists"] is False
    assert body["fontStatus"][0]["exists"] is False
    assert body["certificateStore"]["currentSize"] == 2
    assert body["circuitBreaker"]["status"] == "closed"
    assert body["rateLimiting"] == {"maxRequests": 20, "windowSeconds": 60}
    assert body["metrics"]["totalRequests"] == 1
    assert body["metrics"]["successRate"] == "100.00%"
    assert body["certificateGeneration"]["successful"] is True
    assert set(body["memory"]) == {"rssMB", "vmsMB", "percentage"}
    assert body["memory"]["rssMB"] > 0


def test_health_unhealthy_without_templates(app_factory, tmp_path):
    broken = app_factory(CERT_TEMPLATE_PATHS=[str(tmp_path / "missing.png")])
    resp = broken.test_client().get("/certificates/health")
    assert resp.status_code == 500
    body = resp.get_json()
    assert body["status"] == "unhealthy"
    assert body["certificateGeneration"]["successful"] is False
    assert body["metrics"]["successRate"] == "No requests yet"


def test_teams_are_isolated_per_attendance_code(app, client, seed_team):
    seed_team(att_code="ATT-001", team_name="Team X", members=("Alice", "Bob"))
    seed_team(att_code="ATT-002", team_name="Team Y", members=("Cara",))

    body = _issue(client, "ATT-002").get_json()
    assert body["certificateData"]["teamName"] == "Team Y"
    assert [t["memberName"] for t in body["downloadTokens"]] == ["Cara"]
    assert db.session.query(Team).count() == 2
