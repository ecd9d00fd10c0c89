import pytest

from devday.app import db
from devday.models import Team
from devday.services.attendance import distance_meters

CENTER = (24.8568496, 67.2644237)


def _mark(client, **payload):
    return client.post("/attendance/mark", json=payload)


def test_mark_attendance_inside_geofence(app, client, seed_team):
    seed_team(attendance=False)
    resp = _mark(client, att_code="ATT-001", latitude=CENTER[0], longitude=CENTER[1] + 0.001)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["message"] == "Attendance marked successfully"
    assert body["team"]["attendance"] is True
    assert body["team"]["members"] == ["Alice", "Bob"]

    db.session.expire_all()
    team = db.session.query(Team).filter_by(att_code="ATT-001").one()
    assert team.attendance is True


def test_coordinates_as_strings_accepted(app, client, seed_team):
    seed_team(attendance=False)
    resp = _mark(client, att_code="ATT-001", latitude=str(CENTER[0]), longitude=str(CENTER[1]))
    assert resp.status_code == 200


def test_out_of_range_is_rejected(app, client, seed_team):
    seed_team(attendance=False)
    resp = _mark(client, att_code="ATT-001", latitude=CENTER[0] + 0.01, longitude=CENTER[1])
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "User is out of allowed range. Attendance not marked."
    db.session.expire_all()
    assert db.session.query(Team).filter_by(att_code="ATT-001").one().attendance is False


def test_already_marked(app, client, seed_team):
    seed_team(attendance=True)
    resp = _mark(client, att_code="ATT-001", latitude=CENTER[0], longitude=CENTER[1])
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Attendance is already marked for this team"


def test_unknown_team(client):
    resp = _mark(client, att_code="NOPE", latitude=CENTER[0], longitude=CENTER[1])
    assert resp.status_code == 404
    assert resp.get_json()["message"] == "Team not found"


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"att_code": "ATT-001", "latitude": CENTER[0]},
        {"att_code": "", "latitude": CENTER[0], "longitude": CENTER[1]},
        {"latitude": CENTER[0], "longitude": CENTER[1]},
    ],
)
def test_missing_parameters(client, payload):
    resp = client.post("/attendance/mark", json=payload)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Parameters missing (att_code, latitude, longitude)"


@pytest.mark.parametrize("latitude", ["north", True, float("nan")])
def test_non_numeric_coordinates(client, latitude):
    resp = client.post(
        "/attendance/mark",
        json={"att_code": "ATT-001", "latitude": latitude, "longitude": CENTER[1]},
    )
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "latitude must be a number"


def test_radius_is_configurable(app_factory, seed_team):
    wide = app_factory(ATTENDANCE_RADIUS_METERS=5000)
    with wide.app_context():
        seed_team(attendance=False)
    resp = wide.test_client().post(
        "/attendance/mark",
        json={"att_code": "ATT-001", "latitude": CENTER[0] + 0.01, "longitude": CENTER[1]},
    )
    assert resp.status_code == 200


def test_distance_meters():
    assert distance_meters(*CENTER, *CENTER) == 0
    one_degree = distance_meters(0.0, 0.0, 1.0, 0.0)
    assert one_degree == pytest.approx(111_195, rel=1e-3)
