from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..app import db
from ..services.attendance import mark_attendance
from ..services.directory import TeamDirectory

bp = Blueprint("attendance", __name__, url_prefix="/attendance")


@bp.get("")
def index():  # pragma: no cover - trivial route
    return jsonify({"msg": "Attendance routes"})


@bp.post("/mark")
def mark():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}
    config = current_app.config
    team = mark_attendance(
        TeamDirectory(),
        payload.get("att_code"),
        payload.get("latitude"),
        payload.get("longitude"),
        center=(config["ATTENDANCE_CENTER_LAT"], config["ATTENDANCE_CENTER_LNG"]),
        radius_meters=config["ATTENDANCE_RADIUS_METERS"],
    )
    db.session.commit()
    current_app.logger.info(
        "[ATTENDANCE] marked team=%s att_code=%s", team.team_name, team.att_code
    )
    return jsonify({"message": "Attendance marked successfully", "team": team.to_dict()})
