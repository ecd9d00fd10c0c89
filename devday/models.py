from __future__ import annotations

from sqlalchemy.orm import validates

from .app import db

MAX_TEAM_MEMBERS = 4


class Team(db.Model):
    __tablename__ = "teams"

    id = db.Column(db.Integer, primary_key=True)
    consumer_number = db.Column(db.String(64), nullable=False)
    team_name = db.Column(db.String(200), nullable=False)
    leader_name = db.Column(db.String(200), nullable=False)
    leader_email = db.Column(db.String(255), nullable=False)
    mem1_name = db.Column(db.String(200), default="")
    mem1_email = db.Column(db.String(255), default="")
    mem2_name = db.Column(db.String(200), default="")
    mem2_email = db.Column(db.String(255), default="")
    mem3_name = db.Column(db.String(200), default="")
    mem3_email = db.Column(db.String(255), default="")
    mem4_name = db.Column(db.String(200), default="")
    mem4_email = db.Column(db.String(255), default="")
    att_code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    competition = db.Column(db.String(200), nullable=False)
    attendance = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime, server_default=db.func.now(), onupdate=db.func.now()
    )

    @validates("leader_email", "mem1_email", "mem2_email", "mem3_email", "mem4_email")
    def lower_email(self, key, value):  # pragma: no cover - simple normalizer
        return (value or "").strip().lower()

    @property
    def member_names(self) -> list[str]:
        """Non-blank names in roster order, leader first."""
        leader = (self.leader_name or "").strip()
        names = [leader] if leader else []
        for index in range(1, MAX_TEAM_MEMBERS + 1):
            value = (getattr(self, f"mem{index}_name") or "").strip()
            if value:
                names.append(value)
        return names

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "consumerNumber": self.consumer_number,
            "teamName": self.team_name,
            "leaderName": self.leader_name,
            "members": self.member_names,
            "competition": self.competition,
            "attendance": bool(self.attendance),
        }


class Event(db.Model):
    __tablename__ = "events"

    id = db.Column(db.Integer, primary_key=True)
    competition_name = db.Column(db.String(200), nullable=False, unique=True)
    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
