from __future__ import annotations

from datetime import datetime
from typing import NamedTuple

from ..app import db
from ..models import Event, Team


class TeamRecord(NamedTuple):
    att_code: str
    team_name: str
    consumer_number: str
    competition: str
    members: list[str]
    attendance: bool


class EventRecord(NamedTuple):
    competition_name: str
    start_time: datetime
    end_time: datetime


def _team_record(team: Team) -> TeamRecord:
    return TeamRecord(
        att_code=team.att_code,
        team_name=team.team_name,
        consumer_number=team.consumer_number,
        competition=team.competition,
        members=team.member_names,
        attendance=bool(team.attendance),
    )


class TeamDirectory:
    """Team and event lookups backed by the SQLAlchemy models."""

    def find_team(self, att_code: str) -> TeamRecord | None:
        team = db.session.query(Team).filter(Team.att_code == att_code).one_or_none()
        return _team_record(team) if team else None

    def find_event(self, competition_name: str) -> EventRecord | None:
        event = (
            db.session.query(Event)
            .filter(Event.competition_name == competition_name)
            .one_or_none()
        )
        if not event:
            return None
        return EventRecord(event.competition_name, event.start_time, event.end_time)

    def mark_attended(self, att_code: str) -> Team | None:
        """Set the attendance flag; returns the team, or None if unknown.

        The caller owns the transaction.
        """
        team = db.session.query(Team).filter(Team.att_code == att_code).one_or_none()
        if team is not None:
            team.attendance = True
        return team
