import pathlib
import sys
from datetime import timedelta

import pytest
from PIL import Image
from reportlab.pdfgen import canvas

PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from devday.app import create_app, db
from devday.models import Event, Team
from devday.shared.certificates_layout import PAGE_SIZE
from devday.shared.time import as_naive_utc, now_utc


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "slow" in item.keywords:
            continue
        item.add_marker("full")
        item.add_marker("smoke")


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def template_path(tmp_path):
    path = tmp_path / "certificateDesign2025.png"
    Image.new("RGB", (576, 454), (250, 246, 236)).save(path)
    return str(path)


@pytest.fixture
def pdf_template_path(tmp_path):
    path = tmp_path / "certificateDesign2025.pdf"
    c = canvas.Canvas(str(path), pagesize=PAGE_SIZE)
    c.setFont("Helvetica", 18)
    c.drawCentredString(PAGE_SIZE[0] / 2, PAGE_SIZE[1] - 60, "CERTIFICATE OF PARTICIPATION")
    c.showPage()
    c.save()
    return str(path)


@pytest.fixture
def app_factory(tmp_path, template_path):
    created = []

    def _make(**overrides):
        config = {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "CERT_TEMPLATE_PATHS": [template_path, str(tmp_path / "certificateDesign1.png")],
            "CERT_FONT_PATHS": [str(tmp_path / "fonts" / "PlayfairDisplay-Italic.ttf")],
            "CERT_SWEEP_ENABLED": False,
            "CERT_RENDER_RETRY_DELAY": 0,
        }
        config.update(overrides)
        application = create_app(config)
        with application.app_context():
            db.create_all()
        created.append(application)
        return application

    yield _make

    for application in created:
        application.extensions["devday_certificates"].sweeper.stop(timeout=1)
        with application.app_context():
            db.session.remove()
            db.drop_all()


@pytest.fixture
def app(app_factory):
    application = app_factory()
    with application.app_context():
        yield application


@pytest.fixture
def client(app):
    return app.test_client()


def _seed_team(
    *,
    att_code: str = "ATT-001",
    team_name: str = "Team X",
    competition: str = "Robotics",
    members: tuple[str, ...] = ("Alice", "Bob"),
    attendance: bool = True,
    ended: bool = True,
    with_event: bool = True,
) -> Team:
    now = as_naive_utc(now_utc())
    team = Team(
        att_code=att_code,
        team_name=team_name,
        consumer_number="C-1001",
        competition=competition,
        leader_name=members[0],
        leader_email=f"{members[0].lower()}@example.com",
        attendance=attendance,
    )
    for index, member in enumerate(members[1:], start=1):
        setattr(team, f"mem{index}_name", member)
    db.session.add(team)
    if with_event:
        if ended:
            start, end = now - timedelta(hours=6), now - timedelta(hours=1)
        else:
            start, end = now - timedelta(hours=1), now + timedelta(hours=3)
        if not db.session.query(Event.id).filter_by(competition_name=competition).first():
            db.session.add(Event(competition_name=competition, start_time=start, end_time=end))
    db.session.commit()
    return team


@pytest.fixture
def seed_team(app):
    return _seed_team

