import os

import click
from flask import current_app
from flask.cli import FlaskGroup
from flask_migrate import Migrate
from PIL import Image, ImageDraw

from devday.app import create_app, db
from devday.models import Event, Team
from devday.services.issuance import get_certificate_services
from devday.shared.certificates_layout import PAGE_SIZE
from devday.shared.errors import CertificateServiceError
from devday.shared.storage import write_atomic
from devday.shared.time import parse_iso


migrate = Migrate()


def create_devday_app():
    app = create_app({"CERT_SWEEP_ENABLED": False})
    migrate.init_app(app, db)
    return app


cli = FlaskGroup(create_app=create_devday_app)


@cli.command("gen_cert")
@click.option("--name", "name", required=True)
@click.option("--competition", "competition", required=True)
@click.option("--team", "team", default="")
@click.option("--out", "out_path", default=None, help="Output PDF path")
def gen_cert(name: str, competition: str, team: str, out_path: str | None):
    """Render a single certificate to disk."""
    renderer = get_certificate_services().renderer
    try:
        pdf_bytes = renderer.render(name, competition, team)
    except CertificateServiceError as exc:
        click.echo(f"Failed: {exc.message}", err=True)
        raise SystemExit(1)
    path = out_path or os.path.join("certificates", "_samples", f"{name.replace(' ', '-')}.pdf")
    click.echo(write_atomic(path, pdf_bytes))


@cli.command("check_templates")
def check_templates():
    """Report template and font availability and render a test certificate."""
    renderer = get_certificate_services().renderer
    templates = renderer.template_status()
    for entry in templates:
        state = "ok" if entry["exists"] else "MISSING"
        click.echo(f"template {entry['name']}: {entry['file']} {state}")
    if not any(entry["exists"] for entry in templates):
        click.echo(
            "no template found; run `python manage.py make_template` to draw a placeholder",
            err=True,
        )
    for entry in renderer.font_status():
        state = "ok" if entry["exists"] else "MISSING (built-in fallback)"
        click.echo(f"font: {entry['file']} {state}")
    try:
        sample = renderer.render("Readiness Check", "System Test")
    except CertificateServiceError as exc:
        click.echo(f"test render failed: {exc.message}", err=True)
        raise SystemExit(1)
    click.echo(f"test render ok bytes={len(sample)}")


@cli.command("make_template")
@click.option("--out", "out_path", default=None, help="Output PNG path")
@click.option("--scale", default=2, type=int, help="Pixels per point")
def make_template(out_path: str | None, scale: int):
    """Draw a plain placeholder certificate background.

    The repository ships no template artwork, so a fresh deploy reports
    `unhealthy` until this (or real artwork) puts a file at the first
    CERT_TEMPLATE_PATHS entry. Run it once after `python manage.py db upgrade`.
    """
    width, height = (int(PAGE_SIZE[0] * scale), int(PAGE_SIZE[1] * scale))
    image = Image.new("RGB", (width, height), (250, 246, 236))
    draw = ImageDraw.Draw(image)
    inset = 12 * scale
    draw.rectangle(
        [inset, inset, width - inset, height - inset], outline=(120, 96, 48), width=3 * scale
    )
    heading = "CERTIFICATE OF PARTICIPATION"
    left, top, right, bottom = draw.textbbox((0, 0), heading)
    draw.text(((width - (right - left)) // 2, 60 * scale), heading, fill=(60, 48, 24))
    path = out_path or current_app.config["CERT_TEMPLATE_PATHS"][0]
    if not os.path.isabs(path):
        path = os.path.join(current_app.root_path, path)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    image.save(path, format="PNG")
    click.echo(path)


@cli.command("add_event")
@click.option("--competition", "competition", required=True)
@click.option("--start", "start", required=True, help="ISO-8601 start time (UTC)")
@click.option("--end", "end", required=True, help="ISO-8601 end time (UTC)")
def add_event(competition: str, start: str, end: str):
    start_time = parse_iso(start)
    end_time = parse_iso(end)
    if end_time <= start_time:
        click.echo("End time must be after start time", err=True)
        raise SystemExit(1)
    event = db.session.query(Event).filter_by(competition_name=competition).one_or_none()
    if event is None:
        event = Event(competition_name=competition)
        db.session.add(event)
    event.start_time = start_time
    event.end_time = end_time
    db.session.commit()
    click.echo(f"event {competition} {start_time.isoformat()} -> {end_time.isoformat()}")


@cli.command("add_team")
@click.option("--code", "att_code", required=True)
@click.option("--team", "team_name", required=True)
@click.option("--competition", "competition", required=True)
@click.option("--consumer", "consumer_number", required=True)
@click.option("--leader", "leader_name", required=True)
@click.option("--leader-email", "leader_email", required=True)
@click.option("--member", "members", multiple=True, help="Member name (up to 4)")
def add_team(att_code, team_name, competition, consumer_number, leader_name, leader_email, members):
    if len(members) > 4:
        click.echo("At most 4 members besides the leader", err=True)
        raise SystemExit(1)
    if db.session.query(Team.id).filter_by(att_code=att_code).first():
        click.echo(f"Attendance code {att_code} already exists", err=True)
        raise SystemExit(1)
    team = Team(
        att_code=att_code,
        team_name=team_name,
        competition=competition,
        consumer_number=consumer_number,
        leader_name=leader_name,
        leader_email=leader_email,
    )
    for index, member in enumerate(members, start=1):
        setattr(team, f"mem{index}_name", member)
    db.session.add(team)
    db.session.commit()
    click.echo(f"team {team_name} members={len(team.member_names)}")


if __name__ == "__main__":
    cli()
