from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import Flask, current_app

from ..shared.certificate_store import CertificateStore, CertificateSweeper
from ..shared.certificates import CertificateRenderer, render_team_certificates
from ..shared.circuit_breaker import CircuitBreaker
from ..shared.errors import (
    BatchRenderError,
    CertificateServiceError,
    IneligibleError,
    InvalidInputError,
    NotFoundError,
)
from ..shared.metrics import CertificateMetrics
from ..shared.rate_limit import RateLimiter
from ..shared.time import as_naive_utc, fmt_iso, now_utc
from .directory import TeamDirectory

EXTENSION_KEY = "devday_certificates"
DOWNLOAD_PREFIX = "/certificates/download/"


class CertificateIssuer:
    """Turns an attendance code into stored certificates and download links."""

    def __init__(
        self,
        directory: TeamDirectory,
        renderer: CertificateRenderer,
        store: CertificateStore,
        breaker: CircuitBreaker,
        *,
        concurrency: int = 1,
        download_prefix: str = DOWNLOAD_PREFIX,
    ):
        self.directory = directory
        self.renderer = renderer
        self.store = store
        self.breaker = breaker
        self.concurrency = concurrency
        self.download_prefix = download_prefix

    def issue(self, att_code, *, now: datetime | None = None) -> dict:
        try:
            return self._issue(att_code, now)
        except CertificateServiceError:
            raise
        except Exception as exc:
            self.breaker.record_failure(exc)
            raise

    def _issue(self, att_code, now: datetime | None) -> dict:
        if isinstance(att_code, int) and not isinstance(att_code, bool):
            att_code = str(att_code)
        code = att_code.strip() if isinstance(att_code, str) else ""
        if not code:
            current_app.logger.error("[CERT] missing attendance code")
            raise InvalidInputError("Attendance code is required")

        current_app.logger.info("[CERT] request att_code=%s", code)
        team = self.directory.find_team(code)
        if team is None:
            current_app.logger.error("[CERT] team not found att_code=%s", code)
            raise NotFoundError("Team not found")

        if not team.attendance:
            current_app.logger.warning(
                "[cert-gate] blocked team=%s reason=attendance_not_marked", team.team_name
            )
            raise IneligibleError("Certificate unavailable: Attendance was not marked")

        event = self.directory.find_event(team.competition)
        if event is None:
            current_app.logger.error("[CERT] competition not found name=%s", team.competition)
            raise NotFoundError("Event not found")

        current = as_naive_utc(now or now_utc())
        if current <= as_naive_utc(event.end_time):
            current_app.logger.warning(
                "[cert-gate] blocked team=%s reason=event_not_ended competition=%s",
                team.team_name,
                team.competition,
            )
            raise IneligibleError("Certificates are only available after the event has ended")

        if not team.members:
            current_app.logger.warning(
                "[cert-gate] blocked team=%s reason=empty_roster", team.team_name
            )
            raise IneligibleError("No team members to issue certificates for")

        self.breaker.allow()
        current_app.logger.info(
            "[CERT] rendering team=%s members=%s", team.team_name, len(team.members)
        )
        try:
            batch = render_team_certificates(
                self.renderer,
                team.members,
                team.competition,
                team.team_name,
                concurrency=self.concurrency,
            )
        except BatchRenderError as exc:
            if exc.invalid_input:
                current_app.logger.error(
                    "[CERT] team=%s has no renderable member data", team.team_name
                )
            else:
                self.breaker.record_failure(exc)
            raise

        download_tokens = []
        for index, artifact in enumerate(batch.certificates):
            token = self.store.put(artifact)
            download_tokens.append(
                {
                    "memberName": artifact.name,
                    "memberIndex": index,
                    "downloadUrl": f"{self.download_prefix}{token}",
                }
            )
        self.breaker.record_success()

        if batch.failed:
            current_app.logger.warning(
                "[CERT] partial batch team=%s failed=%s", team.team_name, batch.failed
            )
        current_app.logger.info(
            "[CERT] team=%s issued=%s failed=%s",
            team.team_name,
            len(download_tokens),
            len(batch.failed),
        )
        return {
            "message": "Certificate generated successfully",
            "certificateData": {
                "teamName": team.team_name,
                "consumerNumber": team.consumer_number,
                "members": team.members,
                "competition": team.competition,
                "eventDate": fmt_iso(event.start_time),
            },
            "downloadTokens": download_tokens,
            "failedMembers": batch.failed,
        }


@dataclass
class CertificateServices:
    renderer: CertificateRenderer
    store: CertificateStore
    sweeper: CertificateSweeper
    rate_limiter: RateLimiter
    breaker: CircuitBreaker
    metrics: CertificateMetrics
    issuer: CertificateIssuer


def init_certificate_services(app: Flask) -> CertificateServices:
    config = app.config
    renderer = CertificateRenderer.from_config(config, app.root_path)
    store = CertificateStore(
        ttl_seconds=config["CERT_TTL_SECONDS"],
        max_size=config["CERT_STORE_MAX_SIZE"],
    )
    breaker = CircuitBreaker(
        "certificate_generator",
        failure_threshold=config["BREAKER_FAILURE_THRESHOLD"],
        consecutive_failure_threshold=config["BREAKER_CONSECUTIVE_FAILURE_THRESHOLD"],
        success_threshold=config["BREAKER_SUCCESS_THRESHOLD"],
        reset_timeout=config["BREAKER_RESET_TIMEOUT_SECONDS"],
    )
    services = CertificateServices(
        renderer=renderer,
        store=store,
        sweeper=CertificateSweeper(store, config["CERT_SWEEP_INTERVAL_SECONDS"]),
        rate_limiter=RateLimiter(
            config["RATE_LIMIT_MAX"], config["RATE_LIMIT_WINDOW_SECONDS"]
        ),
        breaker=breaker,
        metrics=CertificateMetrics(),
        issuer=CertificateIssuer(
            TeamDirectory(),
            renderer,
            store,
            breaker,
            concurrency=config["CERT_RENDER_CONCURRENCY"],
        ),
    )
    if config["CERT_SWEEP_ENABLED"]:
        services.sweeper.start()
    app.extensions[EXTENSION_KEY] = services
    return services


def get_certificate_services() -> CertificateServices:
    return current_app.extensions[EXTENSION_KEY]
