from __future__ import annotations

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from io import BytesIO
from typing import Callable, Iterable, NamedTuple, Sequence

from PIL import Image
from PyPDF2 import PdfReader, PdfWriter
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas
from tenacity import RetryCallState, RetryError, Retrying, stop_after_attempt, wait_exponential

from .certificates_layout import (
    MIN_FONT_SIZE,
    PAGE_SIZE,
    SAFE_FALLBACK_FONT,
    TEXT_ALPHA,
    TemplateLayout,
    TextRegion,
    layout_for_template,
    template_kind,
    truncate_text,
)
from .errors import BatchRenderError, InvalidInputError, RenderError

logger = logging.getLogger("devday.certgen")

_font_lock = threading.Lock()

FALLBACK_FONT_ENCODING = "cp1252"


class CertificateArtifact(NamedTuple):
    name: str
    buffer: bytes


class BatchResult(NamedTuple):
    certificates: list[CertificateArtifact]
    failed: list[str]


class TemplateResolution(NamedTuple):
    path: str
    kind: str
    source: str
    layout: TemplateLayout


def _require_text(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"{field} is required")
    return value.strip()


def _log_retry(recipient: str, attempts: int) -> Callable[[RetryCallState], None]:
    def _before_sleep(retry_state: RetryCallState) -> None:
        logger.warning(
            "[CERT-RETRY] recipient=%s attempt=%s/%s error=%s wait=%.2fs",
            recipient,
            retry_state.attempt_number,
            attempts,
            retry_state.outcome.exception(),
            retry_state.next_action.sleep,
        )

    return _before_sleep


def _warn_if_unencodable(*texts: str) -> None:
    # the built-in face only covers the Windows-1252 repertoire
    for text in texts:
        try:
            text.encode(FALLBACK_FONT_ENCODING)
        except UnicodeEncodeError:
            logger.warning(
                "[CERT-FONT] %s cannot draw %r; glyphs outside %s will be missing. "
                "Configure a Unicode TTF in CERT_FONT_PATHS",
                SAFE_FALLBACK_FONT,
                text,
                FALLBACK_FONT_ENCODING,
            )


def fit_font_size(text: str, font_name: str, max_pt: float, max_width: float) -> float:
    pt = max_pt
    while pt > MIN_FONT_SIZE and stringWidth(text, font_name, pt) > max_width:
        pt -= 0.5
    return pt


def register_font(path: str) -> str:
    """Register a TrueType font with reportlab once and return its face name."""
    face = os.path.splitext(os.path.basename(path))[0]
    with _font_lock:
        if face not in pdfmetrics.getRegisteredFontNames():
            pdfmetrics.registerFont(TTFont(face, path))
    return face


class CertificateRenderer:
    """Composites recipient text onto a certificate template.

    Templates and fonts are ordered fallback chains: the first template file
    that exists is used and the first font that loads wins, with the
    built-in Times-Italic face as the last resort. Raster templates are
    drawn full bleed; PDF templates are merged under the text overlay.
    """

    def __init__(
        self,
        template_paths: Sequence[str],
        font_paths: Sequence[str] = (),
        *,
        author: str = "DevDay 2025",
        attempts: int = 3,
        retry_delay: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.template_paths = list(template_paths)
        self.font_paths = list(font_paths)
        self.author = author
        self.attempts = max(1, int(attempts))
        self.retry_delay = max(0.0, float(retry_delay))
        self._sleep = sleep
        self._backgrounds: dict[tuple[str, float], Image.Image] = {}
        self._backgrounds_lock = threading.Lock()

    @classmethod
    def from_config(cls, config, root_path: str) -> "CertificateRenderer":
        def _resolve(path: str) -> str:
            if os.path.isabs(path):
                return path
            return os.path.join(root_path, path)

        return cls(
            [_resolve(p) for p in config.get("CERT_TEMPLATE_PATHS", [])],
            [_resolve(p) for p in config.get("CERT_FONT_PATHS", [])],
            author=config.get("CERT_AUTHOR", "DevDay 2025"),
            attempts=config.get("CERT_RENDER_ATTEMPTS", 3),
            retry_delay=config.get("CERT_RENDER_RETRY_DELAY", 0.1),
        )

    def template_status(self) -> list[dict]:
        status = []
        for index, path in enumerate(self.template_paths):
            status.append(
                {
                    "name": "primary" if index == 0 else f"fallback-{index}",
                    "file": os.path.basename(path),
                    "exists": os.path.isfile(path),
                }
            )
        return status

    def font_status(self) -> list[dict]:
        return [
            {"file": os.path.basename(path), "exists": os.path.isfile(path)}
            for path in self.font_paths
        ]

    def resolve_template(self) -> TemplateResolution:
        for index, path in enumerate(self.template_paths):
            kind = template_kind(path)
            if kind is None or not os.path.isfile(path):
                continue
            source = "primary" if index == 0 else f"fallback-{index}"
            if index:
                logger.warning(
                    "[CERT-TEMPLATE] primary template missing; falling back path=%s",
                    path,
                )
            return TemplateResolution(path, kind, source, layout_for_template(path))
        attempted = ", ".join(self.template_paths) or "<none configured>"
        raise RenderError(f"Certificate template not found; attempted {attempted}")

    def resolve_font(self) -> str:
        for path in self.font_paths:
            if not os.path.isfile(path):
                continue
            try:
                return register_font(path)
            except Exception as exc:  # reportlab raises TTFError and plain IO errors
                logger.warning("[CERT-FONT] unusable font path=%s error=%s", path, exc)
        logger.warning(
            "[CERT-FONT] no configured font available; using %s", SAFE_FALLBACK_FONT
        )
        return SAFE_FALLBACK_FONT

    def render(
        self, recipient_name: str, competition_name: str, team_name: str = ""
    ) -> bytes:
        name = truncate_text(_require_text(recipient_name, "recipientName"))
        competition = truncate_text(_require_text(competition_name, "competitionName"))
        team = team_name.strip() if isinstance(team_name, str) else ""

        template = self.resolve_template()
        font_name = self.resolve_font()
        if font_name == SAFE_FALLBACK_FONT:
            _warn_if_unencodable(name, competition)

        retrying = Retrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.retry_delay),
            sleep=self._sleep,
            before_sleep=_log_retry(name, self.attempts),
        )
        try:
            pdf_bytes = retrying(self._compose, template, font_name, name, competition, team)
        except RetryError as exc:
            last_error = exc.last_attempt.exception()
            logger.error(
                "[CERT-RETRY] recipient=%s gave up after %s attempts error=%s",
                name,
                self.attempts,
                last_error,
            )
            raise RenderError(
                f"Certificate generation failed for {name} after {self.attempts} attempts",
                last_error=last_error,
            ) from last_error
        logger.info(
            "[CERT-RENDER] recipient=%s template=%s bytes=%s",
            name,
            template.source,
            len(pdf_bytes),
        )
        return pdf_bytes

    def _load_background(self, path: str) -> Image.Image:
        key = (path, os.path.getmtime(path))
        with self._backgrounds_lock:
            cached = self._backgrounds.get(key)
            if cached is not None:
                return cached
        with Image.open(path) as img:
            background = img.convert("RGB")
        with self._backgrounds_lock:
            self._backgrounds = {key: background}
        return background

    def _draw_line(
        self, c: canvas.Canvas, text: str, font_name: str, size: float, region: TextRegion
    ) -> None:
        pt = fit_font_size(text, font_name, size, region.width)
        c.setFont(font_name, pt)
        c.drawCentredString(region.center_x, region.baseline_y, text)

    def _compose(
        self,
        template: TemplateResolution,
        font_name: str,
        name: str,
        competition: str,
        team: str,
    ) -> bytes:
        width, height = PAGE_SIZE
        title = f"Certificate of Participation - {name}"
        subject = f"{team} - {competition}" if team else competition

        buffer = BytesIO()
        c = canvas.Canvas(buffer, pagesize=(width, height))
        c.setTitle(title)
        c.setAuthor(self.author)
        c.setSubject(subject)
        if template.kind == "raster":
            background = ImageReader(self._load_background(template.path))
            c.drawImage(background, 0, 0, width=width, height=height)

        layout = template.layout
        c.setFillColorRGB(0, 0, 0)
        c.setFillAlpha(TEXT_ALPHA)
        self._draw_line(c, name, font_name, layout.name_size, layout.name)
        self._draw_line(
            c,
            competition,
            font_name,
            layout.competition_font_size(competition),
            layout.competition,
        )
        c.showPage()
        c.save()

        if template.kind == "raster":
            return buffer.getvalue()

        buffer.seek(0)
        base_page = PdfReader(template.path).pages[0]
        base_page.merge_page(PdfReader(buffer).pages[0])
        writer = PdfWriter()
        writer.add_page(base_page)
        writer.add_metadata({"/Title": title, "/Author": self.author, "/Subject": subject})
        out_buf = BytesIO()
        writer.write(out_buf)
        return out_buf.getvalue()


def render_team_certificates(
    renderer: CertificateRenderer,
    members: Iterable[str],
    competition_name: str,
    team_name: str = "",
    *,
    concurrency: int = 1,
) -> BatchResult:
    """Render one certificate per roster member, in roster order.

    Members that fail are logged and reported in ``failed``; the batch only
    raises when nobody could be rendered. ``concurrency`` caps how many
    renders are in flight at once.
    """
    if not isinstance(members, (list, tuple)) or not members:
        return BatchResult([], [])

    logger.info(
        "[CERT-BATCH] team=%s competition=%s members=%s",
        team_name,
        competition_name,
        len(members),
    )

    def _render_one(member) -> CertificateArtifact | Exception:
        try:
            buffer = renderer.render(member, competition_name, team_name)
        except InvalidInputError as exc:
            logger.warning("[CERT-SKIP] member=%r team=%s error=%s", member, team_name, exc)
            return exc
        except RenderError as exc:
            logger.error("[CERT-FAIL] member=%s team=%s error=%s", member, team_name, exc)
            return exc
        except Exception as exc:
            logger.exception("[CERT-FAIL] member=%s team=%s", member, team_name)
            return exc
        return CertificateArtifact(name=truncate_text(member.strip()), buffer=buffer)

    if concurrency <= 1:
        outcomes = [_render_one(member) for member in members]
    else:
        with ThreadPoolExecutor(max_workers=min(concurrency, len(members))) as pool:
            outcomes = list(pool.map(_render_one, members))

    certificates: list[CertificateArtifact] = []
    failed: list[str] = []
    errors: list[Exception] = []
    for member, outcome in zip(members, outcomes):
        if isinstance(outcome, Exception):
            failed.append(str(member))
            errors.append(outcome)
        else:
            certificates.append(outcome)

    if not certificates:
        raise BatchRenderError(
            "Certificate generation failed for all team members",
            last_error=errors[-1],
            invalid_input=all(isinstance(e, InvalidInputError) for e in errors),
        )

    logger.info(
        "[CERT-BATCH] team=%s rendered=%s failed=%s",
        team_name,
        len(certificates),
        len(failed),
    )
    return BatchResult(certificates, failed)
