from __future__ import annotations

import logging
import re
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable

from .certificates import CertificateArtifact

logger = logging.getLogger("devday.store")

PDF_CONTENT_TYPE = "application/pdf"
FILENAME_SUFFIX = "-Certificate.pdf"


_WHITESPACE_RE = re.compile(r"\s+")


def certificate_filename(name: str) -> str:
    return _WHITESPACE_RE.sub("-", name.strip()) + FILENAME_SUFFIX


def generate_token() -> str:
    """128-bit random token, hex encoded (32 characters)."""
    return secrets.token_hex(16)


@dataclass(frozen=True)
class StoredCertificate:
    token: str
    buffer: bytes
    name: str
    filename: str
    expiry: float
    content_type: str = PDF_CONTENT_TYPE


class CertificateStore:
    """Short-lived in-memory certificate store keyed by download token.

    Entries expire ``ttl_seconds`` after insertion. Reads check expiry
    lazily; :meth:`sweep` removes expired entries and trims the store to
    ``max_size`` by evicting the entries closest to expiry. ``put`` never
    evicts, so the size may exceed ``max_size`` between sweeps.
    """

    def __init__(
        self,
        ttl_seconds: float = 60,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = float(ttl_seconds)
        self.max_size = int(max_size)
        self._clock = clock
        self._entries: dict[str, StoredCertificate] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, token: str) -> bool:
        return self.get(token) is not None

    def put(self, artifact: CertificateArtifact, ttl: float | None = None) -> str:
        lifetime = self.ttl_seconds if ttl is None else float(ttl)
        with self._lock:
            token = generate_token()
            while token in self._entries:
                token = generate_token()
            self._entries[token] = StoredCertificate(
                token=token,
                buffer=artifact.buffer,
                name=artifact.name,
                filename=certificate_filename(artifact.name),
                expiry=self._clock() + lifetime,
            )
        return token

    def get(self, token: str) -> StoredCertificate | None:
        with self._lock:
            entry = self._entries.get(token)
            if entry is None:
                return None
            if self._clock() > entry.expiry:
                del self._entries[token]
                return None
            return entry

    def sweep(self) -> tuple[int, int]:
        """Drop expired entries, then enforce ``max_size``.

        Returns ``(expired, evicted)`` counts.
        """
        with self._lock:
            now = self._clock()
            expired_tokens = [
                token for token, entry in self._entries.items() if entry.expiry < now
            ]
            for token in expired_tokens:
                del self._entries[token]

            evicted = 0
            overflow = len(self._entries) - self.max_size
            if overflow > 0:
                by_expiry = sorted(self._entries.values(), key=lambda entry: entry.expiry)
                for entry in by_expiry[:overflow]:
                    del self._entries[entry.token]
                evicted = overflow
            remaining = len(self._entries)

        if expired_tokens or evicted:
            logger.info(
                "[CERT-STORE] swept expired=%s evicted=%s remaining=%s",
                len(expired_tokens),
                evicted,
                remaining,
            )
        return len(expired_tokens), evicted

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def snapshot(self) -> dict:
        return {
            "currentSize": len(self),
            "maxSize": self.max_size,
            "ttlSeconds": self.ttl_seconds,
        }


class CertificateSweeper:
    """Daemon thread that sweeps a :class:`CertificateStore` on an interval."""

    def __init__(self, store: CertificateStore, interval: float = 15):
        self.store = store
        self.interval = float(interval)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="certificate-store-sweeper", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.store.sweep()
            except Exception:
                logger.exception("[CERT-STORE] sweep failed")
