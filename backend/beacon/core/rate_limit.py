from __future__ import annotations

import time
from dataclasses import dataclass
from threading import Lock
from typing import Dict, Tuple

from fastapi import Request

from beacon.core.errors import RateLimitedError
from beacon.core.settings import settings

"""
Core Rate Limit.

Rôle (fonctionnel) :
- Limite le débit des routes d’ingestion (/api/v1/events, /api/v1/telemetry).
- Fenêtre fixe de 60 secondes, compteur en mémoire par émetteur :
  - la clé API brute si présente (un SDK = un émetteur),
  - sinon l’IP client.

Activation via settings :
- RATE_LIMIT_ENABLED, RATE_LIMIT_RPM.

Notes :
- Implémentation par processus : derrière plusieurs workers, chaque worker a son propre compteur.
- Les fenêtres expirées sont purgées au fil des appels (mémoire bornée par le trafic d’une fenêtre).
"""

INGESTION_PREFIXES = ("/api/v1/events", "/api/v1/telemetry")


@dataclass
class _Window:
    started_at: float
    count: int


class InMemoryRateLimiter:
    def __init__(self, window_seconds: float = 60.0) -> None:
        self._lock = Lock()
        self._window = window_seconds
        self._windows: Dict[Tuple[str, str], _Window] = {}
        self._last_sweep = 0.0

    @staticmethod
    def applies_to(path: str) -> bool:
        return path.startswith(INGESTION_PREFIXES)

    @staticmethod
    def _sender(request: Request) -> str:
        api_key = (request.headers.get("x-api-key") or "").strip()
        if api_key:
            return f"key:{api_key}"
        return f"ip:{request.client.host if request.client else 'unknown'}"

    def _sweep(self, now: float) -> None:
        # Au plus une passe par fenêtre ; appelé sous le verrou
        if now - self._last_sweep < self._window:
            return
        self._last_sweep = now
        expired = [k for k, w in self._windows.items() if (now - w.started_at) >= self._window]
        for k in expired:
            del self._windows[k]

    def hit(self, sender: str, route: str, limit: int, now: float | None = None) -> None:
        """Compte une requête ; lève RateLimitedError au-delà de `limit` dans la fenêtre."""
        if limit <= 0:
            return

        now = time.time() if now is None else now
        key = (sender, route)

        with self._lock:
            self._sweep(now)
            current = self._windows.get(key)
            if current is None or (now - current.started_at) >= self._window:
                self._windows[key] = _Window(started_at=now, count=1)
                return

            current.count += 1
            if current.count > limit:
                raise RateLimitedError(
                    f"Trop de requêtes (limite: {limit}/min).",
                    details={"limit_rpm": limit},
                )

    def check(self, request: Request) -> None:
        if not settings.RATE_LIMIT_ENABLED or not self.applies_to(request.url.path):
            return
        self.hit(
            self._sender(request),
            f"{request.method} {request.url.path}",
            int(settings.RATE_LIMIT_RPM or 0),
        )

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()
            self._last_sweep = 0.0


rate_limiter = InMemoryRateLimiter()
