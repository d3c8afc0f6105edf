from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .request_id import get_request_id

"""
Core Logging.

Rôle (fonctionnel) :
- Sortie JSON uniforme (1 record = 1 ligne) pour l’API, uvicorn et les services métier.
- Chaque record porte le request_id courant, pour corréler ingestion, agrégation et erreurs.
- Les “extras” structurés sont filtrés par une liste blanche (voir STRUCTURED_EXTRAS).

Loggers métier :
- beacon.auth, beacon.projects, beacon.events, beacon.devices, beacon.metrics, beacon.http
"""

# Clés acceptées dans extra={...} (toute autre clé est ignorée à l’écriture)
STRUCTURED_EXTRAS: tuple[str, ...] = (
    "method",
    "path",
    "status_code",
    "duration_ms",
    "client_ip",
    "project_id",
    "user_id",
    "identity",
    "event_count",
    "metric_type",
    "device_id",
    "error_code",
)


class RequestIdFilter(logging.Filter):
    """Ajoute request_id au LogRecord ('-' hors requête, ex : migrations, tests)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", "-"),
            "msg": record.getMessage(),
        }

        for key in STRUCTURED_EXTRAS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        # default=str : UUID / datetime passés en extra restent sérialisables
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> None:
    """
    Installe le handler JSON sur le root logger et y rattache uvicorn.

    Idempotent : les handlers existants sont retirés (reload, TestClient multiples).
    """
    lvl = level.upper()

    root = logging.getLogger()
    root.setLevel(lvl)

    if root.handlers:
        root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    handler.addFilter(RequestIdFilter())
    root.addHandler(handler)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logger = logging.getLogger(name)
        logger.handlers = root.handlers
        logger.setLevel(lvl)
