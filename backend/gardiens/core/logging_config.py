# backend/gardiens/core/logging_config.py
# Journalisation : fichiers tournants quotidiens, console rich en développement et journal de données JSON.

import json
import logging
import logging.handlers
import re
from datetime import date, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from bson import ObjectId
from rich.logging import RichHandler

from gardiens.core.settings import get_settings

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
_DATED_FILE = re.compile(r"(\d{4}-\d{2}-\d{2})")

# (nom du logger, niveau minimal, fichier)
_FILE_LOGGERS = (
    ("gardiens.generic", logging.INFO, "generic.log"),
    ("gardiens.errors", logging.ERROR, "errors.log"),
)


def _json_default(value: Any) -> Any:
    """Sérialise les types Mongo / métier rencontrés dans les payloads journalisés."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"{type(value).__name__} non sérialisable")


class DataLogger:
    """Journal des payloads volumineux (scores de similarité, décisions de modération).

    Chaque jour a son fichier `YYYY-MM-DD-data.json`, qui reste un tableau JSON
    valide après chaque ajout.
    """

    def __init__(self, logs_dir: Path):
        self.logs_dir = logs_dir

    def _today_file(self) -> Path:
        return self.logs_dir / f"{date.today():%Y-%m-%d}-data.json"

    def log_data(self, context: str, data: dict[str, Any], user_id: Optional[ObjectId] = None) -> None:
        record = {"at": datetime.now(), "context": context, "data": data}
        if user_id is not None:
            record["user_id"] = user_id
        entry = json.dumps(record, default=_json_default, ensure_ascii=False)

        path = self._today_file()
        if not path.exists():
            path.write_text(f"[{entry}]", encoding="utf-8")
            return

        body = path.read_text(encoding="utf-8").rstrip().removesuffix("]").rstrip()
        glue = "," if body not in ("", "[") else ""
        if not body:
            body = "["
        path.write_text(f"{body}{glue}{entry}]", encoding="utf-8")


def _daily_file_handler(path: Path) -> logging.Handler:
    handler = logging.handlers.TimedRotatingFileHandler(path, when="midnight", encoding="utf-8")
    handler.suffix = "%Y-%m-%d"
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def purge_old_logs(logs_dir: Path, retention_days: int) -> int:
    """Supprime les fichiers datés plus vieux que `retention_days`; retourne le nombre supprimé."""
    limit = f"{date.today() - timedelta(days=retention_days):%Y-%m-%d}"
    removed = 0
    for path in logs_dir.iterdir():
        found = _DATED_FILE.search(path.name)
        if not path.is_file() or found is None or found.group(1) >= limit:
            continue
        try:
            path.unlink()
        except OSError:
            continue
        removed += 1
    return removed


def setup_logging() -> tuple[logging.Logger, logging.Logger, DataLogger]:
    """Prépare le dossier `logs/`, les deux loggers fichiers et le journal de données.

    Returns:
        tuple: (logger générique, logger d'erreurs, journal de données)
    """
    settings = get_settings()
    logs_dir = Path(settings.logs_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)
    purge_old_logs(logs_dir, settings.log_retention_days)

    loggers = []
    for name, level, filename in _FILE_LOGGERS:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        # Rechargement à chaud : ne pas empiler les handlers
        if not logger.handlers:
            logger.addHandler(_daily_file_handler(logs_dir / filename))
            if settings.environment == "development":
                logger.addHandler(RichHandler(rich_tracebacks=True, show_path=False, level=level))
        loggers.append(logger)

    generic_logger, error_logger = loggers
    return generic_logger, error_logger, DataLogger(logs_dir)


_loggers: Optional[tuple[logging.Logger, logging.Logger, DataLogger]] = None


def get_loggers() -> tuple[logging.Logger, logging.Logger, DataLogger]:
    """Loggers partagés, configurés au premier appel."""
    global _loggers
    if _loggers is None:
        _loggers = setup_logging()
    return _loggers
