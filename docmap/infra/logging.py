# docmap/infra/logging.py
from __future__ import annotations
import logging
from typing import Optional

from docmap.config import settings

_LEVELS: dict[str, int] = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


def resolve_level(name: Optional[str] = None) -> int:
    return _LEVELS.get((name or settings.log_level).upper(), logging.INFO)


def setup_logging(service_name: Optional[str] = None, level: Optional[str] = None) -> None:
    """
    Minimal, consistent structured-ish logging for applications embedding docmap.
    """
    svc = service_name or settings.service_name
    logging.basicConfig(
        level=resolve_level(level),
        format=(
            "%(asctime)s | %(levelname)s | %(name)s | "
            f"svc={svc} | %(message)s"
        ),
    )
    # quiet noisy deps if needed
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("motor").setLevel(logging.WARNING)
