from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional


PLACEHOLDER_MARKERS = ("YOUR_GOOGLE_APPS_SCRIPT_WEB_APP_URL_HERE", "<SCRIPT_URL>")
DEFAULT_PAGE_SIZE = 10
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    sheet_url: str = ""
    request_timeout: Optional[float] = None
    page_size: int = DEFAULT_PAGE_SIZE
    log_level: str = "INFO"


def is_configured_url(url: Optional[str]) -> bool:
    text = (url or "").strip()
    if not text:
        return False
    return not any(marker in text for marker in PLACEHOLDER_MARKERS)


def _as_positive_float(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        out = float(value)
    except ValueError:
        return None
    return out if out > 0 else None


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if environ is None else environ

    page_size = env.get("KOC_PAGE_SIZE", DEFAULT_PAGE_SIZE)
    try:
        page_size = int(page_size)
    except (TypeError, ValueError):
        page_size = DEFAULT_PAGE_SIZE
    page_size = max(1, min(200, page_size))

    return Settings(
        sheet_url=(env.get("KOC_SHEET_URL") or "").strip(),
        request_timeout=_as_positive_float(env.get("KOC_SHEET_TIMEOUT")),
        page_size=page_size,
        log_level=(env.get("KOC_LOG_LEVEL") or "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    """Attach a stream handler to the root logger unless one is already configured."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    else:
        root.setLevel(level)
