"""Logging helpers for torrent-control."""

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from app_paths import get_log_path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None, to_file: bool = True) -> None:
    level_name = (os.environ.get("LOG_LEVEL") or level or "INFO").upper()
    numeric = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    if not root.handlers:
        formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        root.addHandler(handler)
        if to_file:
            file_handler = RotatingFileHandler(
                log_file or get_log_path(), maxBytes=1_000_000, backupCount=3, encoding="utf-8"
            )
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)
    root.setLevel(numeric)

    # Request-level chatter from requests/urllib3.
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("transmission_rpc").setLevel(logging.WARNING)
    logging.getLogger("qbittorrentapi").setLevel(logging.WARNING)


__all__ = ["setup_logging"]
