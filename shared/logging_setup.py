"""
Initialisation du logging

Handler console (texte ou JSON) et handler fichier JSON rotatif optionnel.
Appelé par MonitorRuntime.start() avant le démarrage des schedulers.
"""
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING

from shared.json_log_formatter import JsonLogFormatter

if TYPE_CHECKING:
    from config.settings import LoggingConfig

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(config: "LoggingConfig") -> logging.Logger:
    """Installe les handlers du root logger selon LoggingConfig"""
    root = logging.getLogger()
    root.setLevel(getattr(logging, config.log_level, logging.INFO))

    # Reconfigurer remplace nos handlers au lieu de les empiler
    for handler in list(root.handlers):
        if getattr(handler, "_biomonitor", False):
            root.removeHandler(handler)

    console = logging.StreamHandler()
    if config.log_format == "json":
        console.setFormatter(JsonLogFormatter())
    else:
        console.setFormatter(logging.Formatter(TEXT_FORMAT))
    console._biomonitor = True
    root.addHandler(console)

    if config.log_file_path:
        config.log_file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            config.log_file_path,
            maxBytes=config.log_max_size_mb * 1024 * 1024,
            backupCount=config.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(JsonLogFormatter())
        file_handler._biomonitor = True
        root.addHandler(file_handler)

    # APScheduler logue chaque tick en INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    return logging.getLogger("bio-monitor")
