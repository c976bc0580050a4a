import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from marketdesk.websocket.diagnostics import DiagnosticsLog


# Global set to track configured loggers and prevent duplicate handlers
_configured_loggers = set()

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logger(
    name: str,
    log_file: Optional[str] = None,
    level: Optional[int] = None,
    diagnostics: Optional[DiagnosticsLog] = None,
    console: bool = True
):
    """
    Setup a logger with rotating file handler, console handler, and optional diagnostics handler.

    Args:
        name: Logger name (will write to <LOG_DIR>/<name>.log by default)
        log_file: Optional custom log file path
        level: Logging level (defaults to config.settings.LOG_LEVEL)
        diagnostics: Optional DiagnosticsLog that receives WARNING and above
        console: Whether to add console handler

    Returns:
        Configured logger instance
    """
    try:
        from config.settings import LOG_LEVEL, LOG_DIR
    except ImportError:
        LOG_LEVEL, LOG_DIR = "INFO", "logs"

    # Convert string level to int if needed
    if level is None:
        level = getattr(logging, LOG_LEVEL.upper(), logging.INFO)
    elif isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Prevent adding duplicate handlers if logger was already configured
    if name in _configured_loggers:
        return logger

    # Set propagate to False to prevent root logger duplication
    logger.propagate = False

    if log_file is None:
        logs_dir = Path(LOG_DIR)
        logs_dir.mkdir(parents=True, exist_ok=True)
        log_file = logs_dir / f"{name}.log"
    else:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

    # 10MB, 5 backups
    file_handler = RotatingFileHandler(
        str(log_file),
        maxBytes=10 * 1024 * 1024,
        backupCount=5
    )
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    file_handler.setLevel(level)
    logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        console_handler.setLevel(level)
        logger.addHandler(console_handler)

    if diagnostics is not None:
        diagnostics_handler = DiagnosticsHandler(diagnostics)
        diagnostics_handler.setLevel(logging.WARNING)
        logger.addHandler(diagnostics_handler)

    _configured_loggers.add(name)

    return logger


class DiagnosticsHandler(logging.Handler):
    """
    Logging handler that mirrors records into a DiagnosticsLog, so problems
    raised outside the gateway client (HTTP layer, AI calls) show up on the
    dashboard's event list as well.

    Records emitted by the diagnostics module itself are skipped; the
    DiagnosticsLog already holds them.
    """

    def __init__(self, diagnostics: DiagnosticsLog):
        super().__init__()
        self.diagnostics = diagnostics

    def emit(self, record):
        if record.name == "marketdesk.websocket.diagnostics":
            return
        try:
            severity = record.levelname.lower()
            if severity == "critical":
                severity = "error"
            self.diagnostics.add(severity, record.getMessage())
        except Exception:
            self.handleError(record)
