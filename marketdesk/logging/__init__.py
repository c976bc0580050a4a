from .logger import setup_logger, DiagnosticsHandler

__all__ = ["setup_logger", "DiagnosticsHandler"]
