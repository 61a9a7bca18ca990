# medtrack/core/logging_config.py
import logging

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

def configure_logging(level: str = "INFO") -> None:
    """
    Install one stream handler on the package logger. Safe to call twice.
    """
    pkg_logger = logging.getLogger("medtrack")
    pkg_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if any(getattr(h, "_medtrack", False) for h in pkg_logger.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler._medtrack = True  # type: ignore[attr-defined]
    pkg_logger.addHandler(handler)
