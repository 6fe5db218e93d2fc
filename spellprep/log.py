"""
Logging configuration
"""
import logging
import sys
from pathlib import Path

LOGGER_NAME = "spellprep"


def setup_logging(level: str = "INFO", log_file: str | None = None) -> logging.Logger:
    """Setup engine logging"""
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    app_logger = logging.getLogger(LOGGER_NAME)
    app_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Avoid stacking handlers when called more than once
    for handler in list(app_logger.handlers):
        handler.close()
        app_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    app_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        app_logger.addHandler(file_handler)

    return app_logger
