import sys
from pathlib import Path
from typing import Optional

from loguru import logger

LOG_DIR = Path(__file__).resolve().parents[3] / "logs"
FALLBACK_LOG = Path("/tmp/spot.log")

CONSOLE_FORMAT = "<green>{time:HH:mm:ss}</green> <cyan>spot</cyan> <level>{level: <8}</level> {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{line} | {message}"


def _add_file_sink(path: Path, retention: int) -> None:
    logger.add(
        path,
        level="DEBUG",
        format=FILE_FORMAT,
        rotation="10 MB",
        retention=retention,
        encoding="utf-8",
        enqueue=True,
    )


def setup_logger(level: Optional[str] = None):
    """Route tracker logs to stderr at ``level`` and keep a DEBUG file log.

    ``level`` defaults to LOG_LEVEL from the environment. An unknown level name
    raises ValueError before any file sink is added.
    """
    if level is None:
        from spot_tracker.config.settings import config

        level = config.log_level

    logger.remove()
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True)
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        _add_file_sink(LOG_DIR / "spot.log", retention=5)
    except OSError:
        try:
            _add_file_sink(FALLBACK_LOG, retention=2)
        except OSError:
            logger.warning("No writable log directory; logging to stderr only")
    return logger
