"""Logging configuration for cercagen."""

from pathlib import Path

from loguru import logger

from cercagen.config.settings import Config, get_config

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"

_file_sink_id: int | None = None


def setup_logging(config: Config | None = None) -> Path:
    """Add the rotating file sink. Calling it twice replaces the previous sink.

    Returns:
        Path of the log file
    """
    global _file_sink_id
    config = config or get_config()

    log_path = Path(config.log_file).expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)

    if _file_sink_id is not None:
        logger.remove(_file_sink_id)

    # Rotation at 10 MB, keep 5 old files
    _file_sink_id = logger.add(
        log_path,
        rotation="10 MB",
        retention=5,
        level=config.log_level,
        format=LOG_FORMAT,
        backtrace=True,
        diagnose=True,
    )
    logger.debug(f"Logging to file: {log_path}")
    return log_path
