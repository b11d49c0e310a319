from logging.handlers import RotatingFileHandler
import logging, os, sys

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%b %d, %Y %H:%M:%S"


def format_time(seconds):
    seconds = int(seconds)
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def _resolve_level(level):
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level or "INFO").upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def get_logger(
    name="apthelpers", log_level="INFO", log_dir=None, max_size_mb=10, backup_count=5
):
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(log_level))
    logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if not any(getattr(h, "_apthelpers_console", False) for h in logger.handlers):
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(formatter)
        console._apthelpers_console = True
        logger.addHandler(console)

    if log_dir and not any(
        isinstance(h, RotatingFileHandler) for h in logger.handlers
    ):
        try:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = RotatingFileHandler(
                os.path.join(log_dir, f"{name}.log"),
                maxBytes=int(max_size_mb * 1024 * 1024),
                backupCount=backup_count,
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(f"File logging disabled, cannot write to {log_dir}: {e}")

    return logger
