from apthelpers.config_loader import CONFIG_MANAGER
from apthelpers.logger import get_logger

_log_config = CONFIG_MANAGER.get("logging", {})

logger = get_logger(
    log_level=_log_config.get("log_level", "INFO"),
    log_dir=_log_config.get("log_dir"),
    max_size_mb=_log_config.get("max_size_mb", 10),
    backup_count=_log_config.get("backup_count", 5),
)
