from pydantic import BaseModel, Field, ValidationError
from ruamel.yaml import YAML
from typing import Any, Dict, Optional
import os

DEFAULT_CONFIG_PATH = "/etc/apthelpers/config.yaml"


class LogConfig(BaseModel):
    log_level: str = "INFO"
    log_dir: Optional[str] = None
    max_size_mb: int = 10
    backup_count: int = 5


class AptConfig(BaseModel):
    lock_path: str = "/var/lib/dpkg/lock"
    updates_dir: str = "/var/lib/dpkg/updates"
    max_attempts: int = Field(17, ge=1)
    sleep_unit: float = Field(1.0, ge=0)
    acquire_retries: int = 3
    sources_dir: str = "/etc/apt/sources.list.d"
    preferences_dir: str = "/etc/apt/preferences.d"
    keyring_dir: str = "/etc/apt/trusted.gpg.d"
    key_fetch_timeout: int = 900
    deps_package_suffix: str = "-app-deps"
    deps_maintainer: str = "root@localhost"
    apps_settings_dir: str = "/etc/apthelpers/apps"
    default_php_version: str = "8.2"
    # Name whose pinning is managed outside of these helpers
    unmanaged_pin_name: str = "extra_php_version"


class DovecotSettings(BaseModel):
    """Values interpolated into dovecot.conf"""

    main_domain: str = "localhost"
    cert_dir: str = "/etc/ssl/mail"
    dh_params: str = "/usr/share/dovecot/dh.pem"
    mail_root: str = "/var/mail"
    vmail_uid: int = 500
    vmail_gid: int = 8
    pop3_enabled: bool = False
    listen_ipv6: bool = True
    passdb_driver: str = "ldap"
    passdb_args: str = "/etc/dovecot/dovecot-ldap.conf"
    userdb_driver: str = "ldap"
    userdb_args: str = "/etc/dovecot/dovecot-ldap.conf"
    postmaster_address: Optional[str] = None
    auth_socket_path: str = "/var/spool/postfix/private/auth"

    @property
    def postmaster(self) -> str:
        return self.postmaster_address or f"postmaster@{self.main_domain}"


class HelperConfig(BaseModel):
    logging: LogConfig = LogConfig()
    apt: AptConfig = AptConfig()
    dovecot: DovecotSettings = DovecotSettings()


class ConfigManager:
    def __init__(self, file_path: Optional[str] = None):
        self.file_path = file_path or os.environ.get(
            "APTHELPERS_CONFIG", DEFAULT_CONFIG_PATH
        )
        self.settings = self.load_config()
        self.config = self.settings.model_dump()

    def _read_file(self) -> Dict[str, Any]:
        if not os.path.exists(self.file_path):
            return {}
        yaml = YAML(typ="safe")
        with open(self.file_path, "r") as file:
            data = yaml.load(file)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(
                f"Configuration file {self.file_path} must contain a mapping"
            )
        return data

    def load_config(self) -> HelperConfig:
        raw = self._read_file()
        try:
            return HelperConfig(**raw)
        except ValidationError as e:
            raise ValueError(f"Invalid configuration in {self.file_path}: {e}") from e

    def reload(self):
        self.settings = self.load_config()
        self.config = self.settings.model_dump()

    def get(self, key, default=None):
        return self.config.get(key, default)

    @property
    def apt(self) -> AptConfig:
        return self.settings.apt

    @property
    def dovecot(self) -> DovecotSettings:
        return self.settings.dovecot


CONFIG_MANAGER = ConfigManager()
