from apthelpers.config_loader import CONFIG_MANAGER
from ruamel.yaml import YAML
from pathlib import Path


class AppSettings:
    """Per-app key/value settings kept in <apps_settings_dir>/<app>/settings.yml"""

    def __init__(self, app, settings_dir=None):
        self.app = app
        base = Path(settings_dir or CONFIG_MANAGER.apt.apps_settings_dir)
        self.path = base / app / "settings.yml"
        self.yaml = YAML(typ="rt")
        self.yaml.indent(mapping=2, sequence=4, offset=2)
        self.yaml.preserve_quotes = True

    def _load(self):
        if not self.path.exists():
            return {}
        with open(self.path, "r") as file:
            data = self.yaml.load(file)
        return data if data is not None else {}

    def _save(self, data):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as file:
            self.yaml.dump(data, file)

    def get(self, key, default=None):
        return self._load().get(key, default)

    def set(self, key, value):
        data = self._load()
        data[key] = value
        self._save(data)

    def delete(self, key):
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)
