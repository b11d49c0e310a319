from apthelpers.global_logger import logger
from pathlib import Path
from urllib.parse import urlsplit
import os, requests, tempfile

PIN_PRIORITY_NOTES = (
    (1001, "Packages will be allowed to be downgraded even if the installed version is higher."),
    (1000, "Packages will be allowed to be installed even if they are not from the target release."),
    (990, "Packages will have priority over other releases, even if their versions are higher."),
    (500, "Packages will have the same priority as the default release."),
    (100, "Packages will not be installed from this repository unless they are not in the default release or already installed."),
    (1, "Packages will be installed from this repository only if no other release provides them."),
)


def pin_priority_note(priority: int) -> str:
    for threshold, note in PIN_PRIORITY_NOTES:
        if priority >= threshold:
            return note
    return "Packages will never be installed from this repository."


def split_repo_line(repo: str):
    """'deb http://host/path suite comp1 comp2' -> (uri, suite, 'comp1 comp2')"""
    repo = repo.strip()
    if repo.startswith("deb "):
        repo = repo[len("deb "):].strip()
    parts = repo.split()
    if len(parts) < 2:
        raise ValueError(f"Repository line must contain at least an uri and a suite: {repo!r}")
    uri, suite = parts[0], parts[1]
    return uri, suite, " ".join(parts[2:])


def pin_origin(uri: str) -> str:
    host = urlsplit(uri).netloc if "://" in uri else uri.split("/", 1)[0]
    return host.split("@")[-1]


class RepositoryManager:
    def __init__(self, apt, apt_config=None, session=None):
        self.logger = logger
        self.apt = apt
        self.runner = apt.runner
        self.apt_config = apt_config or apt.apt_config
        self.session = session or requests.Session()

    def sources_file(self, name) -> Path:
        return Path(self.apt_config.sources_dir) / f"{name}.list"

    def preferences_file(self, name) -> Path:
        return Path(self.apt_config.preferences_dir) / name

    def keyring_file(self, name, suffix="gpg") -> Path:
        return Path(self.apt_config.keyring_dir) / f"{name}.{suffix}"

    @staticmethod
    def _write(path: Path, content: str, append: bool):
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a" if append else "w") as f:
            f.write(content)

    def add_repo(self, uri, suite, component, name, append=False) -> Path:
        path = self.sources_file(name)
        line = " ".join(part for part in ("deb", uri, suite, component) if part)
        self._write(path, line + "\n", append)
        self.logger.info(f"Added repository '{line}' to {path}")
        return path

    def pin_repo(self, pin, name, package="*", priority=50, append=False):
        if name == self.apt_config.unmanaged_pin_name:
            self.logger.debug(f"Pinning of {name} is managed elsewhere, skipping")
            return None
        priority = int(priority)
        note = pin_priority_note(priority)
        if priority >= 990:
            self.logger.warning(f"Pin-Priority {priority} for {name}: {note}")
        else:
            self.logger.info(f"Pin-Priority {priority} for {name}: {note}")

        path = self.preferences_file(name)
        content = f"Package: {package}\nPin: {pin}\nPin-Priority: {priority}\n\n"
        self._write(path, content, append)
        return path

    def fetch_key(self, key_url, name) -> Path:
        timeout = self.apt_config.key_fetch_timeout
        self.logger.info(f"Fetching repository key for {name} from {key_url}")
        response = self.session.get(key_url, timeout=timeout)
        response.raise_for_status()

        dest = self.keyring_file(name)
        dest.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(delete=False, suffix=".key") as tmp_file:
            tmp_file.write(response.content)
        try:
            self.runner.run(
                ["gpg", "--dearmor", "--yes", "--output", str(dest), tmp_file.name]
            )
        finally:
            os.remove(tmp_file.name)
        return dest

    def install_extra_repo(self, repo, name, key=None, priority=None, append=False):
        uri, suite, component = split_repo_line(repo)
        self.add_repo(uri, suite, component, name=name, append=append)

        pin_kwargs = {"priority": priority} if priority is not None else {}
        self.pin_repo(f'origin "{pin_origin(uri)}"', name=name, append=append, **pin_kwargs)

        if key:
            self.fetch_key(key, name)

        self.apt.update()

    def remove_extra_repo(self, name):
        removable = [self.sources_file(name)]
        if name != self.apt_config.unmanaged_pin_name:
            removable.append(self.preferences_file(name))
        removable.extend([self.keyring_file(name), self.keyring_file(name, "asc")])

        for path in removable:
            if path.exists():
                path.unlink()
                self.logger.debug(f"Removed {path}")

        self.apt.update()
