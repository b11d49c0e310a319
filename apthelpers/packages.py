from apthelpers.apt_lock import run_locked
from apthelpers.config_loader import CONFIG_MANAGER
from apthelpers.global_logger import logger
from apthelpers.runner import CommandRunner
import subprocess

APT_ENV = {"LC_ALL": "C", "DEBIAN_FRONTEND": "noninteractive"}


class AptManager:
    def __init__(self, runner=None, apt_config=None, lock_kwargs=None):
        self.logger = logger
        self.runner = runner or CommandRunner()
        self.apt_config = apt_config or CONFIG_MANAGER.apt
        self.lock_kwargs = lock_kwargs or {}

    def _apt_command(self, *args):
        return [
            "apt-get",
            "--assume-yes",
            "--quiet",
            f"-o=Acquire::Retries={self.apt_config.acquire_retries}",
            "-o=Dpkg::Use-Pty=0",
            *args,
        ]

    def apt(self, *args, check=True):
        lock_kwargs = {
            "max_attempts": self.apt_config.max_attempts,
            "lock_path": self.apt_config.lock_path,
            "updates_dir": self.apt_config.updates_dir,
            "sleep_unit": self.apt_config.sleep_unit,
            **self.lock_kwargs,
        }
        return run_locked(
            self._apt_command(*args),
            self.runner,
            lock_kwargs=lock_kwargs,
            env=APT_ENV,
            check=check,
        )

    def update(self):
        self.logger.debug("Updating apt package index")
        return self.apt("update")

    def install(self, packages, extra_args=(), check=True):
        packages = list(packages)
        self.logger.info(f"Installing {' '.join(packages) or 'pending packages'}")
        return self.apt(
            "--no-remove",
            "--option",
            "Dpkg::Options::=--force-confdef",
            "--option",
            "Dpkg::Options::=--force-confold",
            "install",
            *extra_args,
            *packages,
            check=check,
        )

    def remove(self, packages):
        return self.apt("remove", *packages)

    def autoremove(self, packages=()):
        return self.apt("autoremove", *packages)

    def autopurge(self, packages=()):
        return self.apt("autoremove", "--purge", *packages)

    def _query(self, package, showformat):
        return self.runner.run(
            ["dpkg-query", "--show", f"--showformat={showformat}", package],
            check=False,
        )

    def is_installed(self, package) -> bool:
        result = self._query(package, "${Status}")
        return result.returncode == 0 and "ok installed" in (result.stdout or "")

    def version(self, package) -> str:
        if not self.is_installed(package):
            return "0"
        return (self._query(package, "${Version}").stdout or "").strip()

    def depends_of(self, package) -> str:
        result = self._query(package, "${Depends}")
        if result.returncode != 0:
            return ""
        return (result.stdout or "").strip()

    def show_auto(self, packages):
        try:
            result = self.runner.run(["apt-mark", "showauto", *packages])
        except subprocess.CalledProcessError as e:
            self.logger.warning(f"apt-mark showauto failed: {e}")
            return []
        return (result.stdout or "").split()

    def mark_auto(self, packages):
        if not packages:
            return None
        return self.runner.run(["apt-mark", "auto", *packages])
