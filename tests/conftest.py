"""Shared fakes for the command runner, dpkg lock and apt."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

os.environ.setdefault(
    "APTHELPERS_CONFIG", str(Path(__file__).parent / "no-such-config.yaml")
)

import pytest  # noqa: E402

from apthelpers.config_loader import AptConfig  # noqa: E402
from apthelpers.packages import AptManager  # noqa: E402


@dataclass
class Call:
    cmd: list
    env: dict | None = None
    cwd: str | None = None
    cwd_existed: bool = False


class FakeRunner:
    """Records commands; handlers keyed by tool name return (rc, stdout, stderr)."""

    def __init__(self, handlers=None):
        self.calls: list[Call] = []
        self.handlers = dict(handlers or {})

    def run(self, cmd, *, env=None, cwd=None, input=None, check=True):
        cmd = [str(c) for c in cmd]
        self.calls.append(
            Call(cmd, env, cwd, cwd_existed=bool(cwd and os.path.isdir(cwd)))
        )
        handler = self.handlers.get(cmd[0])
        returncode, stdout, stderr = handler(cmd, cwd) if handler else (0, "", "")
        if check and returncode != 0:
            raise subprocess.CalledProcessError(
                returncode, cmd, output=stdout, stderr=stderr
            )
        return subprocess.CompletedProcess(cmd, returncode, stdout, stderr)

    def commands(self, tool):
        return [call.cmd for call in self.calls if call.cmd[0] == tool]


@dataclass
class FakeInspector:
    held: list = field(default_factory=list)
    entries: list = field(default_factory=list)
    checks: int = 0

    def is_held(self, lock_path):
        self.checks += 1
        if not self.held:
            return False
        return self.held.pop(0)

    def list_updates(self, updates_dir):
        return list(self.entries)


class FakeDpkg:
    """dpkg-query backed by a dict of installed package -> Depends."""

    def __init__(self, installed=None):
        self.installed = dict(installed or {})

    def __call__(self, cmd, cwd):
        fmt = next(arg for arg in cmd if arg.startswith("--showformat="))
        package = cmd[-1]
        if package not in self.installed:
            return 1, "", f"dpkg-query: no packages found matching {package}"
        if "${Status}" in fmt:
            return 0, "install ok installed", ""
        if "${Version}" in fmt:
            return 0, "1.0", ""
        return 0, self.installed[package], ""


@pytest.fixture
def inspector():
    return FakeInspector()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def apt_config(tmp_path):
    return AptConfig(
        lock_path=str(tmp_path / "lock"),
        updates_dir=str(tmp_path / "updates"),
        sources_dir=str(tmp_path / "sources.list.d"),
        preferences_dir=str(tmp_path / "preferences.d"),
        keyring_dir=str(tmp_path / "trusted.gpg.d"),
        apps_settings_dir=str(tmp_path / "apps"),
    )


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def apt(runner, apt_config, inspector, sleeps):
    return AptManager(
        runner=runner,
        apt_config=apt_config,
        lock_kwargs={"inspector": inspector, "sleep": sleeps.append},
    )
