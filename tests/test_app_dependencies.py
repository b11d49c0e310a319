"""Tests for installing app dependencies through a meta-package."""

from __future__ import annotations

from pathlib import Path

import pytest

from apthelpers.app_dependencies import (
    AppDependencies,
    add_app_dependencies,
    deps_package_name,
    install_app_dependencies,
    install_extra_app_dependencies,
    remove_app_dependencies,
)
from apthelpers.app_settings import AppSettings
from apthelpers.dependency_spec import InstallRun
from apthelpers.errors import ConflictingRuntimeVersions
from conftest import FakeDpkg


def _control_fields(control_path):
    fields = {}
    for line in Path(control_path).read_text().splitlines():
        if line.startswith(" ") or ": " not in line:
            continue
        key, value = line.split(": ", 1)
        fields[key] = value
    return fields


@pytest.fixture
def dpkg(runner):
    dpkg = FakeDpkg()
    runner.handlers["dpkg-query"] = dpkg

    def equivs_build(cmd, cwd):
        fields = _control_fields(Path(cwd) / "control")
        dpkg.installed[fields["Package"]] = fields["Depends"]
        return 0, "", ""

    runner.handlers["equivs-build"] = equivs_build
    return dpkg


@pytest.fixture
def settings(apt_config):
    return AppSettings("my_app", apt_config.apps_settings_dir)


class TestPackageName:
    def test_underscores(self):
        assert deps_package_name("my_app") == "my-app-app-deps"
        assert deps_package_name("my_app", "-deps") == "my-app-deps"


class TestInstall:
    def test_first_call_replaces_second_appends(self, apt, apt_config, dpkg):
        dpkg.installed["my-app-app-deps"] = "stale-dep"
        run = InstallRun()

        first = install_app_dependencies(
            "my_app", ["foo", "bar>=1.0"], run, apt, apt_config=apt_config
        )
        assert first == "foo, bar (>= 1.0)"
        assert run.replace is False

        second = install_app_dependencies(
            "my_app", "baz|qux", run, apt, apt_config=apt_config
        )
        assert second == "foo, bar (>= 1.0), baz | qux"
        assert ",," not in second
        assert dpkg.installed["my-app-app-deps"] == second

    def test_new_run_replaces_again(self, apt, apt_config, dpkg):
        install_app_dependencies("my_app", "foo", InstallRun(), apt, apt_config=apt_config)
        result = install_app_dependencies(
            "my_app", "bar", InstallRun(), apt, apt_config=apt_config
        )
        assert result == "bar"

    def test_add_always_appends(self, apt, apt_config, dpkg):
        dpkg.installed["my-app-app-deps"] = "foo"
        result = add_app_dependencies("my_app", "bar", InstallRun(), apt, apt_config=apt_config)
        assert result == "foo, bar"

    def test_control_file_content(self, apt, apt_config, dpkg, runner):
        captured = {}
        original = runner.handlers["equivs-build"]

        def capture(cmd, cwd):
            captured.update(_control_fields(Path(cwd) / "control"))
            return original(cmd, cwd)

        runner.handlers["equivs-build"] = capture
        install_app_dependencies(
            "my_app", "nginx", InstallRun(), apt, version="2.3~1", apt_config=apt_config
        )
        assert captured["Package"] == "my-app-app-deps"
        assert captured["Version"] == "2.3~1"
        assert captured["Depends"] == "nginx"
        assert captured["Maintainer"] == "root@localhost"

    def test_records_settings(self, apt, apt_config, dpkg, settings):
        install_app_dependencies(
            "my_app", "php8.2-curl nginx", InstallRun(), apt, apt_config=apt_config
        )
        assert settings.get("phpversion") == "8.2"
        assert settings.get("apt_dependencies") == (
            "php8.2-curl, nginx, php8.2, php8.2-fpm, php8.2-common"
        )

    def test_default_runtime_version(self, apt, apt_config, dpkg, settings):
        install_app_dependencies("my_app", "php-fpm", InstallRun(), apt, apt_config=apt_config)
        assert settings.get("phpversion") == apt_config.default_php_version

    def test_conflicting_runtime_aborts(self, apt, apt_config, dpkg, runner):
        with pytest.raises(ConflictingRuntimeVersions):
            install_app_dependencies(
                "my_app", "php7.4-x php5-y", InstallRun(), apt, apt_config=apt_config
            )
        assert runner.calls == []


class TestRemove:
    def test_purges_installed_package(self, apt, apt_config, dpkg, runner):
        dpkg.installed["my-app-app-deps"] = "foo"
        assert remove_app_dependencies("my_app", apt, apt_config=apt_config) is True
        purge = runner.commands("apt-get")[-1]
        assert purge[-3:] == ["autoremove", "--purge", "my-app-app-deps"]

    def test_nothing_installed(self, apt, apt_config, dpkg, runner):
        assert remove_app_dependencies("my_app", apt, apt_config=apt_config) is False
        assert runner.commands("apt-get") == []


class TestInstallExtra:
    def test_repo_added_then_removed(self, apt, apt_config, dpkg, runner):
        runner.handlers["apt-mark"] = lambda cmd, cwd: (
            (0, "libyarn\n", "") if cmd[1] == "showauto" else (0, "", "")
        )
        sources = Path(apt_config.sources_dir) / "my_app.list"
        seen = {}
        original = runner.handlers["equivs-build"]

        def check_repo(cmd, cwd):
            seen["sources"] = sources.read_text()
            return original(cmd, cwd)

        runner.handlers["equivs-build"] = check_repo

        result = install_extra_app_dependencies(
            "my_app",
            "deb https://dl.yarnpkg.com/debian/ stable main",
            "yarn libyarn",
            InstallRun(),
            apt,
            apt_config=apt_config,
        )

        assert result == "yarn, libyarn"
        assert seen["sources"] == "deb https://dl.yarnpkg.com/debian/ stable main\n"
        assert not sources.exists()
        assert not (Path(apt_config.preferences_dir) / "my_app").exists()
        assert runner.commands("apt-mark")[-1] == ["apt-mark", "auto", "libyarn"]
        upgrade = [c for c in runner.commands("apt-get") if c[-2:] == ["yarn", "libyarn"]]
        assert upgrade

    def test_repo_removed_on_failure(self, apt, apt_config, dpkg, runner):
        runner.handlers["equivs-build"] = lambda cmd, cwd: (1, "", "broken")
        deps = AppDependencies("my_app", apt, apt_config=apt_config)
        with pytest.raises(Exception):
            deps.install_extra("deb http://example.org/ stable main", "foo", InstallRun())
        assert not (Path(apt_config.sources_dir) / "my_app.list").exists()
