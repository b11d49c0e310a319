from apthelpers.app_settings import AppSettings
from apthelpers.dependency_spec import (
    InstallRun,
    merge_dependencies,
    normalize,
    parse_dependencies,
)
from apthelpers.equivs import ControlStanza, build_and_install
from apthelpers.errors import UnresolvedDependencies
from apthelpers.global_logger import logger
from apthelpers.repositories import RepositoryManager
from pathlib import Path
import tempfile


class AppDependencies:
    """Installs an app's apt dependencies through a dedicated meta-package."""

    def __init__(self, app, apt, settings=None, apt_config=None, runtime="php"):
        self.app = app
        self.apt = apt
        self.apt_config = apt_config or apt.apt_config
        self.settings = settings or AppSettings(app, self.apt_config.apps_settings_dir)
        self.runtime = runtime
        self.logger = logger

    @property
    def package_name(self) -> str:
        return deps_package_name(self.app, self.apt_config.deps_package_suffix)

    def _record_runtime(self, normalized):
        key = f"{self.runtime}version"
        if normalized.runtime_version:
            old_version = self.settings.get(key)
            if old_version and str(old_version) != normalized.runtime_version:
                self.logger.warning(
                    f"{self.app}: {self.runtime} version changes from {old_version} "
                    f"to {normalized.runtime_version}, the old pool configuration "
                    "should be removed"
                )
            self.settings.set(key, normalized.runtime_version)
        elif normalized.uses_runtime:
            self.settings.set(key, self.apt_config.default_php_version)

    def install(self, dependencies, run: InstallRun, version=None) -> str:
        normalized = normalize(dependencies, runtime=self.runtime)
        self._record_runtime(normalized)

        depends = normalized.depends
        if not run.replace and self.apt.is_installed(self.package_name):
            depends = merge_dependencies(
                self.apt.depends_of(self.package_name), depends, replace=False
            )

        stanza = ControlStanza(
            package=self.package_name,
            version=str(version or "1.0"),
            depends=depends,
            maintainer=self.apt_config.deps_maintainer,
            description=f"Fake package for {self.app} dependencies",
            long_description="This meta-package is only responsible of installing its dependencies.",
        )
        with tempfile.TemporaryDirectory() as tmp_dir:
            control_file = stanza.write(Path(tmp_dir) / f"{self.package_name}.control")
            if not build_and_install(control_file, self.apt):
                raise UnresolvedDependencies(self.package_name, [], "")

        self.settings.set("apt_dependencies", depends)
        run.mark_installed()
        self.logger.info(f"Dependencies of {self.app} installed: {depends}")
        return depends

    def add(self, packages, run: InstallRun, version=None) -> str:
        run.mark_installed()
        return self.install(packages, run, version=version)

    def remove(self):
        package = self.package_name
        if not self.apt.is_installed(package):
            self.logger.debug(f"{package} is not installed, nothing to remove")
            return False
        current = self.apt.depends_of(package)
        self.logger.info(f"Removing {package} ({current})")
        self.apt.autopurge([package])
        return True

    def install_extra(
        self, repo, packages, run: InstallRun, key=None, name=None, version=None
    ) -> str:
        name = name or self.app
        repositories = RepositoryManager(self.apt, apt_config=self.apt_config)
        repositories.install_extra_repo(repo, name=name, key=key, priority=995)
        try:
            depends = self.install(packages, run, version=version)

            # An already installed dependency is not upgraded by the meta-package
            package_names = [
                token.names[0] for token in parse_dependencies(packages)
            ]
            auto_installed = self.apt.show_auto(package_names)
            self.apt.install(package_names)
            self.apt.mark_auto(auto_installed)
        finally:
            repositories.remove_extra_repo(name)
        return depends


def deps_package_name(app, suffix="-app-deps") -> str:
    return f"{app.replace('_', '-')}{suffix}"


def install_app_dependencies(app, dependencies, run, apt, version=None, **kwargs):
    return AppDependencies(app, apt, **kwargs).install(dependencies, run, version)


def add_app_dependencies(app, packages, run, apt, version=None, **kwargs):
    return AppDependencies(app, apt, **kwargs).add(packages, run, version)


def remove_app_dependencies(app, apt, **kwargs):
    return AppDependencies(app, apt, **kwargs).remove()


def install_extra_app_dependencies(
    app, repo, packages, run, apt, key=None, name=None, **kwargs
):
    return AppDependencies(app, apt, **kwargs).install_extra(
        repo, packages, run, key=key, name=name
    )
