from apthelpers.dependency_spec import parse_dependencies
from apthelpers.errors import InvalidControlFile, UnresolvedDependencies
from apthelpers.global_logger import logger
from pydantic import BaseModel
from pathlib import Path
import re, shutil, subprocess, tempfile

BUILD_ENV = {"LC_ALL": "C"}
LOG_TAIL_LINES = 20


class ControlStanza(BaseModel):
    """equivs-build control file. Field order matters to the builder."""

    package: str
    version: str
    depends: str
    description: str
    long_description: str = ""
    maintainer: str = "root@localhost"
    section: str = "misc"
    priority: str = "optional"
    architecture: str = "all"

    def render(self) -> str:
        lines = [
            f"Section: {self.section}",
            f"Priority: {self.priority}",
            f"Package: {self.package}",
            f"Version: {self.version}",
            f"Depends: {self.depends}",
            f"Architecture: {self.architecture}",
            f"Maintainer: {self.maintainer}",
            f"Description: {self.description}",
        ]
        for line in self.long_description.splitlines():
            lines.append(f" {line}" if line.strip() else " .")
        return "\n".join(lines) + "\n"

    def write(self, path) -> Path:
        path = Path(path)
        path.write_text(self.render())
        return path


def _field(content, name):
    match = re.search(rf"^{name}:[ \t]*(\S*)", content, re.MULTILINE)
    return match.group(1) if match else ""


def read_control_fields(control_file_path):
    path = Path(control_file_path)
    try:
        content = path.read_text()
    except FileNotFoundError:
        raise InvalidControlFile(path, ["Package", "Version"])
    package = _field(content, "Package")
    version = _field(content, "Version")
    missing = [name for name, value in (("Package", package), ("Version", version)) if not value]
    if missing:
        raise InvalidControlFile(path, missing)
    return package, version


def missing_dependencies(dpkg_log, package):
    # dpkg reports e.g. "foo-app-deps depends on bar; however:"
    pattern = re.compile(rf"(?<={re.escape(package)} depends on ).*(?=; however)")
    found = []
    for line in dpkg_log.splitlines():
        match = pattern.search(line)
        if match:
            found.extend(
                token.names[0] for token in parse_dependencies(match.group(0))
            )
    return found


def readable_dry_run(output):
    """Keep what apt says after 'Reading state info', minus the noise."""
    lines = output.splitlines()
    for index, line in enumerate(lines):
        if "Reading state info" in line:
            lines = lines[index:]
            break
    else:
        return ""
    return "\n".join(
        line
        for line in lines
        if "fix-broken" not in line and "Reading state info" not in line
    )


def _tail(text, count=LOG_TAIL_LINES):
    return "\n".join(text.strip().splitlines()[-count:])


def build_and_install(control_file_path, apt, runner=None, tmp_root=None):
    runner = runner or apt.runner
    package, version = read_control_fields(control_file_path)

    apt.update()

    tmp_dir = tempfile.mkdtemp(prefix=f"{package}-", dir=tmp_root)
    try:
        shutil.copyfile(control_file_path, Path(tmp_dir) / "control")
        logger.debug(f"Building {package} {version} in {tmp_dir}")
        runner.run(["equivs-build", "./control"], cwd=tmp_dir, env=BUILD_ENV)

        dpkg = runner.run(
            [
                "dpkg",
                "--force-depends",
                "--install",
                f"./{package}_{version}_all.deb",
            ],
            cwd=tmp_dir,
            env=BUILD_ENV,
            check=False,
        )
        dpkg_log = (dpkg.stdout or "") + (dpkg.stderr or "")
        (Path(tmp_dir) / "dpkg_log").write_text(dpkg_log)

        try:
            apt.install([], extra_args=["--fix-broken"])
        except subprocess.CalledProcessError as e:
            missing = missing_dependencies(dpkg_log, package)
            if missing:
                dry_run = apt.install(missing, extra_args=["--dry-run"], check=False)
                details = readable_dry_run(
                    (dry_run.stdout or "") + (dry_run.stderr or "")
                )
                if details:
                    logger.error(details)
            log_tail = _tail(dpkg_log + "\n" + ((e.stderr or e.output or "")))
            raise UnresolvedDependencies(package, missing, log_tail) from e
    finally:
        shutil.rmtree(tmp_dir, ignore_errors=True)

    return apt.is_installed(package)
