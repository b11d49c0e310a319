from apthelpers.config_loader import CONFIG_MANAGER as config
from apthelpers.global_logger import logger
from apthelpers.app_dependencies import AppDependencies
from apthelpers.apt_lock import LockState, wait_for_lock
from apthelpers.dependency_spec import InstallRun
from apthelpers.dovecot import render_dovecot_config, write_dovecot_config
from apthelpers.equivs import build_and_install
from apthelpers.errors import PackagingError
from apthelpers.packages import AptManager
from apthelpers.repositories import RepositoryManager
from importlib import metadata
import argparse, subprocess, sys


def log_version():
    try:
        version = metadata.version("apthelpers")
    except metadata.PackageNotFoundError:
        version = "unknown"
    logger.debug(f"apthelpers version: {version}")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="apthelpers", description="apt/dpkg helpers for app packaging"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    wait = sub.add_parser("wait-lock", help="Wait until dpkg is free")
    wait.add_argument("--attempts", type=int, default=None)
    wait.add_argument("--lock-path", default=None)

    install = sub.add_parser("install-deps", help="Install app dependencies")
    install.add_argument("app")
    install.add_argument("packages", nargs="+")
    install.add_argument("--version", dest="app_version", default=None)
    install.add_argument(
        "--append",
        action="store_true",
        help="Merge with the dependencies already declared for the app",
    )
    install.add_argument("--repo", default=None, help="Extra repository line")
    install.add_argument("--key", default=None, help="Key URL of the extra repository")
    install.add_argument("--name", default=None, help="Name of the extra repository")

    remove = sub.add_parser("remove-deps", help="Remove app dependencies")
    remove.add_argument("app")

    add_repo = sub.add_parser("add-repo", help="Add and pin an extra repository")
    add_repo.add_argument("repo")
    add_repo.add_argument("--name", required=True)
    add_repo.add_argument("--key", default=None)
    add_repo.add_argument("--priority", type=int, default=None)
    add_repo.add_argument("--append", action="store_true")

    remove_repo = sub.add_parser("remove-repo", help="Remove an extra repository")
    remove_repo.add_argument("--name", required=True)

    equivs = sub.add_parser("build-equivs", help="Build and install a control file")
    equivs.add_argument("control_file")

    dovecot = sub.add_parser("dovecot-conf", help="Render dovecot.conf")
    dovecot.add_argument("--output", default=None, help="Write to this path")

    return parser


def run_command(args, apt):
    if args.command == "wait-lock":
        apt_cfg = apt.apt_config
        state = wait_for_lock(
            max_attempts=apt_cfg.max_attempts if args.attempts is None else args.attempts,
            lock_path=args.lock_path or apt_cfg.lock_path,
            updates_dir=apt_cfg.updates_dir,
            sleep_unit=apt_cfg.sleep_unit,
        )
        logger.info(f"dpkg lock state: {state.value}")
        return 2 if state is LockState.CORRUPTED else 0

    if args.command == "install-deps":
        run = InstallRun(replace=not args.append)
        deps = AppDependencies(args.app, apt)
        if args.repo:
            deps.install_extra(
                args.repo, args.packages, run, key=args.key, name=args.name,
                version=args.app_version,
            )
        else:
            deps.install(args.packages, run, version=args.app_version)
        return 0

    if args.command == "remove-deps":
        AppDependencies(args.app, apt).remove()
        return 0

    if args.command == "add-repo":
        RepositoryManager(apt).install_extra_repo(
            args.repo,
            name=args.name,
            key=args.key,
            priority=args.priority,
            append=args.append,
        )
        return 0

    if args.command == "remove-repo":
        RepositoryManager(apt).remove_extra_repo(args.name)
        return 0

    if args.command == "build-equivs":
        return 0 if build_and_install(args.control_file, apt) else 1

    if args.command == "dovecot-conf":
        if args.output:
            write_dovecot_config(config.dovecot, args.output)
        else:
            sys.stdout.write(render_dovecot_config(config.dovecot))
        return 0

    return 1


def main(argv=None, apt=None):
    args = build_parser().parse_args(argv)
    log_version()
    apt = apt or AptManager()
    try:
        return run_command(args, apt)
    except PackagingError as e:
        logger.error(str(e))
        return 1
    except subprocess.CalledProcessError as e:
        logger.error(f"{e.cmd[0]} failed with exit code {e.returncode}: {e.stderr or ''}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
