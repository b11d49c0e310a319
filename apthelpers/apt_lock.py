from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
import os
import subprocess
import threading
import time

import psutil

from apthelpers.config_loader import CONFIG_MANAGER
from apthelpers.errors import LockCorrupted, LockTimeout
from apthelpers.global_logger import logger
from apthelpers.logger import format_time


_APT_LOCK = threading.Lock()


class LockState(Enum):
    READY = "ready"
    BUSY = "busy"
    CORRUPTED = "corrupted"


@dataclass(frozen=True)
class LockProbe:
    held: bool
    corrupted: bool


class ProcessLockInspector:
    """Looks at other processes' open files, like `lsof <lock>` would."""

    def is_held(self, lock_path) -> bool:
        target = os.path.realpath(lock_path)
        own_pid = os.getpid()
        for proc in psutil.process_iter(["pid"]):
            if proc.info["pid"] == own_pid:
                continue
            try:
                for open_file in proc.open_files():
                    if os.path.realpath(open_file.path) == target:
                        return True
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
        return False

    def list_updates(self, updates_dir):
        try:
            return sorted(os.listdir(updates_dir))
        except FileNotFoundError:
            return []


def interrupted_entries(entries):
    return [name for name in entries if name.isascii() and name.isdigit()]


def backoff_delay(attempt: int, unit: float = 1.0) -> float:
    return attempt * attempt * unit


def probe_lock(lock_path, updates_dir, inspector) -> LockProbe:
    held = inspector.is_held(lock_path)
    corrupted = bool(interrupted_entries(inspector.list_updates(updates_dir)))
    return LockProbe(held=held, corrupted=corrupted)


def wait_for_lock(
    max_attempts=None,
    lock_path=None,
    updates_dir=None,
    *,
    inspector=None,
    sleep=time.sleep,
    sleep_unit=None,
) -> LockState:
    apt_cfg = CONFIG_MANAGER.apt
    max_attempts = apt_cfg.max_attempts if max_attempts is None else max_attempts
    lock_path = lock_path or apt_cfg.lock_path
    updates_dir = updates_dir or apt_cfg.updates_dir
    sleep_unit = apt_cfg.sleep_unit if sleep_unit is None else sleep_unit
    inspector = inspector or ProcessLockInspector()

    waited = 0.0
    for attempt in range(1, max_attempts + 1):
        probe = probe_lock(lock_path, updates_dir, inspector)
        if not probe.held:
            if probe.corrupted:
                return LockState.CORRUPTED
            if waited:
                logger.debug(f"{lock_path} released after {format_time(waited)}")
            return LockState.READY

        delay = backoff_delay(attempt, sleep_unit)
        logger.info(
            f"apt is already in use ({lock_path} held), attempt {attempt}/{max_attempts}, "
            f"waiting {format_time(delay)}"
        )
        sleep(delay)
        waited += delay

    # dpkg legitimately writes numbered files while it holds the lock, so the
    # staging directory is only judged once we stop waiting on the holder.
    final = probe_lock(lock_path, updates_dir, inspector)
    if final.corrupted:
        return LockState.CORRUPTED
    # zero attempts means a single check without waiting
    if not max_attempts and not final.held:
        return LockState.READY
    return LockState.BUSY


def ensure_dpkg_free(**kwargs) -> LockState:
    inspector = kwargs.get("inspector") or ProcessLockInspector()
    kwargs["inspector"] = inspector
    updates_dir = kwargs.get("updates_dir") or CONFIG_MANAGER.apt.updates_dir

    state = wait_for_lock(**kwargs)
    if state is LockState.CORRUPTED:
        entries = interrupted_entries(inspector.list_updates(updates_dir))
        logger.error(
            "dpkg was interrupted, you must manually run "
            "'sudo dpkg --configure -a' to correct the problem."
        )
        raise LockCorrupted(updates_dir, entries)
    if state is LockState.BUSY:
        # TODO: confirm the lock is actually free before proceeding once the
        # callers can tolerate a hard failure here.
        attempts = kwargs.get("max_attempts")
        timeout = LockTimeout(
            kwargs.get("lock_path") or CONFIG_MANAGER.apt.lock_path,
            CONFIG_MANAGER.apt.max_attempts if attempts is None else attempts,
        )
        logger.warning(f"apt still used, but timeout reached! {timeout}")
    return state


def _looks_like_lock_error(stderr: str) -> bool:
    if not stderr:
        return False
    needle = stderr.lower()
    return (
        "dpkg frontend lock" in needle
        or "could not get lock" in needle
        or "unable to acquire the dpkg frontend lock" in needle
        or "could not acquire dpkg frontend lock" in needle
    )


@contextmanager
def apt_lock():
    _APT_LOCK.acquire()
    try:
        yield
    finally:
        _APT_LOCK.release()


def run_locked(
    cmd, runner, *, retries: int = 6, delay_s: float = 5.0, lock_kwargs=None, **kwargs
):
    with apt_lock():
        ensure_dpkg_free(**(lock_kwargs or {}))
        sleep = (lock_kwargs or {}).get("sleep", time.sleep)
        last_err = None
        for attempt in range(max(1, retries)):
            try:
                return runner.run(cmd, **kwargs)
            except subprocess.CalledProcessError as e:
                stderr = getattr(e, "stderr", "") or ""
                if not _looks_like_lock_error(stderr) or attempt == retries - 1:
                    raise
                wait_s = delay_s * (attempt + 1)
                logger.warning(
                    "dpkg/apt lock busy; retrying in %.1fs (%s)",
                    wait_s,
                    cmd,
                )
                sleep(wait_s)
                last_err = e
        if last_err:
            raise last_err
