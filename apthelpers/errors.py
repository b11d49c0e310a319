class PackagingError(Exception):
    """Base class for failures that abort an install/upgrade operation."""


class LockCorrupted(PackagingError):
    def __init__(self, updates_dir, entries=None):
        self.updates_dir = str(updates_dir)
        self.entries = list(entries or [])
        super().__init__(
            "dpkg was interrupted, you must manually run "
            "'sudo dpkg --configure -a' to correct the problem "
            f"(leftover entries in {self.updates_dir}: {', '.join(self.entries)})"
        )


class LockTimeout(PackagingError):
    """Soft failure: the lock was still held after the last attempt."""

    def __init__(self, lock_path, attempts):
        self.lock_path = str(lock_path)
        self.attempts = attempts
        super().__init__(
            f"{self.lock_path} still held after {attempts} attempts, proceeding anyway"
        )


class InvalidControlFile(PackagingError):
    def __init__(self, path, missing):
        self.path = str(path)
        self.missing = list(missing)
        super().__init__(
            f"Invalid control file {self.path}: missing {', '.join(self.missing)}"
        )


class UnresolvedDependencies(PackagingError):
    def __init__(self, package, missing, log_tail=""):
        self.package = package
        self.missing = list(missing)
        self.log_tail = log_tail
        detail = f" ({' '.join(self.missing)})" if self.missing else ""
        message = f"Unable to install dependencies of {package}{detail}"
        if log_tail:
            message += f"\n{log_tail}"
        super().__init__(message)


class ConflictingRuntimeVersions(PackagingError):
    def __init__(self, runtime, versions):
        self.runtime = runtime
        self.versions = sorted(versions)
        super().__init__(
            f"Inconsistent {runtime} versions in dependencies ... found : "
            f"{', '.join(self.versions)}"
        )


class InvalidDependencySpec(PackagingError, ValueError):
    """A dependency list that cannot be turned into control file syntax."""
