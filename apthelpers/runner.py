from apthelpers.global_logger import logger
import os, shlex, subprocess


class CommandRunner:
    """Runs external tools. Swap for a fake in tests."""

    def __init__(self, logger=logger):
        self.logger = logger

    def run(self, cmd, *, env=None, cwd=None, input=None, check=True):
        merged_env = None
        if env:
            merged_env = dict(os.environ)
            merged_env.update(env)
        self.logger.debug(f"Running: {shlex.join(str(c) for c in cmd)}")
        result = subprocess.run(
            [str(c) for c in cmd],
            env=merged_env,
            cwd=cwd,
            input=input,
            capture_output=True,
            text=True,
        )
        if result.stdout:
            for line in result.stdout.splitlines():
                self.logger.debug(f"{cmd[0]}: {line}")
        if check and result.returncode != 0:
            raise subprocess.CalledProcessError(
                result.returncode, cmd, output=result.stdout, stderr=result.stderr
            )
        return result
