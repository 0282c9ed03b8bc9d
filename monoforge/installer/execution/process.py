"""Running the package-manager executable.

Long-running commands stream their combined stdout/stderr through loguru
line by line.  Short queries (``npm view ...``) capture stdout instead.
Both are awaited to completion; there is no cancellation.
"""

from __future__ import annotations

import os
import shlex
import shutil
import subprocess
from typing import TYPE_CHECKING

import anyio
from anyio.streams.text import TextReceiveStream
from loguru import logger

from monoforge.installer.errors import InstallError, ResourceError, TransientRetryExceededError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from pathlib import Path

    from monoforge.installer.models import PackageManagerKind


class ProcessFailedError(InstallError):
    def __init__(self, command: Sequence[str], exit_code: int, output: str = "") -> None:
        self.command = list(command)
        self.exit_code = exit_code
        self.output = output
        message = f"The command failed with exit code {exit_code}: {shlex.join(command)}"
        if output.strip():
            message += f"\n{output.strip()}"
        super().__init__(message)


# -- Single invocation ---------------------------------------------------------


async def run_command(command: Sequence[str], *, cwd: Path, env: Mapping[str, str] | None = None) -> None:
    """Run *command*, relaying its output.  Raises ``ProcessFailedError`` on non-zero exit."""
    logger.info("Invoking \"{}\" in {}", shlex.join(command), cwd)
    async with await anyio.open_process(
        list(command),
        cwd=cwd,
        env=dict(env) if env is not None else None,
        stdin=subprocess.DEVNULL,
        stderr=subprocess.STDOUT,
    ) as process:
        pending = ""
        if process.stdout is not None:
            async for chunk in TextReceiveStream(process.stdout, errors="replace"):
                pending += chunk
                *lines, pending = pending.split("\n")
                for line in lines:
                    logger.info("{}", line.rstrip("\r"))
        if pending:
            logger.info("{}", pending.rstrip("\r"))
        exit_code = await process.wait()

    if exit_code != 0:
        raise ProcessFailedError(command, exit_code)


async def capture_output(command: Sequence[str], *, cwd: Path, env: Mapping[str, str] | None = None) -> str:
    result = await anyio.run_process(
        list(command),
        cwd=cwd,
        env=dict(env) if env is not None else None,
        check=False,
    )
    if result.returncode != 0:
        raise ProcessFailedError(command, result.returncode, result.stderr.decode(errors="replace"))
    return result.stdout.decode(errors="replace")


# -- Retry ---------------------------------------------------------------------


async def run_command_with_retry(
    command: Sequence[str],
    *,
    cwd: Path,
    env: Mapping[str, str] | None = None,
    max_attempts: int = 1,
    on_retry: Callable[[], None] | None = None,
) -> None:
    """Run *command* up to *max_attempts* times.

    *on_retry* runs before every retry, e.g. to recycle a half-written
    ``node_modules``.
    """
    if max_attempts < 1:
        msg = f"max_attempts must be at least 1, got {max_attempts}"
        raise ValueError(msg)

    attempt = 1
    while True:
        try:
            await run_command(command, cwd=cwd, env=env)
        except ProcessFailedError as exc:
            logger.warning("The command failed:\n  {}\nERROR: {}", shlex.join(command), exc)
            if attempt >= max_attempts:
                if max_attempts > 1:
                    logger.error("Giving up after {} attempts", attempt)
                msg = f"{exc}\nGave up after {attempt} attempt(s)"
                raise TransientRetryExceededError(msg) from exc
            attempt += 1
            logger.info("Trying again (attempt #{})...", attempt)
            if on_retry is not None:
                on_retry()
        else:
            return


class PackageManagerRunner:
    """One package-manager executable plus the environment it runs with.

    Strategies and the version resolver talk to the package manager only
    through this object, so tests can swap in a recording fake.
    """

    def __init__(self, executable: str, *, environment: Mapping[str, str] | None = None) -> None:
        self.executable = executable
        self.environment = dict(environment) if environment is not None else None

    @classmethod
    def locate(cls, kind: PackageManagerKind) -> PackageManagerRunner:
        executable = shutil.which(kind.value)
        if executable is None:
            msg = f"Unable to find the '{kind}' executable on PATH ({os.environ.get('PATH', '')})"
            raise ResourceError(msg)
        return cls(executable)

    def _env(self, env: Mapping[str, str] | None) -> dict[str, str] | None:
        if env is None and self.environment is None:
            return None
        merged = dict(os.environ)
        merged.update(self.environment or {})
        merged.update(env or {})
        return merged

    async def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
        max_attempts: int = 1,
        on_retry: Callable[[], None] | None = None,
    ) -> None:
        await run_command_with_retry(
            [self.executable, *args],
            cwd=cwd,
            env=self._env(env),
            max_attempts=max_attempts,
            on_retry=on_retry,
        )

    async def capture(
        self,
        args: Sequence[str],
        *,
        cwd: Path,
        max_attempts: int = 1,
        timeout: float | None = None,
    ) -> str:
        """Run a query and return its stdout, retrying failures and timeouts."""
        command = [self.executable, *args]
        last_error: Exception | None = None
        for attempt in range(1, max_attempts + 1):
            try:
                with anyio.fail_after(timeout):
                    return await capture_output(command, cwd=cwd, env=self._env(None))
            except (ProcessFailedError, TimeoutError) as exc:
                last_error = exc
                logger.debug("Query {} failed on attempt {}: {}", shlex.join(command), attempt, exc)
        msg = f"Giving up on \"{shlex.join(command)}\" after {max_attempts} attempt(s): {last_error}"
        raise TransientRetryExceededError(msg) from last_error
