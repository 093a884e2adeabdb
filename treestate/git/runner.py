"""External command runner with timeout and output-size handling.

Commands are always argument vectors handed straight to the OS; nothing is
ever formatted into a shell string.
"""

import asyncio
import logging
import os
import shutil
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from treestate.git.errors import (
    CommandNotFound,
    CommandTimeout,
    ExecutionError,
    format_git_error,
)
from treestate.lib.config import DEFAULT_CONFIG, DEFAULT_EXTRA_PATHS, EngineConfig

logger = logging.getLogger(__name__)

_READ_CHUNK = 64 * 1024


class _OutputLimitExceeded(Exception):
    pass


@dataclass
class CommandResult:
    """Result of an external command."""
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False
    not_found: bool = False
    overflowed: bool = False
    command: str = ""

    @property
    def success(self) -> bool:
        return (
            self.returncode == 0
            and not self.timed_out
            and not self.not_found
            and not self.overflowed
        )

    def raise_for_status(self, fallback: str = "Command failed") -> "CommandResult":
        """Return self on success, otherwise raise the matching GitError."""
        if self.success:
            return self
        if self.not_found:
            raise CommandNotFound(f"Command not found: {self.command}")
        if self.timed_out:
            raise CommandTimeout(self.stderr, stderr=self.stderr)
        if self.overflowed:
            raise ExecutionError(self.stderr, stderr=self.stderr)
        raw = self.stderr.strip() or self.stdout.strip()
        raise ExecutionError(format_git_error(raw, fallback), stderr=raw)


def build_augmented_path(
    extra_paths: tuple[str, ...] = DEFAULT_EXTRA_PATHS,
    current_path: str | None = None,
) -> str:
    """Append extra bin directories to PATH, dropping duplicates and blanks."""
    if current_path is None:
        current_path = os.environ.get("PATH", "")
    parts = current_path.split(os.pathsep) + [os.path.expanduser(p) for p in extra_paths]
    return os.pathsep.join(dict.fromkeys(p.strip() for p in parts if p.strip()))


def build_exec_env(extra_paths: tuple[str, ...] = DEFAULT_EXTRA_PATHS) -> dict[str, str]:
    env = dict(os.environ)
    env["PATH"] = build_augmented_path(extra_paths)
    return env


@lru_cache(maxsize=128)
def resolve_command_path(command: str, env_path: str) -> str | None:
    """
    Resolve an executable against an explicit PATH string.

    Cached per (command, PATH) pair, misses included. Commands that already
    contain a path separator are returned unchanged.
    """
    command = command.strip()
    if not command:
        return None
    if os.path.isabs(command) or os.sep in command:
        return command
    return shutil.which(command, path=env_path)


async def _read_limited(stream: asyncio.StreamReader, limit: int) -> bytes:
    chunks = []
    size = 0
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            break
        size += len(chunk)
        if size > limit:
            raise _OutputLimitExceeded()
        chunks.append(chunk)
    return b"".join(chunks)


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()


async def run_command(
    argv: list[str],
    cwd: Path,
    timeout: float,
    max_output_bytes: int,
    input_data: bytes | str | None = None,
    extra_paths: tuple[str, ...] = DEFAULT_EXTRA_PATHS,
) -> CommandResult:
    """
    Run an external command and wait for it.

    Args:
        argv: Command and arguments; argv[0] is resolved on the augmented PATH
        cwd: Working directory for the command
        timeout: Seconds before the process is killed
        max_output_bytes: Limit for each of stdout and stderr
        input_data: Optional payload written to stdin, which is then closed

    Returns:
        CommandResult; never raises for command failures. Use
        raise_for_status() to convert a failure into a GitError.
    """
    command = argv[0]
    env = build_exec_env(extra_paths)
    executable = resolve_command_path(command, env["PATH"])
    if executable is None:
        logger.debug(f"Command not found on augmented PATH: {command}")
        return CommandResult(
            returncode=-1, stdout="", stderr=f"Command not found: {command}",
            not_found=True, command=command,
        )

    if not Path(cwd).is_dir():
        return CommandResult(
            returncode=-1, stdout="", stderr=f"Working directory not found: {cwd}",
            command=command,
        )

    if isinstance(input_data, str):
        input_data = input_data.encode("utf-8")

    logger.debug(f"Running {argv} in {cwd}")
    try:
        proc = await asyncio.create_subprocess_exec(
            executable,
            *argv[1:],
            cwd=str(cwd),
            env=env,
            stdin=asyncio.subprocess.PIPE if input_data is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        resolve_command_path.cache_clear()
        return CommandResult(
            returncode=-1, stdout="", stderr=f"Command not found: {command}",
            not_found=True, command=command,
        )

    async def feed_stdin() -> None:
        if input_data is None:
            return
        try:
            proc.stdin.write(input_data)
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # Process exited before reading everything; its exit status says why.
            pass
        finally:
            proc.stdin.close()

    async def collect() -> tuple[bytes, bytes]:
        out, err, _ = await asyncio.gather(
            _read_limited(proc.stdout, max_output_bytes),
            _read_limited(proc.stderr, max_output_bytes),
            feed_stdin(),
        )
        await proc.wait()
        return out, err

    try:
        stdout, stderr = await asyncio.wait_for(collect(), timeout)
    except asyncio.TimeoutError:
        await _kill(proc)
        logger.debug(f"{command} timed out after {timeout}s")
        return CommandResult(
            returncode=-1, stdout="", stderr=f"Command timed out after {timeout}s",
            timed_out=True, command=command,
        )
    except _OutputLimitExceeded:
        await _kill(proc)
        return CommandResult(
            returncode=-1, stdout="", stderr=f"Output exceeded {max_output_bytes} bytes",
            overflowed=True, command=command,
        )

    logger.debug(f"{command} exited with {proc.returncode}")
    return CommandResult(
        returncode=proc.returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
        command=command,
    )


async def run_git(
    args: list[str],
    cwd: Path,
    config: EngineConfig = DEFAULT_CONFIG,
    timeout: float | None = None,
    max_output_bytes: int | None = None,
    input_data: bytes | str | None = None,
) -> CommandResult:
    """
    Run a git command.

    Args:
        args: Git command arguments (e.g., ["status", "--porcelain"])
        cwd: Repository working directory
        config: Supplies the git executable, extra PATH entries and defaults
        timeout: Seconds; defaults to config.query_timeout
        max_output_bytes: Defaults to config.max_output_bytes
        input_data: Optional stdin payload (patches)
    """
    return await run_command(
        [config.git_command, *args],
        cwd,
        timeout=config.query_timeout if timeout is None else timeout,
        max_output_bytes=config.max_output_bytes if max_output_bytes is None else max_output_bytes,
        input_data=input_data,
        extra_paths=config.extra_paths,
    )


async def run_git_checked(
    args: list[str],
    cwd: Path,
    config: EngineConfig = DEFAULT_CONFIG,
    fallback: str = "git command failed",
    **kwargs,
) -> CommandResult:
    """run_git, raising a GitError unless the command succeeded."""
    result = await run_git(args, cwd, config, **kwargs)
    return result.raise_for_status(fallback)
