"""Thin wrapper around the ``dstask`` command line program."""

from __future__ import annotations

import json
import re
import shlex
import subprocess
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

from loguru import logger

from .models import Project, Task

DEFAULT_BINARY: Final[str] = "dstask"
DEFAULT_TIMEOUT: Final[float] = 30.0
# Ignore whatever context the user has set with `dstask context`.
CONTEXT_SEPARATOR: Final[str] = "--"

_TASK_ID_RE = re.compile(r"\A\d+\Z")


class DstaskError(RuntimeError):
    """Raised when dstask cannot be run or its output cannot be used."""


@dataclass
class CommandResult:
    """Outcome of a command that changes state."""

    success: bool
    message: str
    stdout: str = ""
    stderr: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "stdout": self.stdout,
            "stderr": self.stderr,
        }


def validate_id(task_id: int | str) -> str:
    """Return ``task_id`` as a string, or raise if it is not a plain number."""
    value = str(task_id)
    if not _TASK_ID_RE.match(value):
        raise DstaskError("Invalid task ID")
    return value


def _present(value: str | None) -> bool:
    return value is not None and value.strip() != ""


class DstaskClient:
    """Builds dstask argument vectors, runs them and parses the output."""

    def __init__(
        self, binary: str = DEFAULT_BINARY, timeout: float = DEFAULT_TIMEOUT
    ) -> None:
        self.binary = binary
        self.timeout = timeout

    # Read operations

    def tasks(self, filter: str | None = None) -> list[Task]:
        return self._tasks("show-open", filter)

    def active_tasks(self) -> list[Task]:
        return self._tasks("show-active")

    def paused_tasks(self) -> list[Task]:
        return self._tasks("show-paused")

    def resolved_tasks(self) -> list[Task]:
        return self._tasks("show-resolved")

    def projects(self) -> list[Project]:
        return [Project.from_dict(item) for item in self._run_read("show-projects")]

    def tags(self) -> list[str]:
        """List every tag known to dstask.

        Depending on the dstask version ``show-tags`` prints either a JSON
        list or one tag per line.
        """
        proc = self._execute([self.binary, "show-tags", CONTEXT_SEPARATOR])
        output = proc.stdout.strip()
        if proc.returncode != 0 and output:
            raise DstaskError(f"dstask error: {proc.stderr}")
        if not output:
            return []
        try:
            parsed = json.loads(output)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            return [str(tag) for tag in parsed]
        return [line.strip() for line in output.splitlines() if line.strip()]

    def task(self, task_id: int | str) -> Task | None:
        """Find an open task by its numeric ID."""
        wanted = int(validate_id(task_id))
        for task in self.tasks():
            if task.id == wanted:
                return task
        return None

    # Write operations

    def add(
        self,
        summary: str,
        project: str | None = None,
        priority: str | None = None,
        tags: Iterable[str] = (),
    ) -> CommandResult:
        args = [summary]
        if _present(project):
            args.append(f"project:{project}")
        if _present(priority):
            args.append(priority)
        args.extend(f"+{tag}" for tag in tags if _present(tag))
        return self._run_write("add", args)

    def start(self, task_id: int | str) -> CommandResult:
        return self._run_write(validate_id(task_id), ["start"])

    def stop(self, task_id: int | str) -> CommandResult:
        return self._run_write(validate_id(task_id), ["stop"])

    def done(self, task_id: int | str) -> CommandResult:
        return self._run_write(validate_id(task_id), ["done"])

    def remove(self, task_id: int | str) -> CommandResult:
        return self._run_write(validate_id(task_id), ["remove"])

    def modify(
        self,
        task_id: int | str,
        project: str | None = None,
        priority: str | None = None,
        add_tags: Iterable[str] = (),
        remove_tags: Iterable[str] = (),
    ) -> CommandResult:
        task_id = validate_id(task_id)
        args = ["modify"]
        if _present(project):
            args.append(f"project:{project}")
        if _present(priority):
            args.append(priority)
        args.extend(f"+{tag}" for tag in add_tags if _present(tag))
        args.extend(f"-{tag}" for tag in remove_tags if _present(tag))

        if len(args) == 1:
            return CommandResult(success=True, message="No changes specified")
        return self._run_write(task_id, args)

    def sync(self, script_path: str | None) -> CommandResult:
        """Run the user's sync script from their home directory."""
        if not script_path:
            return CommandResult(success=False, message="No sync script configured")

        logger.info(f"Running sync script {script_path}")
        try:
            proc = subprocess.run(
                [script_path],
                cwd=Path.home(),
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError:
            return CommandResult(
                success=False, message=f"Sync script not found: {script_path}"
            )
        except PermissionError:
            return CommandResult(
                success=False, message=f"Sync script not executable: {script_path}"
            )
        except OSError as exc:
            return CommandResult(
                success=False,
                message=f"Sync script could not be run: {script_path}: {exc.strerror}",
            )

        success = proc.returncode == 0
        if not success:
            logger.warning(f"Sync script exited with status {proc.returncode}")
        return CommandResult(
            success=success,
            message="Sync completed" if success else "Sync failed",
            stdout=proc.stdout,
            stderr=proc.stderr,
        )

    # Plumbing

    def _tasks(self, command: str, filter: str | None = None) -> list[Task]:
        return [Task.from_dict(item) for item in self._run_read(command, filter)]

    def _run_read(self, command: str, filter: str | None = None) -> list[Any]:
        cmd = [self.binary, command, CONTEXT_SEPARATOR]
        if filter and filter.strip():
            try:
                cmd.extend(shlex.split(filter))
            except ValueError as exc:
                raise DstaskError(f"Invalid filter: {exc}") from exc

        proc = self._execute(cmd)
        output = proc.stdout.strip()

        if proc.returncode != 0:
            # Some commands exit non-zero when nothing matches.
            if not output:
                return []
            raise DstaskError(f"dstask error: {proc.stderr}")

        if not output:
            return []

        try:
            return json.loads(output)
        except json.JSONDecodeError as exc:
            raise DstaskError(f"Failed to parse dstask output: {exc}") from exc

    def _run_write(self, id_or_command: str, args: Sequence[str]) -> CommandResult:
        cmd = [self.binary, id_or_command, CONTEXT_SEPARATOR, *map(str, args)]
        proc = self._execute(cmd)
        stdout = proc.stdout.strip()
        stderr = proc.stderr.strip()

        if proc.returncode == 0:
            return CommandResult(success=True, message=stdout, stdout=proc.stdout)

        logger.warning(
            f"dstask {id_or_command} exited with status {proc.returncode}: "
            f"{stderr or stdout}"
        )
        return CommandResult(
            success=False,
            message=stderr or stdout,
            stdout=proc.stdout,
            stderr=proc.stderr,
        )

    def _execute(self, cmd: list[str]) -> subprocess.CompletedProcess[str]:
        logger.debug(f"Running {shlex.join(cmd)}")
        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise DstaskError(f"dstask executable not found: {self.binary}") from exc
        except subprocess.TimeoutExpired as exc:
            raise DstaskError(
                f"dstask did not finish within {self.timeout:g} seconds"
            ) from exc
