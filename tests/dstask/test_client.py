from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path

import pytest

from dstui.dstask import client as client_module
from dstui.dstask import DstaskClient, DstaskError, TaskStatus


class FakeRun:
    """Stands in for ``subprocess.run`` and records every command."""

    def __init__(self, stdout: str = "", stderr: str = "", returncode: int = 0):
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode
        self.raises: BaseException | None = None
        self.calls: list[tuple[list[str], dict]] = []

    def __call__(self, cmd, **kwargs):
        self.calls.append((list(cmd), kwargs))
        if self.raises is not None:
            raise self.raises
        return subprocess.CompletedProcess(
            cmd, self.returncode, stdout=self.stdout, stderr=self.stderr
        )

    @property
    def commands(self) -> list[list[str]]:
        return [cmd for cmd, _ in self.calls]


@pytest.fixture
def fake_run(monkeypatch):
    fake = FakeRun()
    monkeypatch.setattr(client_module.subprocess, "run", fake)
    return fake


@pytest.fixture
def dstask():
    return DstaskClient()


TASKS_JSON = json.dumps(
    [
        {
            "uuid": "a1",
            "status": "active",
            "id": 1,
            "summary": "Write docs",
            "notes": "",
            "tags": ["docs"],
            "project": "site",
            "priority": "P1",
            "created": "2024-03-01T10:00:00Z",
            "resolved": "0001-01-01T00:00:00Z",
            "due": "0001-01-01T00:00:00Z",
        },
        {
            "uuid": "b2",
            "status": "pending",
            "id": 2,
            "summary": "Fix login",
            "tags": None,
            "project": "",
            "priority": "P2",
        },
    ]
)


def test_tasks_parses_open_tasks(fake_run, dstask):
    """Open tasks are read from show-open and parsed into Task objects."""
    fake_run.stdout = TASKS_JSON

    tasks = dstask.tasks()

    assert fake_run.commands == [["dstask", "show-open", "--"]]
    assert [task.id for task in tasks] == [1, 2]
    assert tasks[0].status == TaskStatus.ACTIVE
    assert tasks[0].tags == ["docs"]
    assert tasks[0].resolved is None
    assert tasks[1].tags == []


def test_filter_is_split_into_words(fake_run, dstask):
    """Filter text is split with shell quoting rules."""
    fake_run.stdout = "[]"

    dstask.tasks(filter='project:site +docs "two words"')

    assert fake_run.commands == [
        ["dstask", "show-open", "--", "project:site", "+docs", "two words"]
    ]


def test_unbalanced_filter_is_rejected(fake_run, dstask):
    """A filter with an unterminated quote never reaches dstask."""
    with pytest.raises(DstaskError, match="Invalid filter"):
        dstask.tasks(filter='"unterminated')
    assert fake_run.calls == []


@pytest.mark.parametrize(
    "method, command",
    [
        ("active_tasks", "show-active"),
        ("paused_tasks", "show-paused"),
        ("resolved_tasks", "show-resolved"),
    ],
)
def test_status_views_use_matching_command(fake_run, dstask, method, command):
    """Each status view runs its own show command."""
    fake_run.stdout = "[]"
    assert getattr(dstask, method)() == []
    assert fake_run.commands == [["dstask", command, "--"]]


def test_failed_read_without_output_is_empty(fake_run, dstask):
    """dstask exits non-zero when nothing matches; that is not an error."""
    fake_run.returncode = 1
    fake_run.stderr = "no tasks"

    assert dstask.tasks() == []


def test_failed_read_with_output_raises(fake_run, dstask):
    """A failed read that printed something reports stderr."""
    fake_run.returncode = 1
    fake_run.stdout = "something"
    fake_run.stderr = "bad filter"

    with pytest.raises(DstaskError, match="dstask error: bad filter"):
        dstask.tasks()


def test_empty_output_is_empty_list(fake_run, dstask):
    """Whitespace-only output means no tasks."""
    fake_run.stdout = "  \n"
    assert dstask.tasks() == []


def test_unparseable_output_raises(fake_run, dstask):
    """Output that is not JSON is reported as a parse failure."""
    fake_run.stdout = "not json"
    with pytest.raises(DstaskError, match="Failed to parse dstask output"):
        dstask.tasks()


def test_missing_binary_raises(fake_run):
    """A missing dstask executable is reported by name."""
    fake_run.raises = FileNotFoundError("dstask")
    with pytest.raises(DstaskError, match="executable not found: /opt/dstask"):
        DstaskClient(binary="/opt/dstask").tasks()


def test_timeout_raises(fake_run):
    """Commands that overrun the timeout are reported."""
    fake_run.raises = subprocess.TimeoutExpired(["dstask"], 5)
    with pytest.raises(DstaskError, match="within 5 seconds"):
        DstaskClient(timeout=5).tasks()
    assert fake_run.calls[0][1]["timeout"] == 5


def test_projects_are_parsed(fake_run, dstask):
    """Projects are read from show-projects with camelCase counts."""
    fake_run.stdout = json.dumps(
        [
            {
                "name": "site",
                "taskCount": 4,
                "resolvedCount": 1,
                "active": True,
                "priority": "P1",
            }
        ]
    )

    projects = dstask.projects()

    assert fake_run.commands == [["dstask", "show-projects", "--"]]
    assert projects[0].name == "site"
    assert projects[0].task_count == 4
    assert projects[0].resolved_count == 1
    assert projects[0].open_count == 3
    assert projects[0].active is True


def test_tags_accepts_plain_text(fake_run, dstask):
    """Tags printed one per line are read as plain text."""
    fake_run.stdout = "docs\nurgent\n\n"
    assert dstask.tags() == ["docs", "urgent"]


def test_tags_accepts_json(fake_run, dstask):
    """Tags printed as a JSON list are decoded."""
    fake_run.stdout = '["docs", "urgent"]'
    assert dstask.tags() == ["docs", "urgent"]


@pytest.mark.parametrize("line", ["2024", "null", "true"])
def test_tags_single_line_that_looks_like_json(fake_run, dstask, line):
    """A lone tag that happens to be valid JSON is still read as plain text."""
    fake_run.stdout = f"{line}\n"
    assert dstask.tags() == [line]


def test_task_finds_by_id(fake_run, dstask):
    """A single task is looked up among the open tasks."""
    fake_run.stdout = TASKS_JSON

    assert dstask.task("2").summary == "Fix login"
    assert dstask.task(99) is None


@pytest.mark.parametrize("bad_id", ["", "1a", "-1", "1; rm -rf /", "1 2"])
def test_invalid_ids_never_reach_dstask(fake_run, dstask, bad_id):
    """Non-numeric IDs are rejected before any command runs."""
    for method in (dstask.task, dstask.start, dstask.stop, dstask.done, dstask.remove):
        with pytest.raises(DstaskError, match="Invalid task ID"):
            method(bad_id)
    with pytest.raises(DstaskError, match="Invalid task ID"):
        dstask.modify(bad_id, project="x")
    assert fake_run.calls == []


@pytest.mark.parametrize("verb", ["start", "stop", "done", "remove"])
def test_task_verbs(fake_run, dstask, verb):
    """Task verbs run as ``dstask <id> -- <verb>``."""
    fake_run.stdout = "ok\n"

    result = getattr(dstask, verb)(7)

    assert fake_run.commands == [["dstask", "7", "--", verb]]
    assert result.success is True
    assert result.message == "ok"


def test_add_builds_arguments(fake_run, dstask):
    """New tasks carry project, priority and non-empty tags."""
    dstask.add(
        summary="Write docs",
        project="site",
        priority="P1",
        tags=["docs", "", "urgent"],
    )

    assert fake_run.commands == [
        ["dstask", "add", "--", "Write docs", "project:site", "P1", "+docs", "+urgent"]
    ]


def test_add_skips_blank_project_and_priority(fake_run, dstask):
    """Blank project and priority are left out."""
    dstask.add(summary="Bare task", project=" ", priority="")
    assert fake_run.commands == [["dstask", "add", "--", "Bare task"]]


def test_modify_builds_arguments(fake_run, dstask):
    """Modify adds and removes tags with + and - prefixes."""
    dstask.modify(
        3, project="site", priority="P0", add_tags=["new"], remove_tags=["old"]
    )

    assert fake_run.commands == [
        ["dstask", "3", "--", "modify", "project:site", "P0", "+new", "-old"]
    ]


def test_modify_without_changes_does_not_run(fake_run, dstask):
    """A modify with nothing to change skips dstask."""
    result = dstask.modify(3)

    assert result.success is True
    assert result.message == "No changes specified"
    assert fake_run.calls == []


def test_write_failure_prefers_stderr(fake_run, dstask):
    """Failed writes report stderr when there is any."""
    fake_run.returncode = 1
    fake_run.stdout = "partial"
    fake_run.stderr = "  task not found \n"

    result = dstask.done(4)

    assert result.success is False
    assert result.message == "task not found"


def test_write_failure_falls_back_to_stdout(fake_run, dstask):
    """Failed writes report stdout when stderr is empty."""
    fake_run.returncode = 1
    fake_run.stdout = "refusing\n"

    assert dstask.remove(4).message == "refusing"


def test_sync_without_script(fake_run, dstask):
    """Sync without a configured script does nothing."""
    result = dstask.sync(None)

    assert result.success is False
    assert result.message == "No sync script configured"
    assert fake_run.calls == []


def test_sync_runs_script_from_home(fake_run, dstask):
    """The sync script runs from the home directory."""
    fake_run.stdout = "pushed\n"

    result = dstask.sync("/usr/local/bin/sync-tasks")

    cmd, kwargs = fake_run.calls[0]
    assert cmd == ["/usr/local/bin/sync-tasks"]
    assert kwargs["cwd"] == Path.home()
    assert result.success is True
    assert result.message == "Sync completed"
    assert result.stdout == "pushed\n"


def test_sync_failure_keeps_output(fake_run, dstask):
    """A failing sync script keeps its output for display."""
    fake_run.returncode = 1
    fake_run.stderr = "merge conflict"

    result = dstask.sync("/bin/sync")

    assert result.success is False
    assert result.message == "Sync failed"
    assert result.stderr == "merge conflict"


@pytest.mark.parametrize(
    "error, message",
    [
        (FileNotFoundError(), "Sync script not found: /bin/sync"),
        (PermissionError(), "Sync script not executable: /bin/sync"),
        (
            OSError(8, "Exec format error"),
            "Sync script could not be run: /bin/sync: Exec format error",
        ),
    ],
)
def test_sync_launch_errors(fake_run, dstask, error, message):
    """Scripts that cannot be launched give a readable message."""
    fake_run.raises = error

    result = dstask.sync("/bin/sync")

    assert result.success is False
    assert result.message == message


@pytest.mark.skipif(sys.platform == "win32", reason="relies on POSIX exec")
def test_sync_script_without_interpreter(tmp_path):
    """An executable script with no shebang fails with a message, not a crash."""
    script = tmp_path / "sync.sh"
    script.write_text("echo hi\n")
    script.chmod(0o755)

    result = DstaskClient().sync(str(script))

    assert result.success is False
    assert result.message.startswith(f"Sync script could not be run: {script}")
