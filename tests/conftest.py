import asyncio
import collections.abc
import pathlib

import pyfakefs.fake_filesystem
import pytest
from pytest_mock import MockerFixture

from gitweave import process
from gitweave.models import config as config_models
from gitweave.models import task as task_models

Predicate = collections.abc.Callable[[list[str]], bool]


class FakeRunner:
    """
    Stands in for the process runner. Clones create the target directory, everything else
    succeeds unless a scripted response matches.
    """

    def __init__(self):
        self.commands: list[list[str]] = []
        self.shell_commands: list[tuple[str, pathlib.Path]] = []
        self.responses: list[tuple[Predicate, process.CommandResult]] = []
        self.shell_failures: dict[str, str] = {}
        # Commits behind upstream, by package directory name
        self.behind: dict[str, int] = {}
        # Commands containing the fragment wait for the event before completing
        self.holds: list[tuple[str, asyncio.Event]] = []

    def respond(self, predicate: Predicate, success: bool, output: str = ""):
        self.responses.append((predicate, process.CommandResult(success=success, output=output)))

    def fail(self, *fragments: str, output: str = "fatal: error"):
        """
        Fail every command containing all of the fragments.
        """
        self.respond(lambda args: all(fragment in args for fragment in fragments), False, output)

    async def run(self, args: list[str], cwd: pathlib.Path | None = None) -> process.CommandResult:
        self.commands.append(args)
        for fragment, event in self.holds:
            if fragment in args:
                await event.wait()

        for predicate, result in self.responses:
            if predicate(args):
                return result

        if args[1] == "clone":
            pathlib.Path(args[-1]).mkdir(parents=True, exist_ok=True)
        if "rev-list" in args:
            return process.CommandResult(
                success=True, output=str(self.behind.get(pathlib.Path(args[2]).name, 0))
            )
        return process.CommandResult(success=True, output="")

    def hold(self, fragment: str, event: asyncio.Event):
        self.holds.append((fragment, event))

    async def run_shell(self, command: str, cwd: pathlib.Path) -> process.CommandResult:
        self.shell_commands.append((command, cwd))
        if command in self.shell_failures:
            return process.CommandResult(success=False, output=self.shell_failures[command])
        return process.CommandResult(success=True, output="")

    def commands_for(self, name: str) -> list[list[str]]:
        return [
            args
            for args in self.commands
            if any(pathlib.Path(arg).name == name for arg in args if arg.startswith("/"))
        ]


class RecordingSink:
    def __init__(self):
        self.updates: list[tuple[str, task_models.TaskStatus]] = []
        self.reports: list[task_models.Report] = []

    def update(self, target: str, status: task_models.TaskStatus) -> None:
        self.updates.append((target, status))

    def report(self, report: task_models.Report) -> None:
        self.reports.append(report)


@pytest.fixture(name="config")
def config_fixture(fs: pyfakefs.fake_filesystem.FakeFilesystem) -> config_models.GitweaveConfig:
    _ = fs.create_dir("/packages")
    return config_models.GitweaveConfig(
        package_path=pathlib.Path("/packages"),
        spec_path=pathlib.Path("/config/packages"),
        self_repo="gitweave/gitweave",
    )


@pytest.fixture(name="runner")
def runner_fixture(mocker: MockerFixture) -> FakeRunner:
    runner = FakeRunner()
    _ = mocker.patch("gitweave.process.ProcessRunner", return_value=runner)
    return runner


@pytest.fixture(name="sink")
def sink_fixture() -> RecordingSink:
    return RecordingSink()
