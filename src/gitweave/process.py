import asyncio
import contextlib
import dataclasses
import os
import pathlib
import shutil

import gitweave.logging
from gitweave import scheduler


@dataclasses.dataclass
class CommandResult:
    success: bool
    output: str


def _command_env() -> dict[str, str]:
    # Never block on a credential prompt nobody can answer
    return {**os.environ, "GIT_TERMINAL_PROMPT": "0"}


class ProcessRunner:
    """
    Spawns external commands for one run. Every live process is registered on the run
    context so an abort can terminate it.
    """

    def __init__(self, context: scheduler.RunContext) -> None:
        self.context = context

    async def run(self, args: list[str], cwd: pathlib.Path | None = None) -> CommandResult:
        if self.context.aborted:
            return CommandResult(success=False, output="Aborted")

        cmd = shutil.which(args[0])
        if cmd is None:
            return CommandResult(success=False, output=f"{args[0]} is not found in PATH")

        gitweave.logging.debug("Executing %s in %s", " ".join(args), cwd)
        try:
            process = await asyncio.create_subprocess_exec(
                cmd,
                *args[1:],
                cwd=cwd,
                env=_command_env(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            return CommandResult(success=False, output=f"Failed to start {args[0]}: {e}")

        return await self._wait(process)

    async def run_shell(self, command: str, cwd: pathlib.Path) -> CommandResult:
        if self.context.aborted:
            return CommandResult(success=False, output="Aborted")

        gitweave.logging.debug("Executing %s in %s", command, cwd)
        try:
            process = await asyncio.create_subprocess_shell(
                command,
                cwd=cwd,
                env=_command_env(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            return CommandResult(success=False, output=f"Failed to start {command}: {e}")

        return await self._wait(process)

    async def _wait(self, process: asyncio.subprocess.Process) -> CommandResult:
        self.context.processes.add(process)
        if self.context.aborted and process.returncode is None:
            # The abort went through the registry while this process was being spawned
            with contextlib.suppress(ProcessLookupError):
                process.terminate()

        try:
            stdout, stderr = await process.communicate()
        finally:
            self.context.processes.discard(process)

        out = stdout.decode(errors="replace").strip()
        err = stderr.decode(errors="replace").strip()

        if process.returncode == 0:
            output = "\n".join(part for part in (out, err) if part)
            return CommandResult(success=True, output=output)

        gitweave.logging.debug("Process exited with %s: %s", process.returncode, err or out)
        return CommandResult(success=False, output=err or out or "Unknown error occurred")
