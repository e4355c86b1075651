import asyncio
import collections.abc
import contextlib
import dataclasses

import gitweave.constants
import gitweave.logging
import gitweave.util
from gitweave import progress
from gitweave.models import task as task_models


class RunContext:
    """
    State shared by everything running on behalf of one operation.

    Aborting is cooperative: no new work is started and in-flight processes are asked to
    terminate, but work that is already running may still finish.
    """

    def __init__(self) -> None:
        self.aborted = False
        self.processes: set[asyncio.subprocess.Process] = set()

    def abort(self) -> None:
        if self.aborted:
            return

        gitweave.logging.warning("Aborting, %d processes still running", len(self.processes))
        self.aborted = True
        for process in list(self.processes):
            if process.returncode is None:
                # The process may exit between the check and the signal
                with contextlib.suppress(ProcessLookupError):
                    process.terminate()


@dataclasses.dataclass
class RunOutcome:
    results: list[task_models.TaskResult]
    aborted: bool

    @property
    def failures(self) -> list[task_models.TaskResult]:
        return [result for result in self.results if not result.success]


class Scheduler[T]:
    """
    Runs asynchronous units of work with a ceiling on how many run at once.
    """

    def __init__(
        self,
        context: RunContext,
        sink: progress.ProgressSink,
        concurrency: int = gitweave.constants.default_concurrency,
    ) -> None:
        if concurrency < 1:
            raise RuntimeError(f"Concurrency must be at least 1, got {concurrency}")

        self.context = context
        self.sink = sink
        self.concurrency = concurrency

    async def run(
        self,
        tasks: collections.abc.Sequence[T],
        work: collections.abc.Callable[[T], collections.abc.Awaitable[task_models.TaskResult]],
        *,
        key: collections.abc.Callable[[T], str] = str,
    ) -> RunOutcome:
        """
        Run work on every task and collect the results in task order.

        The run is complete once the queue is drained and no worker is busy. Results that
        arrive after an abort are dropped.
        """
        pending: collections.deque[int] = collections.deque(range(len(tasks)))
        results: list[task_models.TaskResult | None] = [None] * len(tasks)

        for task in tasks:
            self.sink.update(key(task), "pending")

        async def worker() -> None:
            while not self.context.aborted and len(pending) > 0:
                index = pending.popleft()
                target = key(tasks[index])

                self.sink.update(target, "active")
                try:
                    result = await work(tasks[index])
                except Exception as e:
                    # One broken package must not take the rest of the run down with it
                    gitweave.logging.debug("%s raised %r", target, e)
                    result = task_models.TaskResult(
                        target=target,
                        success=False,
                        message=gitweave.util.truncate(str(e) or type(e).__name__),
                    )

                if self.context.aborted:
                    return

                results[index] = result
                self.sink.update(target, "done" if result.success else "failed")

        async with asyncio.TaskGroup() as group:
            for _ in range(min(self.concurrency, len(tasks))):
                _ = group.create_task(worker())

        return RunOutcome(
            results=[result for result in results if result is not None],
            aborted=self.context.aborted,
        )
