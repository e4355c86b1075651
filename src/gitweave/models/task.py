import typing

import pydantic

TaskStatus = typing.Literal["pending", "active", "done", "failed"]


class TaskResult(pydantic.BaseModel):
    target: str
    success: bool
    message: str = ""


class Report(pydantic.BaseModel):
    """
    Final outcome of one operation, handed to the progress sink.
    """

    operation: str
    errors: list[TaskResult] = []
    success_count: int = 0
    total: int = 0
    aborted: bool = False

    def record(self, results: typing.Iterable[TaskResult]) -> None:
        for result in results:
            if result.success:
                self.success_count += 1
            else:
                self.errors.append(result)

    @property
    def failed_targets(self) -> list[str]:
        """
        Targets to resubmit to retry exactly what failed.
        """
        targets: list[str] = []
        for error in self.errors:
            if error.target not in targets:
                targets.append(error.target)
        return targets

    @property
    def ok(self) -> bool:
        return not self.errors and not self.aborted


class UpdateReport(Report):
    """
    Report of an update, with counters accumulated across check passes.
    """

    operation: str = "update"
    attempts: int = 0
    checks: int = 0
    check_successes: int = 0
