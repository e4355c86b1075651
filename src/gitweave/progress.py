import typing

import gitweave.logging
import gitweave.util
from gitweave.models import task as task_models


class ProgressSink(typing.Protocol):
    """
    Observer of a run. It never influences what the run does.
    """

    def update(self, target: str, status: task_models.TaskStatus) -> None: ...

    def report(self, report: task_models.Report) -> None: ...


class LoggingProgressSink:
    def update(self, target: str, status: task_models.TaskStatus) -> None:
        match status:
            case "pending":
                gitweave.logging.debug("Queued %s", target)
            case "active":
                gitweave.logging.info("Processing %s", target)
            case "done":
                gitweave.logging.debug("Finished %s", target)
            case "failed":
                gitweave.logging.warning("Failed %s", target)

    def report(self, report: task_models.Report) -> None:
        if report.aborted:
            gitweave.logging.warning("%s aborted by user", report.operation.capitalize())

        gitweave.logging.info(
            "%s: %d of %d succeeded",
            report.operation.capitalize(),
            report.success_count,
            report.total,
        )
        for error in report.errors:
            gitweave.logging.error("  %s: %s", error.target, gitweave.util.truncate(error.message))

        if len(report.errors) > 0:
            gitweave.logging.info(
                "Retry with: gitweave %s %s", report.operation, " ".join(report.failed_targets)
            )
