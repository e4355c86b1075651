import collections.abc
import enum

import gitweave.logging
import gitweave.progress
from gitweave import graph, plan, scheduler
from gitweave.models import config as config_models
from gitweave.models import spec as spec_models
from gitweave.models import task as task_models
from gitweave.pkg import install as pkg_install
from gitweave.pkg import ops as pkg_ops

# Checks of a package are attempted at most this many times, the first pass included
MAX_CHECK_ATTEMPTS = 2


class UpdateState(enum.Enum):
    CHECKING = enum.auto()
    APPLYING = enum.auto()
    RETRYING = enum.auto()
    DONE = enum.auto()


class UpdateFlow:
    """
    Checks every target, applies the updates that are needed, then checks again the targets
    whose check failed.
    """

    def __init__(
        self,
        package_ops: pkg_ops.PkgOps,
        task_scheduler: scheduler.Scheduler[spec_models.PackageSpec],
        targets: list[spec_models.PackageSpec],
    ):
        self.package_ops = package_ops
        self.scheduler = task_scheduler
        self.report = task_models.UpdateReport(total=len(targets))

        self.state = UpdateState.CHECKING
        self.pending = targets
        self.flagged: list[spec_models.PackageSpec] = []
        self.failed_checks: list[task_models.TaskResult] = []

    async def run(self) -> task_models.UpdateReport:
        while self.state is not UpdateState.DONE:
            gitweave.logging.debug("Update state: %s", self.state.name)
            match self.state:
                case UpdateState.CHECKING:
                    await self._check()
                case UpdateState.APPLYING:
                    await self._apply()
                case UpdateState.RETRYING:
                    self._retry()

        return self.report

    async def _check(self) -> None:
        self.report.attempts += 1
        outcome = await self.scheduler.run(
            self.pending, self.package_ops.check_pkg, key=_package_key
        )
        self.report.checks += len(outcome.results)

        by_repo = {package.repo: package for package in self.pending}
        self.flagged = []
        self.failed_checks = []
        for result in outcome.results:
            if not result.success:
                self.failed_checks.append(result)
                continue

            self.report.check_successes += 1
            if result.message == pkg_ops.CheckOutcome.NEED_UPDATE:
                self.flagged.append(by_repo[result.target])
            else:
                gitweave.logging.debug("%s is up to date", result.target)
                self.report.success_count += 1

        if outcome.aborted:
            self._abort()
        elif len(self.flagged) > 0:
            self.state = UpdateState.APPLYING
        else:
            self._finish_pass()

    async def _apply(self) -> None:
        outcome = await self.scheduler.run(
            self.flagged, self.package_ops.apply_update, key=_package_key
        )
        self.report.record(outcome.results)

        if outcome.aborted:
            self._abort()
        else:
            self._finish_pass()

    def _retry(self) -> None:
        retry_repos = {result.target for result in self.failed_checks}
        gitweave.logging.info("Retrying check of %s", ", ".join(sorted(retry_repos)))
        self.pending = [package for package in self.pending if package.repo in retry_repos]
        self.state = UpdateState.CHECKING

    def _finish_pass(self) -> None:
        if len(self.failed_checks) > 0 and self.report.attempts < MAX_CHECK_ATTEMPTS:
            self.state = UpdateState.RETRYING
            return

        self.report.errors.extend(self.failed_checks)
        self.state = UpdateState.DONE

    def _abort(self) -> None:
        self.report.errors.extend(self.failed_checks)
        self.report.aborted = True
        self.state = UpdateState.DONE


def _package_key(package: spec_models.PackageSpec) -> str:
    return package.repo


async def update(
    config: config_models.GitweaveConfig,
    specs: list[spec_models.PackageSpec],
    *,
    context: scheduler.RunContext | None = None,
    sink: gitweave.progress.ProgressSink | None = None,
    only: collections.abc.Collection[str] | None = None,
) -> task_models.UpdateReport:
    """
    Bring every declared package and dependency to its declared ref or to the latest upstream
    commit.
    """
    context = context or scheduler.RunContext()
    sink = sink or gitweave.progress.LoggingProgressSink()

    resolved = graph.resolve(specs, self_repo=config.self_repo)
    targets = pkg_install.select_targets(
        plan.plan_update(resolved, self_repo=config.self_repo), only
    )

    if len(targets) == 0:
        gitweave.logging.info("Nothing to update")
        report = task_models.UpdateReport()
        sink.report(report)
        return report

    package_ops = pkg_ops.PkgOps.create(config, resolved, context)
    task_scheduler = scheduler.Scheduler(context, sink, config.concurrency)
    report = await UpdateFlow(package_ops, task_scheduler, targets).run()

    sink.report(report)
    return report
