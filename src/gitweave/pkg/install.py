import collections.abc

import gitweave.logging
import gitweave.progress
import gitweave.util
from gitweave import graph, plan, scheduler
from gitweave.models import config as config_models
from gitweave.models import spec as spec_models
from gitweave.models import task as task_models
from gitweave.pkg import ops as pkg_ops


def _package_key(package: spec_models.PackageSpec) -> str:
    return package.repo


def select_targets(
    packages: list[spec_models.PackageSpec], only: collections.abc.Collection[str] | None
) -> list[spec_models.PackageSpec]:
    """
    Restrict packages to the requested repos, matched by repo or by directory name.
    """
    if only is None:
        return packages
    return [package for package in packages if package.repo in only or package.name in only]


async def install(
    config: config_models.GitweaveConfig,
    specs: list[spec_models.PackageSpec],
    *,
    context: scheduler.RunContext | None = None,
    sink: gitweave.progress.ProgressSink | None = None,
    only: collections.abc.Collection[str] | None = None,
) -> task_models.Report:
    """
    Install every declared package, and everything they depend on, that is not on disk yet.
    """
    context = context or scheduler.RunContext()
    sink = sink or gitweave.progress.LoggingProgressSink()

    resolved = graph.resolve(specs, self_repo=config.self_repo)
    installed = plan.installed_names(config.package_path)
    install_plan = plan.plan_install(resolved, installed, self_repo=config.self_repo)

    batches = [select_targets(batch, only) for batch in install_plan.batches]
    batches = [batch for batch in batches if len(batch) > 0]

    report = task_models.Report(operation="install", total=sum(len(batch) for batch in batches))
    if len(batches) == 0:
        gitweave.logging.info("All packages are already installed")
        sink.report(report)
        return report

    gitweave.util.ensure_path(config.package_path)
    package_ops = pkg_ops.PkgOps.create(config, resolved, context)
    task_scheduler = scheduler.Scheduler(context, sink, config.concurrency)

    for batch in batches:
        outcome = await task_scheduler.run(batch, package_ops.install_pkg, key=_package_key)
        report.record(outcome.results)
        if outcome.aborted:
            report.aborted = True
            break

    sink.report(report)
    return report
