import asyncio
import collections.abc

import gitweave.logging
import gitweave.progress
import gitweave.util
from gitweave import graph, plan, scheduler
from gitweave.models import config as config_models
from gitweave.models import manifest as manifest_models
from gitweave.models import spec as spec_models
from gitweave.models import task as task_models
from gitweave.pkg import ops as pkg_ops


def compute_orphans(
    removed_repo: str,
    manifest_deps: collections.abc.Iterable[str],
    remaining_entries: collections.abc.Iterable[manifest_models.ManifestEntry],
    *,
    self_repo: str | None = None,
) -> list[str]:
    """
    Dependencies of a removed package that no remaining package refers to anymore.
    """
    still_referenced = {
        dep
        for entry in remaining_entries
        if entry.repo != removed_repo
        for dep in entry.dependencies
    }

    orphans: list[str] = []
    for dep in manifest_deps:
        if dep in still_referenced or dep in orphans or spec_models.is_self(dep, self_repo):
            continue
        orphans.append(dep)
    return orphans


async def remove_pkg(package_ops: pkg_ops.PkgOps, name: str) -> task_models.TaskResult:
    """
    Delete one package directory, and the dependencies only it was using.
    """
    config = package_ops.config
    store = package_ops.store

    gitweave.logging.info("Removing %s", name)
    entry = store.get_entry_by_name(name)

    try:
        _ = await asyncio.to_thread(gitweave.util.remove_path, config.package_path / name)
    except OSError as e:
        return task_models.TaskResult(
            target=name, success=False, message=gitweave.util.truncate(f"Cannot remove: {e}")
        )

    if entry is None:
        return task_models.TaskResult(target=name, success=True, message="removed")

    _ = store.remove_entry(entry.repo)
    orphans = compute_orphans(
        entry.repo, entry.dependencies, store.load().entries, self_repo=config.self_repo
    )

    removed_orphans: list[str] = []
    for orphan in orphans:
        # Declared packages may need it even before they are recorded in the manifest
        if orphan in package_ops.resolved.required_repos:
            continue

        orphan_dir = config.package_path / spec_models.repo_name(orphan)
        try:
            _ = await asyncio.to_thread(gitweave.util.remove_path, orphan_dir)
        except OSError as e:
            return task_models.TaskResult(
                target=name,
                success=False,
                message=gitweave.util.truncate(f"Cannot remove dependency {orphan}: {e}"),
            )

        _ = store.remove_entry(orphan, drop_references=True)
        removed_orphans.append(orphan)
        gitweave.logging.info("Removed unused dependency %s", orphan)

    message = "removed"
    if len(removed_orphans) > 0:
        message += f" with {', '.join(removed_orphans)}"
    return task_models.TaskResult(target=name, success=True, message=message)


async def remove(
    config: config_models.GitweaveConfig,
    specs: list[spec_models.PackageSpec],
    *,
    context: scheduler.RunContext | None = None,
    sink: gitweave.progress.ProgressSink | None = None,
    only: collections.abc.Collection[str] | None = None,
) -> task_models.Report:
    """
    Remove every installed package that is neither declared nor needed by a declared package.
    """
    context = context or scheduler.RunContext()
    sink = sink or gitweave.progress.LoggingProgressSink()

    resolved = graph.resolve(specs, self_repo=config.self_repo)
    installed = plan.installed_names(config.package_path)
    candidates = plan.plan_removal(resolved, installed, self_repo=config.self_repo)
    if only is not None:
        candidates = [name for name in candidates if name in only]

    report = task_models.Report(operation="remove", total=len(candidates))
    if len(candidates) == 0:
        gitweave.logging.info("No unused packages found")
        sink.report(report)
        return report

    package_ops = pkg_ops.PkgOps.create(config, resolved, context)
    task_scheduler = scheduler.Scheduler(context, sink, config.concurrency)

    async def work(name: str) -> task_models.TaskResult:
        return await remove_pkg(package_ops, name)

    outcome = await task_scheduler.run(candidates, work)
    report.record(outcome.results)
    report.aborted = outcome.aborted

    sink.report(report)
    return report
