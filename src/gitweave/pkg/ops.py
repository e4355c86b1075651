import asyncio
import enum
import pathlib

import gitweave.git
import gitweave.logging
import gitweave.util
from gitweave import graph, manifest, process, scheduler
from gitweave.models import config as config_models
from gitweave.models import manifest as manifest_models
from gitweave.models import spec as spec_models
from gitweave.models import task as task_models


class CheckOutcome(enum.StrEnum):
    NEED_UPDATE = "need update"
    UP_TO_DATE = "already up to date"


class PkgOps:
    """
    Per-package git work of one run. Every method reports failure through the returned
    TaskResult instead of raising, so one package never takes down the others.
    """

    def __init__(
        self,
        config: config_models.GitweaveConfig,
        resolved: graph.ResolvedSet,
        runner: process.ProcessRunner,
        store: manifest.core.ManifestStore,
    ):
        self.config = config
        self.resolved = resolved
        self.runner = runner
        self.store = store

    @classmethod
    def create(
        cls,
        config: config_models.GitweaveConfig,
        resolved: graph.ResolvedSet,
        context: scheduler.RunContext,
    ) -> "PkgOps":
        store = manifest.core.ManifestStore(
            config.manifest_path,
            declared_mains=resolved.main_repos,
            self_repo=config.self_repo,
        )
        return cls(config, resolved, process.ProcessRunner(context), store)

    def install_dir(self, package: spec_models.PackageSpec) -> pathlib.Path:
        return self.config.package_path / package.name

    def repo_url(self, package: spec_models.PackageSpec) -> str:
        return gitweave.git.repo_url(package, method=self.config.method, host=self.config.host)

    def _success(self, package: spec_models.PackageSpec, message: str) -> task_models.TaskResult:
        return task_models.TaskResult(target=package.repo, success=True, message=message)

    def _failure(self, package: spec_models.PackageSpec, message: str) -> task_models.TaskResult:
        gitweave.logging.debug("%s failed: %s", package.repo, message)
        return task_models.TaskResult(
            target=package.repo, success=False, message=gitweave.util.truncate(message)
        )

    async def _run_all(self, commands: list[list[str]]) -> process.CommandResult:
        result = process.CommandResult(success=True, output="")
        for command in commands:
            result = await self.runner.run(command)
            if not result.success:
                return result
        return result

    async def run_post_install(
        self, package: spec_models.PackageSpec, target_dir: pathlib.Path
    ) -> process.CommandResult:
        for command in package.post_install:
            gitweave.logging.info("Running `%s` for %s", command, package.repo)
            result = await self.runner.run_shell(command, cwd=target_dir)
            if not result.success:
                return process.CommandResult(
                    success=False, output=f"Execute command failed: {command} - {result.output}"
                )
        return process.CommandResult(success=True, output="")

    def record_install(
        self, package: spec_models.PackageSpec, *, branch: str | None, tag: str | None
    ) -> None:
        if package.is_main:
            entry = manifest_models.ManifestEntry.from_spec(package, branch=branch, tag=tag)
            _ = self.store.upsert_main(entry)
            return

        for main_repo in self.resolved.direct_dependents(package.repo):
            if self.resolved.specs[main_repo].is_main:
                _ = self.store.add_dependency_ref(main_repo, package.repo)

    async def _apply(
        self,
        package: spec_models.PackageSpec,
        op: gitweave.git.GitOp,
        *,
        branch: str | None,
        tag: str | None,
        submodules: bool = False,
    ) -> task_models.TaskResult:
        target_dir = self.install_dir(package)
        commands = gitweave.git.build_commands(
            op,
            target_dir=target_dir,
            url=self.repo_url(package),
            branch=branch,
            tag=tag,
            submodules=submodules,
        )

        result = await self._run_all(commands)
        if not result.success:
            return self._failure(package, result.output)

        result = await self.run_post_install(package, target_dir)
        if not result.success:
            return self._failure(package, result.output)

        self.record_install(package, branch=branch, tag=tag)
        return self._success(package, op.value)

    async def install_pkg(self, package: spec_models.PackageSpec) -> task_models.TaskResult:
        """
        Clone a package, or bring an existing checkout to the requested ref.
        """
        branch = package.effective_branch
        tag = package.tag

        exists = self.install_dir(package).is_dir()
        if exists:
            entry = self.store.get_entry(package.repo)
            if entry is not None:
                branch = branch or spec_models.normalize_branch(entry.branch)
                tag = tag or entry.tag

        op = gitweave.git.select_op(exists=exists, branch=branch, tag=tag)
        gitweave.logging.info("Installing %s (%s)", package.repo, op.value)
        return await self._apply(package, op, branch=branch, tag=tag)

    async def check_pkg(self, package: spec_models.PackageSpec) -> task_models.TaskResult:
        """
        Decide whether a package needs an update. The message of a successful result is a
        CheckOutcome.
        """
        target_dir = self.install_dir(package)
        if not target_dir.is_dir():
            # Applying the update falls back to a fresh install
            return self._success(package, CheckOutcome.NEED_UPDATE)

        entry = self.store.get_entry(package.repo)
        recorded_branch = None if entry is None else spec_models.normalize_branch(entry.branch)
        recorded_tag = None if entry is None else entry.tag

        if package.tag != recorded_tag:
            return self._success(package, CheckOutcome.NEED_UPDATE)
        if package.tag is not None:
            # Pinned to the same tag
            return self._success(package, CheckOutcome.UP_TO_DATE)
        if package.effective_branch != recorded_branch:
            return self._success(package, CheckOutcome.NEED_UPDATE)

        fetch = gitweave.git.fetch_command(target_dir, package.effective_branch)
        result = await self.runner.run(fetch)
        if not result.success:
            return self._failure(package, f"Repository synchronization failed: {result.output}")

        result = await self.runner.run(gitweave.git.behind_count_command(target_dir))
        if not result.success:
            return self._failure(package, f"Cannot compare with upstream: {result.output}")

        try:
            behind = int(result.output.split()[0])
        except (ValueError, IndexError):
            return self._failure(package, f"Unexpected rev-list output: {result.output}")

        gitweave.logging.debug("%s is %d commits behind upstream", package.repo, behind)
        if behind > 0:
            return self._success(package, CheckOutcome.NEED_UPDATE)
        return self._success(package, CheckOutcome.UP_TO_DATE)

    async def _reinstall(
        self, package: spec_models.PackageSpec, reason: str
    ) -> task_models.TaskResult:
        gitweave.logging.info("%s: %s, reinstalling", package.repo, reason)
        try:
            _ = await asyncio.to_thread(gitweave.util.remove_path, self.install_dir(package))
        except OSError as e:
            return self._failure(package, f"{reason}, cannot remove old checkout: {e}")

        result = await self.install_pkg(package)
        if not result.success:
            message = gitweave.util.truncate(f"{reason}: {result.message}")
            return result.model_copy(update={"message": message})
        return result

    async def apply_update(self, package: spec_models.PackageSpec) -> task_models.TaskResult:
        """
        Move a package to its declared ref.

        A changed tag or branch is switched to in place. When a tag or branch was dropped from
        the declaration the checkout is replaced by a fresh clone of the default branch.
        """
        if not self.install_dir(package).is_dir():
            return await self._reinstall(package, "Directory missing")

        entry = self.store.get_entry(package.repo)
        recorded_branch = None if entry is None else spec_models.normalize_branch(entry.branch)
        recorded_tag = None if entry is None else entry.tag

        declared_branch = package.effective_branch
        declared_tag = package.tag

        if declared_tag != recorded_tag:
            if declared_tag is None:
                return await self._reinstall(package, f"Tag {recorded_tag} removed")
            op = gitweave.git.GitOp.UPDATE_TAG
        elif declared_tag is None and declared_branch != recorded_branch:
            if declared_branch is None:
                return await self._reinstall(package, f"Branch {recorded_branch} removed")
            op = gitweave.git.GitOp.UPDATE_BRANCH
        else:
            op = gitweave.git.select_op(exists=True, branch=declared_branch, tag=declared_tag)

        gitweave.logging.info("Updating %s (%s)", package.repo, op.value)
        return await self._apply(
            package, op, branch=declared_branch, tag=declared_tag, submodules=True
        )
