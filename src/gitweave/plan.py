import dataclasses
import pathlib

from gitweave import graph
from gitweave.models import spec as spec_models


@dataclasses.dataclass
class InstallPlan:
    """
    Packages to install, in batches. A batch only starts once the previous one has completed.
    """

    batches: list[list[spec_models.PackageSpec]]

    @property
    def tasks(self) -> list[spec_models.PackageSpec]:
        return [package for batch in self.batches for package in batch]

    def is_empty(self) -> bool:
        return len(self.batches) == 0


def installed_names(package_path: pathlib.Path) -> set[str]:
    """
    Names of the package directories present under the package path.
    """
    if not package_path.is_dir():
        return set()
    return {path.name for path in package_path.iterdir() if path.is_dir()}


def plan_install(
    resolved: graph.ResolvedSet,
    installed: set[str],
    *,
    self_repo: str | None = None,
) -> InstallPlan:
    """
    Plan the installation of every resolved package that is not on disk yet.

    Dependency-only packages come first. After them, main packages are batched by graph layer
    so a package is never installed alongside something it depends on.
    """
    pending = {
        repo
        for repo, package in resolved.specs.items()
        if package.name not in installed and not spec_models.is_self(repo, self_repo)
    }

    layers = resolved.layers()
    batches: list[list[spec_models.PackageSpec]] = []
    for main_batch in (False, True):
        for layer in layers:
            batch = [
                resolved.specs[repo]
                for repo in layer
                if repo in pending and resolved.specs[repo].is_main == main_batch
            ]
            if len(batch) > 0:
                batches.append(batch)

    return InstallPlan(batches=batches)


def plan_removal(
    resolved: graph.ResolvedSet,
    installed: set[str],
    *,
    self_repo: str | None = None,
) -> list[str]:
    """
    Names of installed packages that no declared package needs anymore.
    """
    required_names = {package.name for package in resolved.specs.values()}
    self_name = None if self_repo is None else spec_models.repo_name(self_repo)

    return sorted(
        name for name in installed if name not in required_names and name != self_name
    )


def plan_update(
    resolved: graph.ResolvedSet,
    *,
    self_repo: str | None = None,
) -> list[spec_models.PackageSpec]:
    """
    Every resolved package is an update target, whether it is on disk or not.
    """
    return [
        package
        for package in [*resolved.dependency_nodes, *resolved.main_nodes]
        if not spec_models.is_self(package.repo, self_repo)
    ]
