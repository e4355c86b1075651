import dataclasses
import typing

import networkx as nx

import gitweave.logging
from gitweave.models import spec as spec_models


class CycleDetectedError(RuntimeError):
    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(f"Dependency cycle detected: {' -> '.join(cycle)}")


@dataclasses.dataclass
class ResolvedSet:
    """
    The deduplicated dependency graph of one run.

    Edges point from a package to the packages it depends on.
    """

    graph: nx.DiGraph
    specs: dict[str, spec_models.PackageSpec]

    @property
    def main_nodes(self) -> list[spec_models.PackageSpec]:
        return [package for package in self.specs.values() if package.is_main]

    @property
    def dependency_nodes(self) -> list[spec_models.PackageSpec]:
        return [package for package in self.specs.values() if not package.is_main]

    @property
    def main_repos(self) -> set[str]:
        return {package.repo for package in self.main_nodes}

    @property
    def required_repos(self) -> set[str]:
        return set(self.specs)

    @property
    def dependents(self) -> dict[str, set[str]]:
        """
        Map from a required repo to every main repo that requires it, directly or transitively.
        """
        dependents: dict[str, set[str]] = {}
        for repo in self.specs:
            requirers = {
                ancestor
                for ancestor in nx.ancestors(self.graph, repo)
                if self.specs[ancestor].is_main
            }
            if len(requirers) > 0:
                dependents[repo] = requirers
        return dependents

    def direct_dependents(self, repo: str) -> list[str]:
        return list(self.graph.predecessors(repo))

    def get(self, repo: str) -> spec_models.PackageSpec | None:
        return self.specs.get(repo)

    def layers(self) -> list[list[str]]:
        """
        Group repos so every package comes in a later layer than all of its dependencies.
        """
        return [list(layer) for layer in nx.topological_generations(self.graph.reverse())]


def resolve(
    specs: typing.Iterable[spec_models.PackageSpec], *, self_repo: str | None = None
) -> ResolvedSet:
    """
    Build the dependency graph of the declared packages.

    The first declaration of a repo wins. A dependency that is also declared is resolved to the
    declared spec, and its own dependencies are walked too. Any other dependency gets a minimal
    spec that tracks the remote's default branch.

    A dependency on the manager's own repository is left out of the graph.
    """
    mains: dict[str, spec_models.PackageSpec] = {}
    for package in specs:
        if package.repo in mains:
            gitweave.logging.debug("Ignoring duplicate declaration of %s", package.repo)
            continue
        mains[package.repo] = package.model_copy(update={"is_main": True})

    graph: nx.DiGraph = nx.DiGraph()
    resolved: dict[str, spec_models.PackageSpec] = {}
    for repo, package in mains.items():
        graph.add_node(repo)
        resolved[repo] = package

    visited: set[str] = set()
    path: list[str] = []

    def walk(package: spec_models.PackageSpec) -> None:
        path.append(package.repo)
        for dep in package.depends_on:
            if spec_models.is_self(dep, self_repo):
                continue
            if dep in path:
                raise CycleDetectedError([*path[path.index(dep) :], dep])

            graph.add_edge(package.repo, dep)
            if dep in visited:
                continue

            if dep in mains:
                walk(mains[dep])
            else:
                resolved[dep] = spec_models.dependency_spec(dep)
                visited.add(dep)
        path.pop()
        visited.add(package.repo)

    for package in mains.values():
        if package.repo not in visited:
            walk(package)

    return ResolvedSet(graph=graph, specs=resolved)
