import datetime
import typing

import pydantic

from gitweave.models import spec as spec_models


class ManifestEntry(pydantic.BaseModel):
    """
    Installed state of one main package.

    Dependencies never get an entry of their own, they are only referenced by repo.
    """

    name: str
    repo: str
    branch: str | None = None
    tag: str | None = None
    dependencies: list[str] = []

    @classmethod
    def from_spec(
        cls,
        package: spec_models.PackageSpec,
        *,
        branch: str | None = None,
        tag: str | None = None,
        exclude: typing.Container[str] = (),
    ) -> "ManifestEntry":
        return cls(
            name=package.name,
            repo=package.repo,
            branch=spec_models.normalize_branch(branch),
            tag=tag,
            dependencies=[dep for dep in package.depends_on if dep not in exclude],
        )


class ManifestModel(pydantic.BaseModel):
    version: typing.Literal[0] = 0
    entries: list[ManifestEntry] = []
    total: int = 0
    updated_at: datetime.datetime | None = None
    integrity_tag: str = ""

    def find(self, repo: str) -> ManifestEntry | None:
        for entry in self.entries:
            if entry.repo == repo:
                return entry
        return None

    def find_by_name(self, name: str) -> ManifestEntry | None:
        for entry in self.entries:
            if entry.name == name:
                return entry
        return None

    def dependency_repos(self, *, excluding: str | None = None) -> set[str]:
        """
        All repos referenced as a dependency, optionally ignoring one entry's references.
        """
        return {
            dep
            for entry in self.entries
            if entry.repo != excluding
            for dep in entry.dependencies
        }
