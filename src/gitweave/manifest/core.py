import datetime
import hashlib
import json
import pathlib
import typing

import pydantic

import gitweave.logging
import gitweave.util
from gitweave.models import manifest as manifest_models
from gitweave.models import spec as spec_models


def load_manifest(path: pathlib.Path) -> manifest_models.ManifestModel:
    """
    Load the manifest. A missing or unreadable manifest is treated as an empty one.
    """
    if not path.exists():
        return manifest_models.ManifestModel()

    try:
        return manifest_models.ManifestModel.model_validate_json(path.read_bytes())
    except (OSError, pydantic.ValidationError) as e:
        gitweave.logging.warning("Manifest %s is unreadable, starting from scratch: %s", path, e)
        return manifest_models.ManifestModel()


def dump_manifest(manifest: manifest_models.ManifestModel, path: pathlib.Path) -> None:
    """
    Write the manifest with sorted keys so it diffs cleanly between runs.
    """
    gitweave.util.ensure_path(path.parent)
    manifest_dict = manifest.model_dump(mode="json")
    with path.open("w") as f:
        _ = f.write(json.dumps(manifest_dict, sort_keys=True, indent=2) + "\n")


class ManifestStore:
    """
    Record of installed main packages and the dependencies they pulled in.

    Every mutation re-reads the manifest, changes it and writes it back whole. Mutations are
    plain synchronous calls, so when they are only made from the event loop thread no two of
    them can interleave.
    """

    def __init__(
        self,
        path: pathlib.Path,
        *,
        declared_mains: typing.Iterable[str] = (),
        self_repo: str | None = None,
    ) -> None:
        self.path = path
        # Main packages of the current run. These keep their top-level entry even when another
        # package also lists them as a dependency.
        self.declared_mains = frozenset(declared_mains)
        self.self_repo = self_repo

    def load(self) -> manifest_models.ManifestModel:
        return load_manifest(self.path)

    def get_entry(self, repo: str) -> manifest_models.ManifestEntry | None:
        return self.load().find(repo)

    def get_entry_by_name(self, name: str) -> manifest_models.ManifestEntry | None:
        return self.load().find_by_name(name)

    def _is_self(self, repo: str) -> bool:
        return spec_models.is_self(repo, self.self_repo)

    def _refresh_metadata(self, manifest: manifest_models.ManifestModel) -> None:
        manifest.entries.sort(key=lambda entry: entry.repo)

        main_repos = {entry.repo for entry in manifest.entries if not self._is_self(entry.repo)}
        dependency_repos = {
            dep
            for dep in manifest.dependency_repos()
            if dep not in main_repos and not self._is_self(dep)
        }
        manifest.total = len(main_repos) + len(dependency_repos)

        canonical_entries = json.dumps(
            [entry.model_dump(mode="json") for entry in manifest.entries], sort_keys=True
        )
        manifest.integrity_tag = hashlib.sha256(canonical_entries.encode()).hexdigest()
        manifest.updated_at = datetime.datetime.now(tz=datetime.UTC)

    def _prune_dependency_duplicates(self, manifest: manifest_models.ManifestModel) -> None:
        """
        Drop top-level entries of repos that are now only somebody's dependency.
        """
        referenced = manifest.dependency_repos()
        for entry in list(manifest.entries):
            if entry.repo in referenced and entry.repo not in self.declared_mains:
                gitweave.logging.debug("Demoting %s to a dependency", entry.repo)
                manifest.entries.remove(entry)

    def _write(self, manifest: manifest_models.ManifestModel) -> None:
        self._refresh_metadata(manifest)
        dump_manifest(manifest, self.path)

    def upsert_main(self, entry: manifest_models.ManifestEntry) -> bool:
        """
        Record a main package.

        Returns False without recording anything if the repo is another package's dependency
        and not itself declared in this run.
        """
        if self._is_self(entry.repo):
            return False

        entry = entry.model_copy(
            update={"dependencies": [d for d in entry.dependencies if not self._is_self(d)]}
        )

        manifest = self.load()
        existing = manifest.find(entry.repo)

        if (
            entry.repo in manifest.dependency_repos(excluding=entry.repo)
            and entry.repo not in self.declared_mains
        ):
            gitweave.logging.debug("%s is a dependency of another package", entry.repo)
            if existing is not None:
                manifest.entries.remove(existing)
                self._write(manifest)
            return False

        if existing is None:
            manifest.entries.append(entry)
        else:
            manifest.entries[manifest.entries.index(existing)] = entry

        self._prune_dependency_duplicates(manifest)
        self._write(manifest)
        return True

    def remove_entry(self, repo: str, *, drop_references: bool = False) -> bool:
        """
        Remove the top-level entry of repo, and optionally every dependency reference to it.

        Returns False if nothing changed.
        """
        manifest = self.load()
        changed = False

        existing = manifest.find(repo)
        if existing is not None:
            manifest.entries.remove(existing)
            changed = True

        if drop_references:
            for entry in manifest.entries:
                if repo in entry.dependencies:
                    entry.dependencies.remove(repo)
                    changed = True

        if changed:
            self._write(manifest)
        return changed

    def add_dependency_ref(self, main_repo: str, dep_repo: str) -> bool:
        """
        Record dep_repo as a dependency of main_repo.

        Nothing is recorded until main_repo has an entry, installing the main package writes
        its full dependency list anyway.
        """
        if self._is_self(main_repo) or self._is_self(dep_repo):
            return False

        manifest = self.load()
        entry = manifest.find(main_repo)
        if entry is None or dep_repo in entry.dependencies:
            return False

        entry.dependencies.append(dep_repo)
        self._prune_dependency_duplicates(manifest)
        self._write(manifest)
        return True
