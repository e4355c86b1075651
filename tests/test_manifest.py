import asyncio
import json
import pathlib
import typing

import pyfakefs.fake_filesystem
import pytest

from gitweave.manifest import core as manifest_core
from gitweave.models import config as config_models
from gitweave.models import manifest as manifest_models
from gitweave.models import spec as spec_models
from gitweave.pkg import install as pkg_install

if typing.TYPE_CHECKING:
    import conftest

MANIFEST_PATH = pathlib.Path("/packages/gitweave.json")
SELF_REPO = "gitweave/gitweave"


def make_entry(repo: str, *dependencies: str, **kwargs: str) -> manifest_models.ManifestEntry:
    return manifest_models.ManifestEntry(
        name=repo.rsplit("/", 1)[-1], repo=repo, dependencies=list(dependencies), **kwargs
    )


@pytest.fixture(name="store")
def store_fixture(fs: pyfakefs.fake_filesystem.FakeFilesystem) -> manifest_core.ManifestStore:
    _ = fs.create_dir("/packages")
    return manifest_core.ManifestStore(MANIFEST_PATH, self_repo=SELF_REPO)


class TestLoadManifest:
    @pytest.mark.usefixtures("fs")
    def test_missing_manifest_is_empty(self):
        manifest = manifest_core.load_manifest(MANIFEST_PATH)

        assert manifest.entries == []
        assert manifest.total == 0

    @pytest.mark.parametrize("contents", ["{not json", '{"version": 7}', '{"entries": 3}'])
    def test_corrupt_manifest_is_empty(
        self, fs: pyfakefs.fake_filesystem.FakeFilesystem, contents: str
    ):
        # GIVEN: a manifest that cannot be parsed
        _ = fs.create_file(MANIFEST_PATH, contents=contents)

        # WHEN: loading it
        manifest = manifest_core.load_manifest(MANIFEST_PATH)

        # THEN: it is treated as empty
        assert manifest.entries == []

    def test_undecodable_manifest_is_empty(self, fs: pyfakefs.fake_filesystem.FakeFilesystem):
        # GIVEN: a manifest that is not even valid UTF-8
        _ = fs.create_file(MANIFEST_PATH, contents=b"\xff\xfe\x00garbage")

        # WHEN: loading it
        manifest = manifest_core.load_manifest(MANIFEST_PATH)

        # THEN: it is treated as empty
        assert manifest.entries == []

    def test_undecodable_manifest_does_not_block_install(
        self, config: config_models.GitweaveConfig, runner: "conftest.FakeRunner"
    ):
        # GIVEN: an undecodable manifest in the package directory
        config.manifest_path.write_bytes(b"\xff\xfe\x00garbage")

        # WHEN: installing a package
        report = asyncio.run(
            pkg_install.install(config, [spec_models.PackageSpec(repo="owner/app")])
        )

        # THEN: the package is installed and the manifest rewritten
        assert report.ok
        assert runner.commands[0][1] == "clone"
        entry = manifest_core.load_manifest(config.manifest_path).find("owner/app")
        assert entry is not None


class TestManifestStore:
    def test_upsert_main_writes_metadata(self, store: manifest_core.ManifestStore):
        # WHEN: recording two packages sharing a dependency
        assert store.upsert_main(make_entry("owner/b", "dep/c", tag="v1"))
        assert store.upsert_main(make_entry("owner/a", "dep/c", "dep/d"))

        # THEN: entries are sorted and the total counts unique packages
        manifest = store.load()
        assert [entry.repo for entry in manifest.entries] == ["owner/a", "owner/b"]
        assert manifest.total == 4
        assert manifest.updated_at is not None
        assert len(manifest.integrity_tag) == 64

        # THEN: the file is written with sorted keys
        raw = json.loads(MANIFEST_PATH.read_text())
        assert list(raw) == sorted(raw)

    def test_upsert_main_replaces_entry(self, store: manifest_core.ManifestStore):
        assert store.upsert_main(make_entry("owner/a", tag="v1"))
        assert store.upsert_main(make_entry("owner/a", tag="v2"))

        entry = store.get_entry("owner/a")
        assert entry is not None
        assert entry.tag == "v2"
        assert len(store.load().entries) == 1

    def test_upsert_rejects_dependency(self, store: manifest_core.ManifestStore):
        # GIVEN: a package that depends on owner/lib
        assert store.upsert_main(make_entry("owner/app", "owner/lib"))

        # WHEN: recording owner/lib as a main package without declaring it
        recorded = store.upsert_main(make_entry("owner/lib"))

        # THEN: nothing is recorded
        assert not recorded
        assert store.get_entry("owner/lib") is None

    def test_declared_main_keeps_entry(self, fs: pyfakefs.fake_filesystem.FakeFilesystem):
        # GIVEN: owner/lib is declared in its own right
        _ = fs.create_dir("/packages")
        store = manifest_core.ManifestStore(MANIFEST_PATH, declared_mains={"owner/lib"})
        assert store.upsert_main(make_entry("owner/app", "owner/lib"))

        # WHEN: recording owner/lib
        recorded = store.upsert_main(make_entry("owner/lib", tag="v3"))

        # THEN: its declared configuration is kept
        assert recorded
        entry = store.get_entry("owner/lib")
        assert entry is not None
        assert entry.tag == "v3"

    def test_dependency_ref_demotes_entry(self, store: manifest_core.ManifestStore):
        # GIVEN: two top-level entries
        assert store.upsert_main(make_entry("owner/app"))
        assert store.upsert_main(make_entry("owner/lib"))

        # WHEN: owner/lib becomes a dependency of owner/app
        assert store.add_dependency_ref("owner/app", "owner/lib")

        # THEN: owner/lib only survives as a reference
        manifest = store.load()
        assert [entry.repo for entry in manifest.entries] == ["owner/app"]
        assert manifest.entries[0].dependencies == ["owner/lib"]
        assert manifest.total == 2

    def test_dependency_ref_needs_main_entry(self, store: manifest_core.ManifestStore):
        assert not store.add_dependency_ref("owner/app", "dep/c")
        assert not MANIFEST_PATH.exists()

    def test_self_is_never_recorded(self, store: manifest_core.ManifestStore):
        assert not store.upsert_main(make_entry(SELF_REPO))
        assert store.upsert_main(make_entry("owner/app", SELF_REPO))
        assert not store.add_dependency_ref("owner/app", SELF_REPO)

        manifest = store.load()
        assert [entry.repo for entry in manifest.entries] == ["owner/app"]
        assert manifest.entries[0].dependencies == []

    def test_remove_entry(self, store: manifest_core.ManifestStore):
        # GIVEN: two packages sharing a dependency
        assert store.upsert_main(make_entry("owner/a", "dep/c"))
        assert store.upsert_main(make_entry("owner/b", "dep/c"))

        # WHEN: removing one entry
        assert store.remove_entry("owner/a")

        # THEN: the shared dependency is still referenced
        assert store.load().dependency_repos() == {"dep/c"}

        # WHEN: dropping every reference to the dependency
        assert store.remove_entry("dep/c", drop_references=True)

        # THEN: nothing refers to it anymore
        manifest = store.load()
        assert manifest.dependency_repos() == set()
        assert manifest.total == 1

    def test_remove_missing_entry(self, store: manifest_core.ManifestStore):
        assert not store.remove_entry("owner/missing")
        assert not MANIFEST_PATH.exists()
