import pathlib
import tomllib

import pydantic

import gitweave.logging
from gitweave.models import spec as spec_models


class SpecParseError(RuntimeError):
    pass


class DependencyItem(pydantic.BaseModel):
    """
    Table form of a dependency, `{ repo = "owner/name" }`
    """

    repo: str


class PackageSpecFile(pydantic.BaseModel):
    """
    Contents of one package spec file
    """

    repo: str
    branch: str | None = None
    tag: str | None = None
    depends: list[str | DependencyItem] = []
    execute: str | list[str] = []

    def to_spec(self) -> spec_models.PackageSpec:
        depends_on = [dep if isinstance(dep, str) else dep.repo for dep in self.depends]
        commands = [self.execute] if isinstance(self.execute, str) else self.execute

        return spec_models.PackageSpec(
            repo=self.repo,
            branch=self.branch or None,
            tag=self.tag or None,
            depends_on=[dep for dep in depends_on if dep != ""],
            post_install=[cmd for cmd in commands if cmd.strip() != ""],
        )


def parse_spec_file(path: pathlib.Path) -> spec_models.PackageSpec:
    try:
        with path.open("rb") as f:
            spec_dict = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise SpecParseError(f"Cannot read {path}: {e}") from e

    try:
        return PackageSpecFile.model_validate(spec_dict).to_spec()
    except pydantic.ValidationError as e:
        raise SpecParseError(f"Invalid package spec {path}: {e}") from e


def load_specs(spec_dir: pathlib.Path) -> list[spec_models.PackageSpec]:
    """
    Load every *.toml package spec under spec_dir, recursively.

    A malformed file is skipped with a warning, it does not stop the others from loading.
    """
    if not spec_dir.is_dir():
        gitweave.logging.warning("Spec directory %s does not exist", spec_dir)
        return []

    specs: list[spec_models.PackageSpec] = []
    for path in sorted(spec_dir.rglob("*.toml")):
        try:
            specs.append(parse_spec_file(path))
        except SpecParseError as e:
            gitweave.logging.warning("Skipping %s: %s", path.name, e)

    gitweave.logging.debug("Loaded %d package specs from %s", len(specs), spec_dir)
    return specs
