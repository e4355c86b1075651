import pathlib
import tomllib
import typing

import pydantic

import gitweave.constants


class GitweaveConfig(pydantic.BaseModel):
    """
    Settings of a gitweave installation, read from gitweave.toml
    """

    # Where packages are cloned to, and where the manifest lives
    package_path: pathlib.Path = gitweave.constants.gitweave_package_dir

    # Directory scanned recursively for package spec files
    spec_path: pathlib.Path = gitweave.constants.gitweave_config_dir / "packages"

    method: typing.Literal["https", "ssh"] = "https"
    host: str = gitweave.constants.default_host
    concurrency: typing.Annotated[int, pydantic.Field(ge=1)] = (
        gitweave.constants.default_concurrency
    )
    self_repo: str = gitweave.constants.self_repo

    @pydantic.field_validator("package_path", "spec_path")
    @classmethod
    def expand_home(cls, path: pathlib.Path) -> pathlib.Path:
        return path.expanduser()

    @property
    def manifest_path(self) -> pathlib.Path:
        return self.package_path / gitweave.constants.manifest_file_name


def load_config(config_dir: pathlib.Path) -> GitweaveConfig:
    """
    Load gitweave.toml from the config directory. Defaults apply when the file does not exist.
    """
    config_dict: dict[str, typing.Any] = {
        "spec_path": config_dir / gitweave.constants.spec_dir_name,
    }

    config_path = config_dir / gitweave.constants.config_file_name
    if config_path.exists():
        try:
            with config_path.open("rb") as f:
                config_dict.update(tomllib.load(f))
        except tomllib.TOMLDecodeError as e:
            raise RuntimeError(f"{config_path} is not valid TOML: {e}") from e

    return validate_config(config_dict, source=config_path)


def validate_config(
    config_dict: dict[str, typing.Any], source: pathlib.Path | None = None
) -> GitweaveConfig:
    try:
        return GitweaveConfig.model_validate(config_dict)
    except pydantic.ValidationError as e:
        where = "" if source is None else f" in {source}"
        raise RuntimeError(f"Invalid configuration{where}: {e}") from e
