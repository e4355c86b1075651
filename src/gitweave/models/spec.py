import typing

import pydantic


def is_url(repo: str) -> bool:
    return "://" in repo or repo.startswith("git@")


def normalize_repo(repo: str) -> str:
    """
    Reduce a repository reference to its stable identity.

    `https://github.com/owner/name.git`, `git@github.com:owner/name.git` and `owner/name` all
    normalize to `owner/name`.
    """
    normalized = repo.strip().rstrip("/")
    normalized = normalized.removesuffix(".git")

    if "://" in normalized:
        # Drop scheme and host
        _, _, remainder = normalized.partition("://")
        _, _, normalized = remainder.partition("/")
    elif normalized.startswith("git@"):
        _, _, normalized = normalized.partition(":")

    normalized = normalized.strip("/")
    segments = normalized.split("/")
    if len(segments) < 2 or any(segment == "" for segment in segments):
        raise ValueError(f"{repo} is not a valid repository. Use <owner>/<name> or a full URL.")

    return normalized


def repo_name(repo: str) -> str:
    """
    The last path segment of a repository, which is also its directory name on disk.
    """
    return normalize_repo(repo).rsplit("/", 1)[-1]


def normalize_branch(branch: str | None) -> str | None:
    """
    `main` and `master` mean "whatever the remote's default branch is".
    """
    if not branch or branch in ("main", "master"):
        return None
    return branch


def _normalize_repo_list(repos: list[str]) -> list[str]:
    normalized: list[str] = []
    for repo in repos:
        repo = normalize_repo(repo)
        if repo not in normalized:
            normalized.append(repo)
    return normalized


class PackageSpec(pydantic.BaseModel):
    """
    Declared configuration of one package
    """

    repo: typing.Annotated[str, pydantic.AfterValidator(normalize_repo)]

    # Kept when the package was declared with a full URL, so it can be cloned from that host
    url: str | None = None

    branch: str | None = None
    tag: str | None = None
    depends_on: typing.Annotated[
        list[str], pydantic.AfterValidator(_normalize_repo_list)
    ] = []
    post_install: list[str] = []

    # False when the package is only known because something depends on it
    is_main: bool = True

    @pydantic.model_validator(mode="before")
    @classmethod
    def capture_url(cls, data: typing.Any) -> typing.Any:
        if isinstance(data, dict) and data.get("url") is None:
            repo = data.get("repo")
            if isinstance(repo, str) and is_url(repo):
                return {**data, "url": repo.strip()}
        return data

    @property
    def name(self) -> str:
        return repo_name(self.repo)

    @property
    def effective_branch(self) -> str | None:
        return normalize_branch(self.branch)


def dependency_spec(repo: str) -> PackageSpec:
    """
    Synthesize the spec of a package that is only pulled in as a dependency.

    It carries no branch or tag so the remote's default branch is used.
    """
    return PackageSpec(repo=repo, is_main=False)


def is_self(repo: str, self_repo: str | None) -> bool:
    """
    Whether repo is the package manager's own repository.
    """
    return self_repo is not None and repo_name(repo) == repo_name(self_repo)
