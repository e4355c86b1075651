import enum
import pathlib
import typing

from gitweave.models import spec as spec_models


class GitOp(enum.Enum):
    CLONE_DEFAULT = "clone"
    CLONE_BRANCH = "clone branch"
    CLONE_TAG = "clone tag"
    UPDATE_DEFAULT = "update"
    UPDATE_BRANCH = "update branch"
    UPDATE_TAG = "update tag"

    @property
    def is_clone(self) -> bool:
        return self in (GitOp.CLONE_DEFAULT, GitOp.CLONE_BRANCH, GitOp.CLONE_TAG)


def repo_url(
    package: spec_models.PackageSpec,
    *,
    method: typing.Literal["https", "ssh"],
    host: str,
) -> str:
    if package.url is not None:
        return package.url.removesuffix(".git") + ".git"

    if method == "ssh":
        return f"git@{host}:{package.repo}.git"
    return f"https://{host}/{package.repo}.git"


def select_op(*, exists: bool, branch: str | None, tag: str | None) -> GitOp:
    """
    A tag wins over a branch. The default branch is used when neither is given.
    """
    branch = spec_models.normalize_branch(branch)
    if exists:
        if tag:
            return GitOp.UPDATE_TAG
        if branch:
            return GitOp.UPDATE_BRANCH
        return GitOp.UPDATE_DEFAULT

    if tag:
        return GitOp.CLONE_TAG
    if branch:
        return GitOp.CLONE_BRANCH
    return GitOp.CLONE_DEFAULT


def build_commands(
    op: GitOp,
    *,
    target_dir: pathlib.Path,
    url: str | None = None,
    branch: str | None = None,
    tag: str | None = None,
    submodules: bool = False,
) -> list[list[str]]:
    """
    The git invocations that perform op, to be run in order.
    """
    if op.is_clone and url is None:
        raise RuntimeError(f"{op.value} needs a repository URL")

    git_c = ["git", "-C", str(target_dir)]
    match op:
        case GitOp.CLONE_DEFAULT:
            commands = [["git", "clone", "--depth", "1", url, str(target_dir)]]
        case GitOp.CLONE_BRANCH:
            if branch is None:
                raise RuntimeError("Cloning a branch needs a branch name")
            commands = [["git", "clone", "--depth", "1", "-b", branch, url, str(target_dir)]]
        case GitOp.CLONE_TAG:
            # A shallow clone of the default branch may not contain the tag
            if tag is None:
                raise RuntimeError("Cloning a tag needs a tag name")
            commands = [["git", "clone", url, str(target_dir)], [*git_c, "checkout", tag]]
        case GitOp.UPDATE_DEFAULT:
            commands = [[*git_c, "fetch", "origin"], [*git_c, "pull", "origin"]]
        case GitOp.UPDATE_BRANCH:
            if branch is None:
                raise RuntimeError("Updating a branch needs a branch name")
            # Shallow clones only track the branch they were cloned with
            commands = [
                [*git_c, "fetch", "origin", branch_refspec(branch)],
                [*git_c, "checkout", "-B", branch, "--track", f"origin/{branch}"],
                [*git_c, "pull", "origin", branch],
            ]
        case GitOp.UPDATE_TAG:
            if tag is None:
                raise RuntimeError("Updating to a tag needs a tag name")
            commands = [[*git_c, "fetch", "origin", "--tags"], [*git_c, "checkout", tag]]

    if submodules:
        commands.append(submodule_command(target_dir))

    return typing.cast(list[list[str]], commands)


def submodule_command(target_dir: pathlib.Path) -> list[str]:
    return ["git", "-C", str(target_dir), "submodule", "update", "--init", "--recursive"]


def branch_refspec(branch: str) -> str:
    return f"+refs/heads/{branch}:refs/remotes/origin/{branch}"


def fetch_command(target_dir: pathlib.Path, branch: str | None = None) -> list[str]:
    command = ["git", "-C", str(target_dir), "fetch", "--quiet"]
    if branch is not None:
        command += ["origin", branch_refspec(branch)]
    return command


def behind_count_command(target_dir: pathlib.Path) -> list[str]:
    """
    Counts the commits the upstream of the current branch has that HEAD lacks.
    """
    return ["git", "-C", str(target_dir), "rev-list", "--count", "HEAD..@{upstream}"]
