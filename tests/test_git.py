import pathlib
import typing

import pytest

import gitweave.git
from gitweave.git import GitOp
from gitweave.models import spec as spec_models

TARGET = pathlib.Path("/packages/name")


@pytest.mark.parametrize(
    ("exists", "branch", "tag", "expected"),
    [
        (False, None, None, GitOp.CLONE_DEFAULT),
        (False, "main", None, GitOp.CLONE_DEFAULT),
        (False, "dev", None, GitOp.CLONE_BRANCH),
        (False, "dev", "v1", GitOp.CLONE_TAG),
        (True, None, None, GitOp.UPDATE_DEFAULT),
        (True, "dev", None, GitOp.UPDATE_BRANCH),
        (True, "dev", "v1", GitOp.UPDATE_TAG),
    ],
)
def test_select_op(exists: bool, branch: str | None, tag: str | None, expected: GitOp):
    assert gitweave.git.select_op(exists=exists, branch=branch, tag=tag) == expected


def test_clone_commands():
    url = "https://github.com/owner/name.git"

    assert gitweave.git.build_commands(GitOp.CLONE_DEFAULT, target_dir=TARGET, url=url) == [
        ["git", "clone", "--depth", "1", url, "/packages/name"]
    ]
    assert gitweave.git.build_commands(
        GitOp.CLONE_BRANCH, target_dir=TARGET, url=url, branch="dev"
    ) == [["git", "clone", "--depth", "1", "-b", "dev", url, "/packages/name"]]

    # A tag is checked out from a full clone
    assert gitweave.git.build_commands(GitOp.CLONE_TAG, target_dir=TARGET, url=url, tag="v1") == [
        ["git", "clone", url, "/packages/name"],
        ["git", "-C", "/packages/name", "checkout", "v1"],
    ]


def test_update_commands_with_submodules():
    commands = gitweave.git.build_commands(
        GitOp.UPDATE_BRANCH, target_dir=TARGET, branch="dev", submodules=True
    )

    assert commands == [
        ["git", "-C", "/packages/name", "fetch", "origin", gitweave.git.branch_refspec("dev")],
        ["git", "-C", "/packages/name", "checkout", "-B", "dev", "--track", "origin/dev"],
        ["git", "-C", "/packages/name", "pull", "origin", "dev"],
        ["git", "-C", "/packages/name", "submodule", "update", "--init", "--recursive"],
    ]


def test_update_tag_commands():
    commands = gitweave.git.build_commands(GitOp.UPDATE_TAG, target_dir=TARGET, tag="v2")

    assert commands == [
        ["git", "-C", "/packages/name", "fetch", "origin", "--tags"],
        ["git", "-C", "/packages/name", "checkout", "v2"],
    ]


@pytest.mark.parametrize(
    ("op", "kwargs"),
    [
        (GitOp.CLONE_DEFAULT, {}),
        (GitOp.CLONE_BRANCH, {"url": "u"}),
        (GitOp.UPDATE_TAG, {}),
    ],
)
def test_missing_arguments(op: GitOp, kwargs: dict[str, str]):
    with pytest.raises(RuntimeError):
        _ = gitweave.git.build_commands(op, target_dir=TARGET, **kwargs)


@pytest.mark.parametrize(
    ("repo", "method", "expected"),
    [
        ("owner/name", "https", "https://example.com/owner/name.git"),
        ("owner/name", "ssh", "git@example.com:owner/name.git"),
        ("https://gitlab.com/owner/name", "ssh", "https://gitlab.com/owner/name.git"),
        ("git@gitlab.com:owner/name.git", "https", "git@gitlab.com:owner/name.git"),
    ],
)
def test_repo_url(repo: str, method: typing.Literal["https", "ssh"], expected: str):
    package = spec_models.PackageSpec(repo=repo)

    assert gitweave.git.repo_url(package, method=method, host="example.com") == expected
