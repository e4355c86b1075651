import pathlib
import shutil

import gitweave.constants


def ensure_path(path: pathlib.Path):
    """
    Ensure the given directory exists.
    """
    if not path.exists():
        path.mkdir(parents=True)
    elif not path.is_dir():
        raise RuntimeError(f"Unexpected: {path} is not a directory")


def remove_path(path: pathlib.Path) -> bool:
    """
    Remove the given directory tree.

    Returns False if there was nothing to remove.
    """
    if not path.exists():
        return False

    shutil.rmtree(path, onexc=_ignore_missing)
    return True


def _ignore_missing(function, path, exc: BaseException):
    # Another task may be removing the same tree
    if not isinstance(exc, FileNotFoundError):
        raise exc


def truncate(message: str, limit: int = gitweave.constants.message_limit) -> str:
    """
    Flatten a diagnostic message onto one line and cut it to the given length.
    """
    flattened = " ".join(message.split())
    if len(flattened) <= limit:
        return flattened
    return flattened[: limit - 3] + "..."
