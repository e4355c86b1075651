import asyncio
import collections.abc
import contextlib
import pathlib
import signal
import typing

import typer

import gitweave.constants
import gitweave.logging
from gitweave import scheduler, spec_loader
from gitweave.models import config as config_models
from gitweave.models import task as task_models
from gitweave.pkg import install as pkg_install
from gitweave.pkg import remove as pkg_remove
from gitweave.pkg import update as pkg_update

app = typer.Typer(no_args_is_help=True)

Flow = collections.abc.Callable[
    [scheduler.RunContext], collections.abc.Awaitable[task_models.Report]
]
Operation = collections.abc.Callable[..., collections.abc.Awaitable[task_models.Report]]

TargetsArgument = typing.Annotated[
    list[str] | None,
    typer.Argument(help="Only process these packages, e.g. the failures of a previous run"),
]
ConfigDirOption = typing.Annotated[
    pathlib.Path, typer.Option(help="Directory holding gitweave.toml and package specs")
]
PackagePathOption = typing.Annotated[
    pathlib.Path | None, typer.Option(help="Directory packages are installed to")
]
ParallelOption = typing.Annotated[int | None, typer.Option(help="Number of parallel jobs")]
MethodOption = typing.Annotated[str | None, typer.Option(help="Clone over https or ssh")]
VerboseOption = typing.Annotated[
    bool, typer.Option("--verbose", "-v", help="Show every git command")
]


@app.callback()
def configure(verbose: VerboseOption = False):
    if verbose:
        gitweave.logging.set_verbose(True)


def load_config(
    config_dir: pathlib.Path,
    package_path: pathlib.Path | None,
    parallel: int | None,
    method: str | None,
) -> config_models.GitweaveConfig:
    config = config_models.load_config(config_dir)

    overrides = {
        key: value
        for key, value in (
            ("package_path", package_path),
            ("concurrency", parallel),
            ("method", method),
        )
        if value is not None
    }
    if len(overrides) == 0:
        return config

    return config_models.validate_config({**config.model_dump(), **overrides})


async def _run_abortable(flow: Flow) -> task_models.Report:
    context = scheduler.RunContext()
    loop = asyncio.get_running_loop()

    # Signal handlers are not available on every platform
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, context.abort)

    try:
        return await flow(context)
    finally:
        with contextlib.suppress(NotImplementedError):
            _ = loop.remove_signal_handler(signal.SIGINT)


def run_operation(
    operation: Operation,
    targets: list[str] | None,
    config_dir: pathlib.Path,
    package_path: pathlib.Path | None,
    parallel: int | None,
    method: str | None,
):
    """
    Run an operation over the declared packages and exit non-zero if anything failed.
    """
    try:
        config = load_config(config_dir, package_path, parallel, method)
        specs = spec_loader.load_specs(config.spec_path)
        report = asyncio.run(
            _run_abortable(lambda context: operation(config, specs, context=context, only=targets))
        )
    except RuntimeError as e:
        # Invalid configuration or a dependency cycle
        gitweave.logging.error("%s", e)
        raise typer.Exit(code=1) from e

    if not report.ok:
        raise typer.Exit(code=1)


@app.command()
def install(
    targets: TargetsArgument = None,
    config_dir: ConfigDirOption = gitweave.constants.gitweave_config_dir,
    package_path: PackagePathOption = None,
    parallel: ParallelOption = None,
    method: MethodOption = None,
):
    """
    Clone every declared package that is not installed yet.
    """
    run_operation(pkg_install.install, targets, config_dir, package_path, parallel, method)


@app.command()
def update(
    targets: TargetsArgument = None,
    config_dir: ConfigDirOption = gitweave.constants.gitweave_config_dir,
    package_path: PackagePathOption = None,
    parallel: ParallelOption = None,
    method: MethodOption = None,
):
    """
    Bring installed packages to their declared ref or the latest upstream commit.
    """
    run_operation(pkg_update.update, targets, config_dir, package_path, parallel, method)


@app.command()
def remove(
    targets: TargetsArgument = None,
    config_dir: ConfigDirOption = gitweave.constants.gitweave_config_dir,
    package_path: PackagePathOption = None,
    parallel: ParallelOption = None,
):
    """
    Delete installed packages that are no longer declared or depended upon.
    """
    run_operation(pkg_remove.remove, targets, config_dir, package_path, parallel, None)


def main():
    app()
