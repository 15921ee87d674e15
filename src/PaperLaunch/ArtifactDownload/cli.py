# === NAVMAP v1 ===
# {
#   "module": "PaperLaunch.ArtifactDownload.cli",
#   "purpose": "Typer CLI for fetching, verifying, and launching Paper server artifacts",
#   "sections": [
#     {"id": "clicontext", "name": "CliContext", "anchor": "class-clicontext", "kind": "class"},
#     {"id": "main", "name": "main", "anchor": "function-main", "kind": "function"},
#     {"id": "fetch", "name": "fetch", "anchor": "function-fetch", "kind": "function"},
#     {"id": "verify", "name": "verify", "anchor": "function-verify", "kind": "function"},
#     {"id": "run", "name": "run", "anchor": "function-run", "kind": "function"},
#     {"id": "version-cmd", "name": "version_cmd", "anchor": "function-version-cmd", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Command-line entry point for the Paper server launcher.

Global options (``--config``, ``--work-dir``, ``-v``) go before the
subcommand::

    paperlaunch fetch --version 1.21.1
    paperlaunch verify paper-1.21.1-100.jar
    paperlaunch -c server.yaml run --yes

Every failure surfaces as a single red error line and exit status 1.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer
from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TransferSpeedColumn,
)

from PaperLaunch import __version__

from .errors import ArtifactDownloadError, UserConfigError
from .launcher import calculate_max_ram, check_java, ensure_eula, run_server, total_ram_gb
from .logging_utils import setup_logging
from .pipeline import ArtifactAcquirer, acquire_artifact
from .resolvers import ArtifactDescriptor
from .settings import LauncherConfig, load_config, remove_auto_created_config

_console = Console()


class CliContext:
    """Per-invocation state shared by the subcommands.

    The configuration is loaded on first use so that commands such as
    ``version`` never touch the config file.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        work_dir: Optional[Path] = None,
        verbosity: int = 0,
    ) -> None:
        self.config_path = config_path
        self.work_dir = work_dir
        self.verbosity = verbosity
        self.console = _console
        self._config: Optional[LauncherConfig] = None

    @property
    def config(self) -> LauncherConfig:
        if self._config is None:
            config = load_config(self.config_path)
            if self.work_dir is not None:
                config.server.work_dir = self.work_dir
            level = "DEBUG" if self.verbosity >= 2 else config.logging.level
            setup_logging(
                level=level,
                retention_days=config.logging.retention_days,
                max_log_size_mb=config.logging.max_log_size_mb,
                console=self.verbosity > 0,
            )
            self._config = config
        return self._config

    def log_info(self, message: str) -> None:
        if self.verbosity >= 1:
            self.console.print(f"[cyan]INFO: {message}[/cyan]")


app = typer.Typer(
    name="paperlaunch",
    help="Download, verify, and launch Paper Minecraft servers",
    no_args_is_help=True,
)

_context: Optional[CliContext] = None


def get_context() -> CliContext:
    if _context is None:
        raise RuntimeError("CLI context not initialized")
    return _context


@contextmanager
def _reported_errors() -> Iterator[None]:
    try:
        yield
    except (ArtifactDownloadError, UserConfigError) as exc:
        _console.print(f"Error: {exc}", style="red", highlight=False, markup=False, soft_wrap=True)
        raise typer.Exit(1) from exc


@contextmanager
def _download_progress() -> Iterator[object]:
    """Yield a ``(done, total)`` callback that drives a rich progress bar."""

    with Progress(
        TextColumn("[bold blue]Downloading"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        console=_console,
        transient=True,
    ) as progress:
        task_id = progress.add_task("download", total=None)

        def _update(done: int, total: Optional[int]) -> None:
            progress.update(task_id, completed=done, total=total)

        yield _update


def _available_update(acquirer: ArtifactAcquirer, jar: Path) -> Optional[ArtifactDescriptor]:
    """Return a newer catalog build for ``jar``; catalog failures only warn."""

    try:
        return acquirer.check_update(jar)
    except ArtifactDownloadError as exc:
        _console.print(
            f"Warning: update check failed: {exc}", style="yellow", highlight=False, markup=False
        )
        return None


@app.callback()
def main(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        envvar="PAPERLAUNCH_CONFIG",
        help="Path to the YAML config file (default: ./paperlaunch.yaml)",
    ),
    work_dir: Optional[Path] = typer.Option(
        None,
        "--work-dir",
        help="Directory holding the server artifact (overrides server.work_dir)",
    ),
    verbosity: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v for INFO, -vv for DEBUG)",
    ),
) -> None:
    """Paper server launcher."""
    global _context
    _context = CliContext(config_path=config, work_dir=work_dir, verbosity=verbosity)


@app.command()
def fetch(
    version: Optional[str] = typer.Option(
        None,
        "--version",
        help="Minecraft version or 'latest' (default: server.minecraft_version)",
    ),
) -> None:
    """Acquire a verified server artifact and print its filename.

    Example:
        $ paperlaunch fetch --version 1.21.1
    """
    ctx = get_context()
    with _reported_errors():
        config = ctx.config
        with _download_progress() as progress:
            artifact = acquire_artifact(config, version=version, progress=progress)
    ctx.log_info(f"{artifact.source} artifact sha256 {artifact.digest}")
    typer.echo(artifact.filename)


@app.command()
def verify(
    path: Path = typer.Argument(..., help="Artifact to validate against its checksum sidecar"),
) -> None:
    """Validate an artifact and reconcile it with its ``.sha256`` sidecar."""
    ctx = get_context()
    with _reported_errors():
        acquirer = ArtifactAcquirer(ctx.config, work_dir=path.parent)
        try:
            digest = acquirer.audit(path)
        finally:
            acquirer.close()
    typer.echo(f"{digest}  {path.name}")


@app.command()
def run(
    yes: bool = typer.Option(False, "--yes", "-y", help="Download or update without asking"),
) -> None:
    """Acquire or update the artifact, accept the EULA, and start the server."""
    ctx = get_context()
    with _reported_errors():
        config = ctx.config
        work_dir = config.work_directory()
        acquirer = ArtifactAcquirer(config)
        try:
            jar = acquirer.discover()
            if jar is not None:
                newer = _available_update(acquirer, jar)
                if newer is not None and (
                    yes
                    or config.server.auto_update
                    or typer.confirm(
                        f"Paper build {newer.build} is available (installed: {jar.name}). "
                        "Update now?",
                        default=False,
                    )
                ):
                    with _download_progress() as progress:
                        acquirer.downloader.progress = progress
                        jar = acquirer.fetch_descriptor(newer).path
                else:
                    acquirer.audit(jar)
            else:
                if not yes and not typer.confirm(
                    "No server JAR found. Download the latest Paper build?", default=True
                ):
                    remove_auto_created_config(config, ctx.config_path)
                    _console.print("Download cancelled.")
                    raise typer.Exit(0)
                with _download_progress() as progress:
                    acquirer.downloader.progress = progress
                    jar = acquirer.fetch(config.server.minecraft_version).path
        finally:
            acquirer.close()

        java_version = check_java()
        ctx.log_info(f"Java version: {java_version}")
        max_ram = calculate_max_ram(
            config.server.max_ram, total_ram_gb(), config.server.min_ram
        )
        ensure_eula(work_dir)
        _console.print(
            f"Starting {jar.name} with {config.server.min_ram}G-{max_ram}G heap", highlight=False
        )
        run_server(
            jar.name,
            config.server.min_ram,
            max_ram,
            config.server.server_args,
            cwd=work_dir,
            use_zgc=config.server.use_zgc,
        )


@app.command("version")
def version_cmd() -> None:
    """Show version information."""
    typer.echo(f"paperlaunch {__version__}")


__all__ = ["CliContext", "app", "get_context", "main"]
