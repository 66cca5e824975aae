import typer

from eksmesh import __version__
from eksmesh.cli.cluster import cluster_app
from eksmesh.cli.mesh import mesh_app
from eksmesh.cli.utils import init_pulumi
from eksmesh.logger import setup_logger

init_pulumi()


def version_callback(version: bool) -> None:
    if version:
        typer.echo(f"eksmesh CLI Version: {__version__}")
        raise typer.Exit()


cli = typer.Typer(context_settings={"help_option_names": ["-h", "--help"]})


@cli.callback()
def main_options(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose output"
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit", callback=version_callback
    ),
) -> None:
    setup_logger(verbose)


cli.add_typer(cluster_app, name="cluster", help="Manage clusters.")

cli.add_typer(mesh_app, name="mesh", help="Plan and audit node group security meshes.")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
