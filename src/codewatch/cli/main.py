"""CodeWatch CLI - codewatch command."""

from pathlib import Path

import click
import yaml

from codewatch import __version__
from codewatch.cli.watch import watch_command
from codewatch.config.loader import load_config
from codewatch.core.errors import ConfigError
from codewatch.core.logging import bind_session_id, configure_logging


@click.group()
@click.version_option(version=__version__, prog_name="codewatch")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML config file (default: ~/.config/codewatch/config.yaml)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_path: Path | None) -> None:
    """CodeWatch - debounced change batches for reindexing pipelines."""
    ctx.ensure_object(dict)
    try:
        config = load_config(config_path)
    except ConfigError as e:
        raise click.ClickException(e.message) from e

    ctx.obj["verbose"] = verbose
    ctx.obj["config"] = config
    if verbose:
        configure_logging(level="DEBUG")
    else:
        configure_logging(config.logging)
    bind_session_id()


@click.command()
@click.pass_context
def config_command(ctx: click.Context) -> None:
    """Print the effective configuration as YAML."""
    config = ctx.obj["config"]
    click.echo(yaml.safe_dump(config.model_dump(mode="json"), sort_keys=False), nl=False)


cli.add_command(watch_command, name="watch")
cli.add_command(config_command, name="config")


if __name__ == "__main__":
    cli()
