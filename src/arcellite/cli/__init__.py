import logging

import click

from arcellite.cli.files import files
from arcellite.cli.storage import storage


@click.group()
@click.pass_context
def main(ctx):
    """Arcellite storage CLI"""
    ctx.ensure_object(dict)


main.add_command(storage)
main.add_command(files)


@main.command()
@click.option('--host', default='127.0.0.1', help='The host to bind to.')
@click.option('--port', default=8000, help='The port to bind to.')
@click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False),
              help='YAML file with configuration overrides.')
@click.option('--log-level', default='info',
              type=click.Choice(['debug', 'info', 'warning', 'error']), help='Log level.')
def server(host, port, config_path, log_level):
    """Run the FastAPI server."""
    import uvicorn

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if config_path:
        from arcellite.config.settings import load_config_file

        try:
            applied = load_config_file(config_path)
        except ValueError as e:
            raise click.ClickException(str(e))
        click.echo(f"Loaded {len(applied)} setting(s) from {config_path}")

    from arcellite.api.server import app

    uvicorn.run(app, host=host, port=port, log_level=log_level)


@main.command()
def version():
    """Show the application version."""
    from arcellite.version import get_version

    click.echo(get_version())
