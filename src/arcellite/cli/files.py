import datetime

import click

from arcellite.cli.utils import fail


@click.group()
@click.pass_context
def files(ctx):
    """External file commands"""
    pass


@files.command(name='ls')
@click.argument('path')
def list_files(path):
    """List PATH on an external mount."""
    from arcellite.explorer.lister import list_directory
    from arcellite.storage.errors import StorageError

    try:
        listing = list_directory(path)
    except StorageError as e:
        fail(e)

    for entry in listing.folders + listing.files:
        modified = datetime.datetime.fromtimestamp(entry.mtime_ms / 1000).strftime("%Y-%m-%d %H:%M")
        size = "-" if entry.size_bytes is None else str(entry.size_bytes)
        suffix = "/" if entry.is_folder else ""
        click.echo(f"{modified} {size:>12} {entry.name}{suffix}")
