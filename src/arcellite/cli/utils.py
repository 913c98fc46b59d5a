import click


def fail(error):
    """Abort the command with a storage error's message (exit status 1)."""
    raise click.ClickException(getattr(error, "message", str(error)))
