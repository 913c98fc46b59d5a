import click

from arcellite.cli.utils import fail


@click.group()
@click.pass_context
def storage(ctx):
    """Removable storage commands"""
    pass


@storage.command(name='devices')
def list_devices():
    """Show root storage and attached removable devices."""
    from arcellite.storage.devices import list_devices as enumerate_devices
    from arcellite.storage.errors import StorageError

    try:
        root, devices = enumerate_devices()
    except StorageError as e:
        fail(e)

    if root:
        click.echo(f"/ - {root.used_human} used of {root.total_human} ({root.used_percent}%)")

    if not devices:
        click.echo("No removable devices found.")
        return

    for device in devices:
        mount = device.mountpoint or "not mounted"
        click.echo(
            f"{device.name} - {device.model} - {device.size_human} - "
            f"{device.device_type.value} - {mount}"
        )


@storage.command(name='mount')
@click.argument('device')
@click.password_option('--password', confirmation_prompt=False, prompt='sudo password',
                       help='Password used for sudo.')
def mount(device, password):
    """Mount the first partition of DEVICE (e.g. sdb)."""
    from arcellite.storage.errors import StorageError
    from arcellite.storage.manager import StorageManager

    try:
        mountpoint = StorageManager().mount(device, password)
    except StorageError as e:
        fail(e)
    click.echo(f"{device} mounted at {mountpoint}")


@storage.command(name='unmount')
@click.argument('device')
@click.password_option('--password', confirmation_prompt=False, prompt='sudo password',
                       help='Password used for sudo.')
def unmount(device, password):
    """Unmount DEVICE (e.g. sdb)."""
    from arcellite.storage.errors import StorageError
    from arcellite.storage.manager import StorageManager

    try:
        StorageManager().unmount(device, password)
    except StorageError as e:
        fail(e)
    click.echo(f"{device} unmounted")
