"""
Command Line Interface for dbox.
"""
import functools
import os
import sys

import click
from pydantic import ValidationError

from ..BUILDERS.engine_command_builder import EngineCommandBuilder, detect_engine
from ..MANAGERS.bootstrap_reconciler import BootstrapReconciler
from ..MANAGERS.container_manager import ContainerManager
from ..MANAGERS.enter_session import EnterSession
from ..MANAGERS.export_manager import ExportManager
from ..MANAGERS.readiness_gate import ReadinessGate
from ..MODELS.container_identity import ContainerIdentity, UserIdentity
from ..MODELS.export_artifact import ApplicationExport, BinaryExport, ExportAction, ServiceExport
from ..PARSERS.config_parser import ConfigParser, read_container_name
from ..RUNNERS.command_runner import CommandRunner
from ..UTILS.console import Console
from ..errors import DistroboxError


def handle_errors(f):
    """
    Reports DistroboxError as a one-line message and exits with its code.
    Filesystem errors are reported the same way and exit with 1.
    """
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except DistroboxError as e:
            Console().error(e.message)
            raise click.exceptions.Exit(e.exit_code)
        except OSError as e:
            Console().error(f"{e.filename}: {e.strerror}" if e.filename else str(e))
            raise click.exceptions.Exit(1)
    return wrapper


def _container_manager(name, image=None, verbose=None, home=None):
    config = ConfigParser().parse(
        container_name=name,
        container_image=image,
        container_user_custom_home=home,
        verbose=verbose or None,
    )
    console = Console(config.verbose)
    runner = CommandRunner(console)
    engine = detect_engine(config, runner)
    identity = ContainerIdentity.from_host(
        config.container_name, config.container_image, config.container_user_custom_home
    )
    builder = EngineCommandBuilder(engine, identity, runner=runner, verbose=config.verbose)
    return config, console, ContainerManager(builder, runner)


@click.group()
@click.version_option(package_name="dbox")
def cli():
    """
    dbox - host-integrated development containers.

    Create containers that share your home, devices and sockets, enter
    them, and export their applications to the host.
    """


@cli.command()
@click.option('--name', '-n', help='Name of the distrobox')
@click.option('--image', '-i', help='Image to use for the container')
@click.option('--home', '-H', help='Custom home directory for the container user')
@click.option('--verbose', '-v', is_flag=True, help='Show more verbosity')
@handle_errors
def create(name, image, home, verbose):
    """Create a new distrobox."""
    config, console, containers = _container_manager(name, image, verbose, home)
    if containers.exists():
        console.info(f"Distrobox named '{containers.name}' already exists.")
        console.info(f"To enter, run: dbox enter -n {containers.name}")
        return

    console.info(f"Creating '{containers.name}' using image {config.container_image}")
    containers.create()
    console.info(f"Distrobox '{containers.name}' successfully created.")
    console.info(f"To enter, run: dbox enter -n {containers.name}")


@cli.command(context_settings={"ignore_unknown_options": True})
@click.option('--name', '-n', help='Name of the distrobox')
@click.option('--no-tty', '-T', is_flag=True, help='Do not instantiate a tty')
@click.option('--timeout', type=float, default=None, help='Seconds to wait for the container to be ready (0 waits forever)')
@click.option('--verbose', '-v', is_flag=True, help='Show more verbosity')
@click.argument('command', nargs=-1, type=click.UNPROCESSED)
@handle_errors
def enter(name, no_tty, timeout, verbose, command):
    """Enter a distrobox, optionally running COMMAND."""
    config, console, containers = _container_manager(name, verbose=verbose)
    gate = ReadinessGate(
        containers,
        timeout=config.readiness_timeout if timeout is None else timeout,
        interval=config.readiness_interval,
        console=console,
    )
    tty = not no_tty and sys.stdin.isatty()
    status = EnterSession(containers, gate).run(list(command) or None, tty=tty)
    # The session's own status, passed through without the failure notice
    sys.exit(status)


@cli.command(name='list')
@click.option('--verbose', '-v', is_flag=True, help='Show more verbosity')
@handle_errors
def list_containers(verbose):
    """List distroboxes."""
    _, console, containers = _container_manager(None, verbose=verbose)
    console.info(f"{'NAME':20} | {'STATUS':25} | IMAGE")
    for container in containers.list():
        console.info(f"{container['name']:20} | {container['status']:25} | {container['image']}")


@cli.command()
@click.option('--name', '-n', help='Name of the distrobox')
@click.option('--verbose', '-v', is_flag=True, help='Show more verbosity')
@handle_errors
def stop(name, verbose):
    """Stop a running distrobox."""
    _, console, containers = _container_manager(name, verbose=verbose)
    containers.stop()
    console.info(f"Distrobox '{containers.name}' stopped.")


@cli.command()
@click.option('--name', '-n', help='Name of the distrobox')
@click.option('--force', '-f', is_flag=True, help='Remove even if running')
@click.option('--verbose', '-v', is_flag=True, help='Show more verbosity')
@handle_errors
def rm(name, force, verbose):
    """Remove a distrobox."""
    _, console, containers = _container_manager(name, verbose=verbose)
    containers.remove(force=force)
    console.info(f"Distrobox '{containers.name}' removed.")


@cli.command(name='init')
@click.option('--name', '-n', 'user_name', default='', help='User name')
@click.option('--user', '-u', 'uid', default='', help='User id')
@click.option('--group', '-g', 'gid', default='', help='Group id')
@click.option('--home', '-d', default='', help='Home directory of the user')
@click.option('--verbose', '-v', is_flag=True, help='Show more verbosity')
@handle_errors
def init_command(user_name, uid, gid, home, verbose):
    """
    Container entrypoint: set up the container for the host user.

    Not meant to be run by hand.
    """
    try:
        user = UserIdentity(
            name=user_name,
            uid=uid,
            gid=gid,
            home=home,
            shell=os.environ.get("SHELL") or "/bin/bash",
        )
    except ValidationError:
        raise click.UsageError("invalid arguments, --name, --user, --group and --home are required")

    reconciler = BootstrapReconciler(user, console=Console(verbose))
    reconciler.run()
    reconciler.supervise()


@cli.command(name='export')
@click.option('--app', '-a', help='Name of the application to export')
@click.option('--bin', '-b', 'binary', help='Absolute path of the binary to export')
@click.option('--service', '-s', help='Name of the service to export')
@click.option('--export-path', '-ep', help='Directory the binary wrapper is written to')
@click.option('--extra-flags', '-ef', default='', help='Flags to add to the exported command')
@click.option('--delete', '-d', is_flag=True, help='Un-export instead of export')
@click.option('--sudo', '-S', is_flag=True, help='Run the exported item with elevated privileges')
@click.option('--verbose', '-v', is_flag=True, help='Show more verbosity')
@handle_errors
def export_command(app, binary, service, export_path, extra_flags, delete, sudo, verbose):
    """Export an application, binary or service to the host."""
    selected = [option for option in (app, binary, service) if option]
    if len(selected) != 1:
        raise click.UsageError("specify exactly one of --app, --bin or --service")

    if binary:
        if not export_path:
            raise click.UsageError("--export-path is required with --bin")
        artifact = BinaryExport(
            source=binary,
            export_path=os.path.expanduser(export_path),
            extra_flags=extra_flags,
            sudo=sudo,
        )
    elif app:
        artifact = ApplicationExport(name=app, extra_flags=extra_flags, sudo=sudo)
    else:
        artifact = ServiceExport(name=service, extra_flags=extra_flags, sudo=sudo)

    manager = ExportManager(
        container_name=read_container_name(),
        home=os.environ.get("HOME") or os.path.expanduser("~"),
        console=Console(verbose),
    )
    manager.apply(artifact, ExportAction.DELETE if delete else ExportAction.EXPORT)


def _run(command):
    """
    Runs a click command and prints a generic notice on any failure exit.
    """
    try:
        rv = command.main(standalone_mode=False)
        code = rv if isinstance(rv, int) else 0
    except click.ClickException as e:
        e.show()
        code = e.exit_code
    except click.exceptions.Abort:
        click.echo("Aborted!", err=True)
        code = 1
    if code != 0:
        Console().error("An error occurred")
    sys.exit(code)


def main():
    """
    Main entry point for the CLI.
    """
    _run(cli)


def init_main():
    """Entry point of the container bootstrap."""
    _run(init_command)


def export_main():
    """Entry point of the exporter inside containers."""
    _run(export_command)


if __name__ == '__main__':
    main()
