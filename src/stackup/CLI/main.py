"""
Command Line Interface for stackup.
"""
import functools
import os
import re
import sys
import time

import click
import yaml

from ..errors import StackupError
from ..MANAGERS.lifecycle_controller import LifecycleController
from ..MANAGERS.network_manager import NetworkManager
from ..MANAGERS.volume_manager import VolumeManager
from ..MODELS.settings import Settings, RuntimeKind
from ..PARSERS.compose_parser import ComposeParser
from ..PARSERS.env_parser import load_environment
from ..RUNNERS.docker_runtime import DockerCliRuntime
from ..RUNNERS.process_runtime import ProcessRuntime
from ..UTILS.logging_setup import configure_logging


def create_runtime(settings: Settings, base_dir: str):
    """
    Builds the container runtime selected in ``settings``.
    """
    if settings.runtime == RuntimeKind.PROCESS:
        return ProcessRuntime(settings.project_name, base_dir=base_dir, state_dir=settings.state_dir)
    return DockerCliRuntime(settings.project_name, base_dir=base_dir)


def handle_errors(f):
    """
    Turns stackup errors into an ``Error: ...`` line and the error's exit code.
    """
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except StackupError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(e.exit_code)
    return wrapper


def _default_project(base_dir: str) -> str:
    name = os.path.basename(os.path.abspath(base_dir)).lower()
    return re.sub(r'[^a-z0-9_-]', '', name) or "stackup"


def _load_config(ctx):
    obj = ctx.obj
    if 'config' not in obj:
        if not os.path.exists(obj['file']):
            click.echo(f"Error: {obj['file']} not found.", err=True)
            sys.exit(1)
        env = load_environment(obj['env_file'], os.environ)
        obj['config'] = ComposeParser(env).parse(obj['file'])
    return obj['config']


def _controller(ctx) -> LifecycleController:
    config = _load_config(ctx)
    return LifecycleController(config, ctx.obj['runtime'], ctx.obj['settings'])


@click.group()
@click.option('--file', '-f', default='docker-compose.yml', envvar='STACKUP_FILE', help='Compose file path')
@click.option('--env-file', default=None, envvar='STACKUP_ENV_FILE',
              help='Variables for ${VAR} substitution (default: .env next to the compose file)')
@click.option('--project-name', '-p', default=None, envvar='STACKUP_PROJECT_NAME', help='Project name')
@click.option('--runtime', type=click.Choice([k.value for k in RuntimeKind]), default=RuntimeKind.DOCKER.value,
              envvar='STACKUP_RUNTIME', help='Container runtime to drive')
@click.option('--state-dir', default='.stackup', envvar='STACKUP_STATE_DIR', help='Directory for run state')
@click.option('--log-level', default=None, envvar='STACKUP_LOG_LEVEL', help='Logging level')
@click.pass_context
def cli(ctx, file, env_file, project_name, runtime, state_dir, log_level):
    """
    stackup - declarative stack orchestration.

    Starts the services of a compose-style manifest in dependency order
    and tears them down again.
    """
    try:
        configure_logging(log_level)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--log-level")
    ctx.ensure_object(dict)
    base_dir = os.path.dirname(os.path.abspath(file))
    settings = Settings(
        project_name=project_name or _default_project(base_dir),
        state_dir=os.path.join(base_dir, state_dir),
        runtime=runtime,
    )
    ctx.obj['file'] = file
    ctx.obj['env_file'] = env_file or os.path.join(base_dir, '.env')
    ctx.obj['settings'] = settings
    ctx.obj['runtime'] = create_runtime(settings, base_dir)


@cli.command()
@click.option('--build', is_flag=True, help='Build images before starting')
@click.option('--detach', '-d', is_flag=True, help='Run in background')
@click.option('--timeout', type=float, default=None, help='Seconds to wait for each service to become ready')
@click.pass_context
@handle_errors
def up(ctx, build, detach, timeout):
    """Start services defined in the compose file."""
    if timeout is not None:
        ctx.obj['settings'].readiness_timeout = timeout
    controller = _controller(ctx)
    controller.up(build=build)
    click.echo("Services started.")

    if detach:
        return
    click.echo("Running... Press Ctrl+C to stop.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        click.echo("\nStopping services...")
        controller.down()


@cli.command()
@click.option('--volumes', '-v', is_flag=True, help='Also remove named volumes declared in the compose file')
@click.pass_context
@handle_errors
def down(ctx, volumes):
    """Stop and remove all services."""
    _controller(ctx).down(remove_volumes=volumes)
    click.echo("Services stopped.")


@cli.command()
@click.pass_context
@handle_errors
def ps(ctx):
    """List service status"""
    states = _controller(ctx).ps()
    click.echo(f"{'SERVICE':15} {'STATUS':10} {'CONTAINER':20}")
    click.echo("-" * 47)
    for name, state in states.items():
        container = state.handle.container_id[:20] if state.handle else ""
        click.echo(f"{name:15} {state.status.value:10} {container:20}")


@cli.command()
@click.pass_context
@handle_errors
def config(ctx):
    """Print the resolved compose file"""
    cfg = _load_config(ctx)
    data = cfg.model_dump(mode="json", exclude_defaults=True)
    for svc in data.get('services', {}).values():
        svc.pop('name', None)
    click.echo(yaml.safe_dump(data, sort_keys=False))


@cli.group()
def volume():
    """Manage named volumes"""


@volume.command('ls')
@click.pass_context
@handle_errors
def volume_ls(ctx):
    manager = VolumeManager(ctx.obj['runtime'], ctx.obj['settings'].state_dir)
    for vol in manager.list():
        click.echo(f"{vol.name:20} {vol.location}")


@volume.command('rm')
@click.argument('name')
@click.pass_context
@handle_errors
def volume_rm(ctx, name):
    manager = VolumeManager(ctx.obj['runtime'], ctx.obj['settings'].state_dir)
    if not manager.remove(name):
        click.echo(f"Error: no such volume: {name}", err=True)
        sys.exit(1)
    click.echo(name)


@cli.group()
def network():
    """Manage networks"""


@network.command('ls')
@click.pass_context
@handle_errors
def network_ls(ctx):
    manager = NetworkManager(ctx.obj['runtime'], ctx.obj['settings'].state_dir)
    for net in manager.list():
        click.echo(f"{net.name:20} {net.driver:10} {net.runtime_name}")


@network.command('rm')
@click.argument('name')
@click.pass_context
@handle_errors
def network_rm(ctx, name):
    manager = NetworkManager(ctx.obj['runtime'], ctx.obj['settings'].state_dir)
    if not manager.remove(name):
        click.echo(f"Error: no such network: {name}", err=True)
        sys.exit(1)
    click.echo(name)


def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})


if __name__ == '__main__':
    main()
