"""vmvpn - CLI entry point."""

import subprocess
import sys
from functools import wraps
from pathlib import Path
from typing import Optional

import click
from click.shell_completion import get_completion_class

from .logging_utility import Logger, logger
from .settings import Settings
from .vpn.command_factory import VPNCommandFactory
from .vpn.config import load_proxy_config, resolve
from .vpn.exceptions import VPNError
from .vpn.manager import VPNSessionManager
from .vpn.models import ConnectOutcome
from .vpn.vm import LimaVM


def _fail(message: str) -> None:
    click.echo(click.style("Error: ", fg="red", bold=True) + message, err=True)
    sys.exit(1)


def ask_yes_no(question: str) -> bool:
    """Anything but y/yes counts as no."""
    answer = click.prompt(f"{question} (y/N)", default="", show_default=False)
    return answer.strip().lower() in ("y", "yes")


def prompt_password(message: str) -> str:
    return click.prompt(message, hide_input=True, default="", show_default=False, prompt_suffix="")


def build_manager(settings: Settings) -> VPNSessionManager:
    return VPNSessionManager.from_settings(settings, confirm=ask_yes_no, notify=click.echo)


def handle_errors(func):
    """Report VPNError as a one-line error with exit code 1."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except VPNError as e:
            logger.error(f"{func.__name__} failed: {e}")
            _fail(str(e))
        except KeyboardInterrupt:
            click.echo("\nInterrupted. Run 'vmvpn vpn-disconnect' to clean up a half-open session.", err=True)
            sys.exit(1)
        except (click.ClickException, click.exceptions.Abort, click.exceptions.Exit):
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in {func.__name__}")
            _fail(f"Unexpected error: {e} (details in {Logger().log_file})")
    return wrapper


config_option = click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to VPN config JSON (default: $VPN_CONFIG or ~/.vmvpn/vpn-config.json)",
)


def _settings(ctx: click.Context, config_file: Optional[Path] = None) -> Settings:
    settings: Settings = ctx.obj
    if config_file is not None:
        settings = settings.model_copy(update={"vpn_config": config_file})
    return settings


@click.group()
@click.version_option(package_name="vmvpn", prog_name="vmvpn")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """vmvpn - reach a corporate VPN through an isolated Lima VM.

    The VPN client runs inside the VM; the host uses a SOCKS5 tunnel
    (and optionally an HTTP proxy in the VM) to reach VPN resources.
    """
    try:
        settings = Settings.from_env()
    except ValueError as e:
        _fail(f"Invalid settings: {e}")
    Logger().configure(settings.log_level, settings.log_file)
    ctx.obj = settings


@cli.command("vpn-connect")
@config_option
@click.pass_context
@handle_errors
def vpn_connect(ctx: click.Context, config_file: Optional[Path]) -> None:
    """Connect to the VPN using the JSON config."""
    settings = _settings(ctx, config_file)
    credentials, proxy_config = resolve(settings.vpn_config, prompt=prompt_password)

    click.echo(f"Connecting to VPN: {credentials.gateway}:{credentials.port} as {credentials.username}...")
    result = build_manager(settings).connect(credentials, proxy_config)

    if result.outcome is ConnectOutcome.CONNECTED:
        click.echo()
        for line in result.summary():
            click.echo(line)
        return

    if result.output.strip():
        click.echo(result.output.rstrip(), err=True)
    if result.outcome is ConnectOutcome.ABORTED:
        _fail(f"Connection aborted: {result.reason}. The VPN was not connected.")
    _fail(f"Connection failed: {result.reason}")


@cli.command("vpn-disconnect")
@config_option
@click.pass_context
@handle_errors
def vpn_disconnect(ctx: click.Context, config_file: Optional[Path]) -> None:
    """Disconnect from the VPN and stop auto-stop proxies."""
    settings = _settings(ctx, config_file)
    click.echo("Disconnecting from VPN...")
    build_manager(settings).disconnect(load_proxy_config(settings.vpn_config))
    click.echo("VPN disconnected.")


@cli.command("vpn-status")
@config_option
@click.pass_context
@handle_errors
def vpn_status(ctx: click.Context, config_file: Optional[Path]) -> None:
    """Show VPN connection and proxy status."""
    settings = _settings(ctx, config_file)
    report = build_manager(settings).status(load_proxy_config(settings.vpn_config))

    click.echo(f"VM '{settings.vm_name}': {'running' if report.vm_running else 'not running'}")
    state = click.style("connected", fg="green") if report.connected else click.style("not connected", fg="yellow")
    click.echo(f"VPN: {state}")
    if report.vpn_output:
        for line in report.vpn_output.splitlines():
            click.echo(f"  {line}")
    for proxy in report.proxies:
        click.echo(f"{proxy.label}: {proxy.address} ({'running' if proxy.running else 'not running'})")
    click.echo(f"Trusted certificate: {report.trusted_fingerprint or 'none'}")


@cli.command()
@click.pass_context
@handle_errors
def start(ctx: click.Context) -> None:
    """Create (from VMVPN_VM_TEMPLATE) and start the VM."""
    settings: Settings = ctx.obj
    LimaVM(settings.vm_name, settings.vm_template, settings.command_timeout).start()
    click.echo()
    click.echo("VM is ready. Use 'vmvpn shell' to access it.")


@cli.command()
@click.pass_context
@handle_errors
def stop(ctx: click.Context) -> None:
    """Stop the VM."""
    settings: Settings = ctx.obj
    click.echo("Stopping VM...")
    if not LimaVM(settings.vm_name, timeout=settings.command_timeout).stop():
        click.echo("VM is not running.")


@cli.command()
@click.pass_context
def restart(ctx: click.Context) -> None:
    """Restart the VM."""
    ctx.invoke(stop)
    ctx.invoke(start)


@cli.command()
@click.pass_context
@handle_errors
def status(ctx: click.Context) -> None:
    """Show VM status."""
    settings: Settings = ctx.obj
    info = LimaVM(settings.vm_name, timeout=settings.command_timeout).info()
    if info is None:
        click.echo(f"VM '{settings.vm_name}' does not exist. Create it with: vmvpn start")
        return
    click.echo(f"VM '{settings.vm_name}': {info.get('status', 'unknown')}")
    for key in ("arch", "cpus", "memory", "disk", "dir"):
        if key in info:
            click.echo(f"  {key}: {info[key]}")


@cli.command()
@click.pass_context
@handle_errors
def shell(ctx: click.Context) -> None:
    """Open a shell in the VM."""
    settings: Settings = ctx.obj
    LimaVM(settings.vm_name).check_installed()
    sys.exit(subprocess.call(VPNCommandFactory.vm_shell(settings.vm_name)))


@cli.command()
@click.pass_context
def ssh(ctx: click.Context) -> None:
    """Connect to the VM via SSH."""
    settings: Settings = ctx.obj
    try:
        sys.exit(subprocess.call(VPNCommandFactory.ssh_login(settings.vm_name)))
    except FileNotFoundError:
        _fail("ssh is not installed.")


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
@handle_errors
def delete(ctx: click.Context, yes: bool) -> None:
    """Delete the VM and all its data."""
    settings: Settings = ctx.obj
    if not yes:
        click.echo("This will delete the VM and all its data.")
        if not ask_yes_no("Are you sure?"):
            click.echo("Cancelled.")
            return
    if LimaVM(settings.vm_name, timeout=settings.command_timeout).delete():
        click.echo("VM deleted.")
    else:
        click.echo("VM does not exist.")


@cli.command()
@click.argument("shell_name", type=click.Choice(["bash", "zsh", "fish"]))
def completion(shell_name: str) -> None:
    """Print the shell completion script.

    Enable with: eval "$(vmvpn completion bash)"
    """
    completion_class = get_completion_class(shell_name)
    click.echo(completion_class(cli, {}, "vmvpn", "_VMVPN_COMPLETE").source())


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Address to bind")
@click.option("--port", default=8000, show_default=True, type=int, help="Port to bind")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int) -> None:
    """Run the local control API."""
    import uvicorn

    from .main import create_app

    logger.info(f"Starting vmvpn API on {host}:{port}")
    uvicorn.run(create_app(ctx.obj), host=host, port=port)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
