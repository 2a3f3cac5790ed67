import os
from pathlib import Path
from typing import Optional

import click
import typer
from pydantic import ValidationError
from typer.core import TyperCommand

from config.settings import (
    DEFAULT_BRIDGE,
    DEFAULT_MEMORY_MB,
    DEFAULT_STORAGE_GB,
    DEFAULT_VCPU,
)
from core.exceptions import HypervisorConnectionError, ProvisioningError
from core.host_registrar import HostRegistrar
from core.logger import enable_verbose, log_event
from core.metrics import (
    record_provision_failure,
    record_registration,
    record_vm_provisioned,
    write_metrics,
)
from core.vm_provisioner import VMProvisioner, generate_hostname
from schemas.vm_schema import VMSpecSchema

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}

provision_app = typer.Typer(
    name="vm-provision",
    help="Provision a VM from a cloud image with a cloud-init seed ISO.",
    add_completion=False,
    context_settings=CONTEXT_SETTINGS,
)

register_app = typer.Typer(
    name="vm-register-hosts",
    help="Map running VMs to their IPs in /etc/hosts and refresh SSH known hosts.",
    add_completion=False,
    context_settings=CONTEXT_SETTINGS,
)


def _usage_error(ctx: typer.Context, message: str) -> None:
    typer.echo(ctx.get_usage(), err=True)
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(1)


class UsageExitCommand(TyperCommand):
    """Exit with status 1, not click's 2, when the command line cannot be parsed."""

    def make_context(self, info_name, args, parent=None, **extra):
        try:
            return super().make_context(info_name, args, parent=parent, **extra)
        except click.UsageError as e:
            e.exit_code = 1
            raise


def _format_validation_error(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in error.errors()
    )


# ----------------------------------------------------------------------
# vm-provision
# ----------------------------------------------------------------------
@provision_app.command(cls=UsageExitCommand)
def provision(
    ctx: typer.Context,
    name: Optional[str] = typer.Option(None, "-n", "--name", help="Hostname; a random suffix is appended"),
    image: Optional[Path] = typer.Option(None, "-i", "--image", help="Base cloud image (backing file)"),
    key_file: Optional[Path] = typer.Option(None, "-k", "--key-file", help="SSH public key file"),
    ram: int = typer.Option(DEFAULT_MEMORY_MB, "-r", "--ram", help="RAM in MB"),
    cpus: int = typer.Option(DEFAULT_VCPU, "-c", "--cpus", help="Number of VCPUs"),
    storage: int = typer.Option(DEFAULT_STORAGE_GB, "-s", "--storage", help="Disk size in GB"),
    bridge: str = typer.Option(DEFAULT_BRIDGE, "-b", "--bridge", help="Host bridge to attach to"),
    mac: Optional[str] = typer.Option(None, "-m", "--mac", help="Fixed MAC address"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Log to stderr as well"),
) -> None:
    """Create an overlay disk, cloud-init seed and libvirt domain for a new VM."""
    if verbose:
        enable_verbose()

    missing = [flag for flag, value in (("-n", name), ("-i", image), ("-k", key_file)) if not value]
    if missing:
        _usage_error(ctx, f"missing required option(s): {', '.join(missing)}")
    if not image.is_file():
        _usage_error(ctx, f"image not found: {image}")

    try:
        spec = VMSpecSchema(
            hostname=generate_hostname(name),
            base_image=image,
            pubkey_file=key_file,
            memory_mb=ram,
            vcpus=cpus,
            storage_gb=storage,
            bridge=bridge,
            mac=mac,
        )
    except ValidationError as e:
        _usage_error(ctx, _format_validation_error(e))

    provisioner = VMProvisioner()
    try:
        vm_info = provisioner.provision(spec)
    except ProvisioningError as e:
        log_event(f"[provision] FAILED for {spec.hostname}: {e}")
        record_provision_failure(type(e).__name__)
        write_metrics("vm-provision")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    record_vm_provisioned(spec.bridge, provisioner.image_dir)
    write_metrics("vm-provision")

    typer.echo(f"VM {vm_info['name']} created")
    typer.echo(f"  directory:  {vm_info['directory']}")
    typer.echo(f"  disk:       {vm_info['disk']}")
    typer.echo(f"  seed iso:   {vm_info['seed_iso']}")
    typer.echo(f"  definition: {vm_info['definition']}")


# ----------------------------------------------------------------------
# vm-register-hosts
# ----------------------------------------------------------------------
@register_app.command(cls=UsageExitCommand)
def register_hosts(
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Log to stderr as well"),
) -> None:
    """
    Resolve every running VM's IP and update /etc/hosts and known hosts.

    Host keys go to VM_SSH_KNOWN_HOSTS, or under sudo to the invoking
    user's ~/.ssh/known_hosts (SUDO_USER), not root's.
    """
    if verbose:
        enable_verbose()

    if os.geteuid() != 0:
        typer.echo("Error: root privileges are required for packet capture and /etc/hosts", err=True)
        raise typer.Exit(1)

    try:
        registrar = HostRegistrar()
    except HypervisorConnectionError as e:
        log_event(f"[registrar] {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    try:
        results = registrar.register_all()
    finally:
        registrar.close()

    record_registration(results)
    write_metrics("vm-register-hosts")

    for result in results:
        typer.echo(
            f"{result.name}\t{result.ip or '-'}\t{result.mac or '-'}\t{result.source or 'unresolved'}"
        )
