import os
import random
import string
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional

from config.settings import (
    HOSTNAME_SUFFIX_LENGTH,
    LIBVIRT_URI,
    VM_IMAGE_DIR,
    VM_OS_VARIANT,
)
from core.backup_manager import BackupManager
from core.cloud_init import build_seed_iso, write_cloud_init_documents
from core.disk_manager import create_overlay_disk, create_vm_directory
from core.exceptions import VmInstallError
from core.logger import log_event
from schemas.vm_schema import VMSpecSchema


def generate_hostname(name: str, length: int = HOSTNAME_SUFFIX_LENGTH) -> str:
    """
    Return '<name>-<random lowercase letters>' to keep domain names unique.
    """
    suffix = "".join(random.choices(string.ascii_lowercase, k=length))
    return f"{name}-{suffix}"


class VMProvisioner:
    """
    Builds a VM from a cloud image: overlay disk, cloud-init seed ISO,
    virt-install import and a backup of the resulting definition.

    Steps run strictly in order and the first failure propagates as a
    ProvisioningError. Files already written are left in place for
    inspection.
    """

    def __init__(
        self,
        image_dir: Optional[Path] = None,
        uri: str = LIBVIRT_URI,
        os_variant: str = VM_OS_VARIANT,
        backup_manager: Optional[BackupManager] = None,
    ) -> None:
        self.image_dir = Path(image_dir) if image_dir else VM_IMAGE_DIR
        self.uri = uri
        self.os_variant = os_variant
        self.backup_manager = backup_manager or BackupManager(uri=uri)

    # ------------------------------------------------------------------
    # Utility methods
    # ------------------------------------------------------------------
    def _build_install_command(self, spec: VMSpecSchema, disk: Path, seed_iso: Path) -> List[str]:
        network = f"bridge={spec.bridge},model=virtio"
        if spec.mac:
            network += f",mac={spec.mac}"

        return [
            "virt-install",
            "--name",
            spec.hostname,
            "--memory",
            str(spec.memory_mb),
            "--vcpus",
            str(spec.vcpus),
            "--import",
            "--os-variant",
            self.os_variant,
            "--disk",
            f"path={disk},format=qcow2,bus=virtio",
            "--disk",
            f"path={seed_iso},device=cdrom",
            "--network",
            network,
            "--graphics",
            "none",
            "--noautoconsole",
            "--autostart",
        ]

    def _install(self, spec: VMSpecSchema, disk: Path, seed_iso: Path) -> None:
        cmd = self._build_install_command(spec, disk, seed_iso)
        env = {**os.environ, "LIBVIRT_DEFAULT_URI": self.uri}

        log_event(f"[provision] Installing VM {spec.hostname}: {' '.join(cmd)}")

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=True, env=env)
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            stdout = (e.stdout or "").strip()
            combined = "\n".join(part for part in [stderr, stdout] if part) or "unknown error"
            log_event(f"[provision] virt-install FAILED for {spec.hostname}: {combined}")
            raise VmInstallError(f"virt-install failed for '{spec.hostname}': {combined}") from e
        except FileNotFoundError as e:
            raise VmInstallError("virt-install command not found. Install virtinst.") from e

        if result.stdout:
            log_event(f"[provision] virt-install output for {spec.hostname}: {result.stdout.strip()}")

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    def provision(self, spec: VMSpecSchema) -> Dict[str, Any]:
        hostname = spec.hostname
        log_event(
            f"[provision] Provisioning VM '{hostname}' (image={spec.base_image}, "
            f"memory={spec.memory_mb}MiB, vcpus={spec.vcpus}, storage={spec.storage_gb}G, "
            f"bridge={spec.bridge}, mac={spec.mac or 'auto'})"
        )

        vm_dir = create_vm_directory(self.image_dir, hostname)
        disk = create_overlay_disk(vm_dir, hostname, spec.base_image, spec.storage_gb)
        write_cloud_init_documents(vm_dir, hostname, spec.pubkey_file)
        seed_iso = build_seed_iso(vm_dir, hostname)
        self._install(spec, disk, seed_iso)
        definition = self.backup_manager.backup_definition(hostname, vm_dir)

        log_event(f"[provision] VM '{hostname}' provisioned in {vm_dir}")
        return {
            "name": hostname,
            "directory": str(vm_dir),
            "disk": str(disk),
            "seed_iso": str(seed_iso),
            "definition": str(definition),
            "memory_mb": spec.memory_mb,
            "vcpus": spec.vcpus,
            "storage_gb": spec.storage_gb,
            "bridge": spec.bridge,
            "mac": spec.mac,
        }
