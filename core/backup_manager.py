import os
import subprocess
from pathlib import Path

from config.settings import LIBVIRT_URI
from core.exceptions import DefinitionBackupError
from core.logger import log_event


class BackupManager:
    """
    Thin wrapper around `virsh dumpxml` for keeping a copy of a domain
    definition next to its disks.

    The dump lets an operator re-define the VM with `virsh define` if the
    libvirt registry is lost, and records exactly what virt-install produced.
    """

    def __init__(self, uri: str = LIBVIRT_URI) -> None:
        self.uri = uri

    def backup_definition(self, vm_name: str, target_dir: Path) -> Path:
        target = Path(target_dir) / f"{vm_name}.xml"
        cmd = ["virsh", "--connect", self.uri, "dumpxml", vm_name]

        log_event(f"[backup] Dumping definition of VM {vm_name}: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True,
                env={**os.environ, "LIBVIRT_DEFAULT_URI": self.uri},
            )
        except subprocess.CalledProcessError as e:
            err = e.stderr.strip() if e.stderr else str(e)
            log_event(f"[backup] virsh dumpxml failed for {vm_name}: {err}")
            raise DefinitionBackupError(f"Failed to dump definition of VM '{vm_name}': {err}") from e
        except FileNotFoundError as e:
            raise DefinitionBackupError("virsh command not found. Install libvirt-clients.") from e

        try:
            target.write_text(result.stdout, encoding="utf-8")
        except OSError as e:
            raise DefinitionBackupError(f"Failed to write definition backup {target}: {e}") from e

        log_event(f"[backup] Saved definition of VM {vm_name} to {target}")
        return target
