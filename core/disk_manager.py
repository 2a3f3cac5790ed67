import subprocess
from pathlib import Path

from config.settings import BASE_IMAGE_FORMAT
from core.exceptions import DiskCreationError
from core.logger import log_event


def create_vm_directory(image_dir: Path, hostname: str) -> Path:
    """
    Create <image_dir>/<hostname>/, which holds every file of one VM.
    """
    vm_dir = Path(image_dir) / hostname
    if vm_dir.exists():
        raise DiskCreationError(f"VM directory already exists for {hostname} at {vm_dir}")

    try:
        vm_dir.mkdir(parents=True)
    except OSError as e:
        raise DiskCreationError(f"Failed to create VM directory {vm_dir}: {e}") from e

    log_event(f"[disk] Created VM directory {vm_dir}")
    return vm_dir


def create_overlay_disk(
    vm_dir: Path,
    hostname: str,
    base_image: Path,
    storage_gb: int,
    backing_format: str = BASE_IMAGE_FORMAT,
) -> Path:
    """
    Create a qcow2 overlay backed by base_image using qemu-img.

    The base image is never written to; the overlay only stores the
    differences and is grown to storage_gb.
    """
    overlay_path = Path(vm_dir) / f"{hostname}.qcow2"
    cmd = [
        "qemu-img",
        "create",
        "-f",
        "qcow2",
        "-F",
        backing_format,
        "-b",
        str(Path(base_image).resolve()),
        str(overlay_path),
        f"{storage_gb}G",
    ]

    log_event(f"[disk] Creating overlay for {hostname}: {' '.join(cmd)}")

    try:
        subprocess.run(cmd, capture_output=True, text=True, check=True)
    except subprocess.CalledProcessError as e:
        err = e.stderr.strip() if e.stderr else str(e)
        log_event(f"[disk] qemu-img failed for {hostname}: {err}")
        raise DiskCreationError(f"Failed to create overlay disk for {hostname}: {err}") from e
    except FileNotFoundError as e:
        raise DiskCreationError("qemu-img command not found. Install qemu-utils.") from e

    return overlay_path
