import subprocess
from pathlib import Path
from typing import Any, Dict, List

import yaml

from config.settings import (
    SEED_ISO_VOLUME_ID,
    VM_CLOUD_PASSWORD_HASH,
    VM_CLOUD_USER,
)
from core.exceptions import CloudInitError
from core.logger import log_event

CLOUD_CONFIG_HEADER = "#cloud-config\n"

# keeps every authorized key on a single line
YAML_WIDTH = 4096


def _dump(document: Dict[str, Any]) -> str:
    return yaml.safe_dump(document, sort_keys=False, default_flow_style=False, width=YAML_WIDTH)


def read_authorized_keys(pubkey_file: Path) -> List[str]:
    """
    Return the keys of pubkey_file in file order.

    Blank lines and lines starting with '#' are skipped.
    """
    try:
        with open(pubkey_file, "r", encoding="utf-8") as f:
            lines = f.read().splitlines()
    except OSError as e:
        raise CloudInitError(f"Failed to read public key file {pubkey_file}: {e}") from e

    keys = []
    for line in lines:
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        keys.append(line)
    return keys


def render_meta_data(hostname: str) -> str:
    return _dump({"instance-id": hostname, "local-hostname": hostname})


def build_user_data(
    keys: List[str],
    user: str = VM_CLOUD_USER,
    password_hash: str = VM_CLOUD_PASSWORD_HASH,
) -> Dict[str, Any]:
    """
    One sudo-enabled account, password login disabled, keys in file order.
    """
    account = {
        "name": user,
        "gecos": user,
        "groups": "users, admin",
        "sudo": "ALL=(ALL) NOPASSWD:ALL",
        "shell": "/bin/bash",
        "lock_passwd": True,
        "passwd": password_hash,
        "ssh_authorized_keys": list(keys),
    }
    return {"ssh_pwauth": False, "users": [account]}


def render_user_data(
    keys: List[str],
    user: str = VM_CLOUD_USER,
    password_hash: str = VM_CLOUD_PASSWORD_HASH,
) -> str:
    return CLOUD_CONFIG_HEADER + _dump(build_user_data(keys, user=user, password_hash=password_hash))


def write_cloud_init_documents(vm_dir: Path, hostname: str, pubkey_file: Path) -> tuple[Path, Path]:
    """
    Write meta-data and user-data into vm_dir and return their paths.
    """
    vm_dir = Path(vm_dir)
    meta_data_path = vm_dir / "meta-data"
    user_data_path = vm_dir / "user-data"

    keys = read_authorized_keys(pubkey_file)
    if not keys:
        log_event(f"[cloud-init] WARNING: no public keys found in {pubkey_file}")

    try:
        meta_data_path.write_text(render_meta_data(hostname), encoding="utf-8")
        user_data_path.write_text(render_user_data(keys), encoding="utf-8")
    except OSError as e:
        raise CloudInitError(f"Failed to write cloud-init documents in {vm_dir}: {e}") from e

    log_event(f"[cloud-init] Wrote meta-data and user-data for {hostname} ({len(keys)} keys)")
    return meta_data_path, user_data_path


def build_seed_iso(vm_dir: Path, hostname: str) -> Path:
    """
    Package user-data and meta-data into a NoCloud 'cidata' ISO with genisoimage.
    """
    vm_dir = Path(vm_dir)
    iso_path = vm_dir / f"{hostname}-cidata.iso"
    cmd = [
        "genisoimage",
        "-output",
        str(iso_path),
        "-volid",
        SEED_ISO_VOLUME_ID,
        "-joliet",
        "-rock",
        "user-data",
        "meta-data",
    ]

    log_event(f"[cloud-init] Building seed ISO for {hostname}: {' '.join(cmd)}")

    try:
        subprocess.run(cmd, cwd=str(vm_dir), capture_output=True, text=True, check=True)
    except subprocess.CalledProcessError as e:
        err = e.stderr.strip() if e.stderr else str(e)
        log_event(f"[cloud-init] genisoimage failed for {hostname}: {err}")
        raise CloudInitError(f"Failed to build seed ISO for {hostname}: {err}") from e
    except FileNotFoundError as e:
        raise CloudInitError("genisoimage command not found. Install genisoimage.") from e

    return iso_path
