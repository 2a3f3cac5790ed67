import asyncio
import subprocess
from pathlib import Path
from typing import Optional

import asyncssh

from config.settings import SSH_KEYSCAN_TIMEOUT, VM_SSH_KNOWN_HOSTS, VM_SSH_PORT
from core.logger import log_event


def remove_host_key(host: str, known_hosts: Path = VM_SSH_KNOWN_HOSTS) -> bool:
    """
    Forget any cached key for `host` with `ssh-keygen -R`.

    Best-effort: the entry may simply not exist. Returns True if ssh-keygen
    succeeded.
    """
    cmd = ["ssh-keygen", "-R", host, "-f", str(known_hosts)]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except FileNotFoundError:
        log_event("[known-hosts] WARNING: ssh-keygen command not found")
        return False

    if result.returncode != 0:
        err = (result.stderr or "").strip() or f"exit code {result.returncode}"
        log_event(f"[known-hosts] No key removed for {host}: {err}")
        return False

    log_event(f"[known-hosts] Removed cached key(s) for {host}")
    return True


async def _fetch_host_key(host: str, port: int) -> Optional[asyncssh.SSHKey]:
    return await asyncssh.get_server_host_key(host, port)


def fetch_host_key(
    host: str,
    port: int = VM_SSH_PORT,
    timeout: int = SSH_KEYSCAN_TIMEOUT,
) -> Optional[str]:
    """
    Return '<type> <base64>' of the host key offered by host:port, or None.
    """
    try:
        key = asyncio.run(asyncio.wait_for(_fetch_host_key(host, port), timeout))
    except (OSError, asyncssh.Error, asyncio.TimeoutError) as e:
        log_event(f"[known-hosts] WARNING: could not fetch host key of {host}:{port}: {e}")
        return None

    if key is None:
        log_event(f"[known-hosts] WARNING: {host}:{port} offered no host key")
        return None

    exported = key.export_public_key("openssh").decode("ascii")
    return " ".join(exported.split()[:2])


def add_host_key(
    name: str,
    ip: str,
    known_hosts: Path = VM_SSH_KNOWN_HOSTS,
    port: int = VM_SSH_PORT,
    timeout: int = SSH_KEYSCAN_TIMEOUT,
) -> bool:
    """
    Append the VM's current host key for both its name and IP.
    """
    key = fetch_host_key(ip, port=port, timeout=timeout)
    if key is None:
        return False

    host_field = name if port == 22 else f"[{name}]:{port}"
    ip_field = ip if port == 22 else f"[{ip}]:{port}"

    known_hosts = Path(known_hosts)
    try:
        known_hosts.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        with open(known_hosts, "a", encoding="utf-8") as f:
            f.write(f"{host_field},{ip_field} {key}\n")
    except OSError as e:
        log_event(f"[known-hosts] WARNING: could not update {known_hosts}: {e}")
        return False

    log_event(f"[known-hosts] Added {key.split()[0]} key for {name} ({ip})")
    return True
