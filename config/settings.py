import os
from pathlib import Path

# -----------------------------
# Base paths
# -----------------------------
BASE_DIR = Path(__file__).resolve().parent.parent  # project root

# -----------------------------
# VM image storage
# -----------------------------
# one sub-directory per provisioned VM: overlay disk, cloud-init seed, XML backup
VM_IMAGE_DIR = Path(os.getenv("VM_IMAGE_DIR", "/var/lib/libvirt/images"))

# format of the cloud images used as backing files
BASE_IMAGE_FORMAT = os.getenv("BASE_IMAGE_FORMAT", "qcow2")

# -----------------------------
# Logging
# -----------------------------
LOG_DIR = Path(os.getenv("VM_TOOLS_LOG_DIR", str(BASE_DIR / "log")))
LOG_DIR.mkdir(parents=True, exist_ok=True)

LOG_FILE = LOG_DIR / "vm-tools.log"

# -----------------------------
# VM defaults
# -----------------------------
DEFAULT_MEMORY_MB = int(os.getenv("VM_DEFAULT_MEMORY_MB", "512"))
DEFAULT_VCPU = int(os.getenv("VM_DEFAULT_VCPU", "1"))
DEFAULT_STORAGE_GB = int(os.getenv("VM_DEFAULT_STORAGE_GB", "5"))
DEFAULT_BRIDGE = os.getenv("VM_DEFAULT_BRIDGE", "virbr0")

# passed to virt-install --os-variant
VM_OS_VARIANT = os.getenv("VM_OS_VARIANT", "generic")

HOSTNAME_SUFFIX_LENGTH = 8

# -----------------------------
# Cloud-init
# -----------------------------
VM_CLOUD_USER = os.getenv("VM_CLOUD_USER", "admin")

# placeholder only: the account is created with lock_passwd, login is key based
VM_CLOUD_PASSWORD_HASH = os.getenv(
    "VM_CLOUD_PASSWORD_HASH",
    "$6$rounds=4096$placeholder$"
    "Xd8KQnHH5Ez3sLkmbUW3GyqzEo6XvS0t0T2pL9HdwwZ5gFh3lNdq7rBZ1W3mV4nYcPpJ5kQe8uR0aSb2Kx9Dz.",
)

SEED_ISO_VOLUME_ID = "cidata"

# -----------------------------
# Hypervisor / libvirt
# -----------------------------
LIBVIRT_URI = os.getenv("LIBVIRT_DEFAULT_URI", "qemu:///system")

# -----------------------------
# Host registrar
# -----------------------------
CAPTURE_BRIDGE = os.getenv("CAPTURE_BRIDGE", "virbr0")
CAPTURE_TIMEOUT = int(os.getenv("CAPTURE_TIMEOUT", "30"))

# consult libvirt DHCP leases when no frame was captured
LEASE_FALLBACK = os.getenv("LEASE_FALLBACK", "true").lower() == "true"

HOSTS_FILE = Path(os.getenv("HOSTS_FILE", "/etc/hosts"))

# -----------------------------
# SSH / known hosts
# -----------------------------
VM_SSH_PORT = int(os.getenv("VM_SSH_PORT", "22"))
SSH_KEYSCAN_TIMEOUT = int(os.getenv("SSH_KEYSCAN_TIMEOUT", "10"))


def default_known_hosts_path(environ=os.environ) -> Path:
    """
    VM_SSH_KNOWN_HOSTS when set. Otherwise the known_hosts of the user
    who invoked sudo, since the registrar runs as root. Otherwise ~/.ssh/known_hosts.
    """
    if environ.get("VM_SSH_KNOWN_HOSTS"):
        return Path(os.path.expanduser(environ["VM_SSH_KNOWN_HOSTS"]))
    sudo_user = environ.get("SUDO_USER")
    if sudo_user:
        return Path(os.path.expanduser(f"~{sudo_user}/.ssh/known_hosts"))
    return Path(os.path.expanduser("~/.ssh/known_hosts"))


VM_SSH_KNOWN_HOSTS = default_known_hosts_path()

# -----------------------------
# Metrics / monitoring
# -----------------------------
METRICS_ENABLED = os.getenv("METRICS_ENABLED", "false").lower() == "true"
METRICS_TEXTFILE_DIR = Path(
    os.getenv("METRICS_TEXTFILE_DIR", str(LOG_DIR / "metrics"))
)
