import time
from pathlib import Path
from typing import Optional

import psutil
from prometheus_client import CollectorRegistry, Counter, Gauge, write_to_textfile

from config.settings import METRICS_ENABLED, METRICS_TEXTFILE_DIR
from core.logger import log_event

# Both tools are short-lived processes: metrics go to a node-exporter
# textfile instead of an HTTP endpoint.
REGISTRY = CollectorRegistry()

# -----------------------------
# Provisioner metrics
# -----------------------------
VM_PROVISIONED_TOTAL = Counter(
    "vm_tools_provisioned_total",
    "Number of VMs provisioned by this run",
    ["bridge"],
    registry=REGISTRY,
)

VM_PROVISION_FAILURES_TOTAL = Counter(
    "vm_tools_provision_failures_total",
    "Number of failed provisioning runs",
    ["step"],
    registry=REGISTRY,
)

IMAGE_DIR_DISK_USAGE = Gauge(
    "vm_tools_image_dir_disk_usage_percent",
    "Disk usage of the filesystem holding VM images, in percent",
    registry=REGISTRY,
)

# -----------------------------
# Registrar metrics
# -----------------------------
REGISTRAR_VMS_SEEN = Gauge(
    "vm_tools_registrar_vms_seen",
    "Running VMs found by the last registrar run",
    registry=REGISTRY,
)

REGISTRAR_RESOLVED = Gauge(
    "vm_tools_registrar_resolved",
    "VMs whose IP was resolved by the last registrar run",
    ["source"],
    registry=REGISTRY,
)

REGISTRAR_UNRESOLVED = Gauge(
    "vm_tools_registrar_unresolved",
    "VMs left without an IP by the last registrar run",
    registry=REGISTRY,
)

LAST_RUN_TIMESTAMP = Gauge(
    "vm_tools_last_run_timestamp",
    "UNIX timestamp of the last run",
    ["tool"],
    registry=REGISTRY,
)


def record_vm_provisioned(bridge: str, image_dir: Path) -> None:
    VM_PROVISIONED_TOTAL.labels(bridge=bridge).inc()
    try:
        IMAGE_DIR_DISK_USAGE.set(psutil.disk_usage(str(image_dir)).percent)
    except OSError as e:
        log_event(f"[metrics] Could not read disk usage of {image_dir}: {e}")


def record_provision_failure(step: str) -> None:
    VM_PROVISION_FAILURES_TOTAL.labels(step=step).inc()


def record_registration(results) -> None:
    """Summarize a registrar run from its RegistrationResult list."""
    REGISTRAR_VMS_SEEN.set(len(results))
    for source in ("capture", "lease"):
        REGISTRAR_RESOLVED.labels(source=source).set(
            sum(1 for r in results if r.source == source)
        )
    REGISTRAR_UNRESOLVED.set(sum(1 for r in results if not r.resolved))


def write_metrics(tool: str, directory: Optional[Path] = None, enabled: bool = METRICS_ENABLED) -> Optional[Path]:
    """
    Write the registry to <directory>/<tool>.prom when metrics are enabled.
    """
    if not enabled:
        return None

    LAST_RUN_TIMESTAMP.labels(tool=tool).set(time.time())
    directory = Path(directory) if directory else METRICS_TEXTFILE_DIR
    path = directory / f"{tool}.prom"
    try:
        directory.mkdir(parents=True, exist_ok=True)
        write_to_textfile(str(path), REGISTRY)
    except OSError as e:
        log_event(f"[metrics] Could not write {path}: {e}")
        return None

    log_event(f"[metrics] Wrote {path}")
    return path
