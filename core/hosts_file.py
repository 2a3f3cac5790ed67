from pathlib import Path
from typing import List

from config.settings import HOSTS_FILE
from core.logger import log_event
from schemas.vm_schema import HostMapping


def _mentions(line: str, name: str) -> bool:
    return name in line.split()


def replace_host_entry(lines: List[str], mapping: HostMapping) -> List[str]:
    """
    Drop every line naming mapping.name and append the fresh entry.
    """
    kept = [line for line in lines if not _mentions(line, mapping.name)]
    kept.append(mapping.to_hosts_line())
    return kept


def update_hosts_file(mapping: HostMapping, hosts_file: Path = HOSTS_FILE) -> None:
    """
    Rewrite hosts_file in place so it holds exactly one line for mapping.name.

    The file is rewritten rather than replaced because /etc/hosts is often
    a bind mount. The new content is built before the file is truncated,
    and bytes that are not UTF-8 are written back unchanged. No locking is done.
    """
    hosts_file = Path(hosts_file)
    lines = []
    if hosts_file.exists():
        lines = hosts_file.read_text(encoding="utf-8", errors="surrogateescape").splitlines()

    removed = sum(1 for line in lines if _mentions(line, mapping.name))
    content = "\n".join(replace_host_entry(lines, mapping)) + "\n"

    with open(hosts_file, "w", encoding="utf-8", errors="surrogateescape") as f:
        f.write(content)

    log_event(
        f"[hosts] {hosts_file}: {mapping.ip} -> {mapping.name} ({mapping.mac}), "
        f"replaced {removed} old line(s)"
    )
