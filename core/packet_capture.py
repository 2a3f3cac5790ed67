import ipaddress
import re
import subprocess
from typing import Optional

from config.settings import CAPTURE_BRIDGE, CAPTURE_TIMEOUT
from core.logger import log_event

# 12:00:01.000001 IP 192.168.122.45.22 > 192.168.122.1.51234: Flags [P.], ...
_IP_SOURCE = re.compile(r"\bIP\s+(?P<src>[0-9.]+)\s+>")
# 12:00:01.000001 ARP, Request who-has 192.168.122.1 tell 192.168.122.45, length 28
_ARP_REQUEST = re.compile(r"\bARP,\s+Request\b.*\btell\s+(?P<src>[0-9.]+)")
# 12:00:01.000001 ARP, Reply 192.168.122.45 is-at 52:54:00:12:34:56, length 28
_ARP_REPLY = re.compile(r"\bARP,\s+Reply\s+(?P<src>[0-9.]+)\s+is-at\b")


def _usable_ipv4(candidate: str) -> Optional[str]:
    try:
        address = ipaddress.IPv4Address(candidate)
    except ValueError:
        return None
    if address.is_unspecified or address.is_multicast or address == ipaddress.IPv4Address("255.255.255.255"):
        return None
    return str(address)


def parse_source_ip(summary_line: str) -> Optional[str]:
    """
    Extract the sender IPv4 address from one tcpdump summary line.

    tcpdump prints transport endpoints as 'a.b.c.d.port'; the trailing port
    octet is dropped. Returns None for IPv6, non-IP frames and unusable
    sources such as 0.0.0.0 (DHCPDISCOVER).
    """
    match = _IP_SOURCE.search(summary_line)
    if match:
        return _usable_ipv4(".".join(match.group("src").split(".")[:4]))

    for pattern in (_ARP_REQUEST, _ARP_REPLY):
        match = pattern.search(summary_line)
        if match:
            return _usable_ipv4(match.group("src"))

    return None


def build_capture_command(mac: str, interface: str = CAPTURE_BRIDGE) -> list[str]:
    return [
        "tcpdump",
        "-l",
        "-n",
        "-c",
        "1",
        "-i",
        interface,
        "ether",
        "src",
        mac,
    ]


def capture_source_ip(
    mac: str,
    interface: str = CAPTURE_BRIDGE,
    timeout: int = CAPTURE_TIMEOUT,
) -> Optional[str]:
    """
    Sniff one frame sent by `mac` on `interface` and return its source IP.

    Waits at most `timeout` seconds. A VM that stays silent for that long,
    or a tcpdump failure, yields None rather than an exception.
    """
    cmd = build_capture_command(mac, interface)
    log_event(f"[capture] Waiting up to {timeout}s for a frame from {mac}: {' '.join(cmd)}")

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired:
        log_event(f"[capture] WARNING: no frame from {mac} on {interface} within {timeout}s")
        return None
    except FileNotFoundError:
        log_event("[capture] WARNING: tcpdump command not found")
        return None

    if result.returncode != 0:
        err = (result.stderr or "").strip() or f"exit code {result.returncode}"
        log_event(f"[capture] WARNING: tcpdump failed for {mac}: {err}")
        return None

    lines = [line for line in result.stdout.splitlines() if line.strip()]
    if not lines:
        log_event(f"[capture] WARNING: tcpdump returned no frame for {mac}")
        return None

    ip = parse_source_ip(lines[0])
    log_event(f"[capture] {mac} -> {ip or 'unresolved'} ({lines[0].strip()})")
    return ip
