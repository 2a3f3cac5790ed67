import xml.etree.ElementTree as ET
from pathlib import Path
from typing import List, Optional

import libvirt

from config.settings import (
    CAPTURE_BRIDGE,
    CAPTURE_TIMEOUT,
    HOSTS_FILE,
    LEASE_FALLBACK,
    LIBVIRT_URI,
    SSH_KEYSCAN_TIMEOUT,
    VM_SSH_KNOWN_HOSTS,
    VM_SSH_PORT,
)
from core.exceptions import HypervisorConnectionError
from core.hosts_file import update_hosts_file
from core.known_hosts import add_host_key, remove_host_key
from core.logger import log_event
from core.packet_capture import capture_source_ip
from schemas.vm_schema import HostMapping, RegistrationResult


def _libvirt_error_handler(ctx, error):
    """
    Keep libvirt from printing errors to stderr; they surface as
    libvirtError exceptions and get logged where they are handled.
    """
    pass


def _domain_name(domain) -> str:
    try:
        return domain.name()
    except libvirt.libvirtError:
        return "<unknown>"


def primary_mac(domain_xml: str) -> Optional[str]:
    """First interface MAC of a domain definition, lowercased."""
    root = ET.fromstring(domain_xml)
    ifaces = root.findall("./devices/interface/mac[@address]")
    if not ifaces:
        return None
    return ifaces[0].attrib["address"].lower()


class HostRegistrar:
    """
    Maps every running VM to its current IP in /etc/hosts and refreshes the
    SSH known-hosts store.

    VMs are handled one after the other; a VM whose address cannot be
    learned is reported and skipped, never aborting the run.
    """

    def __init__(
        self,
        uri: str = LIBVIRT_URI,
        capture_bridge: str = CAPTURE_BRIDGE,
        capture_timeout: int = CAPTURE_TIMEOUT,
        hosts_file: Path = HOSTS_FILE,
        known_hosts: Path = VM_SSH_KNOWN_HOSTS,
        ssh_port: int = VM_SSH_PORT,
        keyscan_timeout: int = SSH_KEYSCAN_TIMEOUT,
        lease_fallback: bool = LEASE_FALLBACK,
    ) -> None:
        libvirt.registerErrorHandler(_libvirt_error_handler, None)

        try:
            self.conn = libvirt.open(uri)
        except libvirt.libvirtError as e:
            raise HypervisorConnectionError(f"libvirt connection error ({uri}): {e}") from e
        if self.conn is None:
            raise HypervisorConnectionError(f"Failed to connect to hypervisor via libvirt URI: {uri}")
        log_event(f"[registrar] Connected to hypervisor via libvirt URI={uri}")

        self.capture_bridge = capture_bridge
        self.capture_timeout = capture_timeout
        self.hosts_file = Path(hosts_file)
        self.known_hosts = Path(known_hosts)
        self.ssh_port = ssh_port
        self.keyscan_timeout = keyscan_timeout
        self.lease_fallback = lease_fallback

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def list_running_domains(self) -> list:
        return self.conn.listAllDomains(libvirt.VIR_CONNECT_LIST_DOMAINS_ACTIVE)

    def _lease_ip(self, domain, mac: str) -> Optional[str]:
        try:
            ifaces = domain.interfaceAddresses(libvirt.VIR_DOMAIN_INTERFACE_ADDRESSES_SRC_LEASE, 0)
        except libvirt.libvirtError as e:
            log_event(f"[registrar] No DHCP lease data for {domain.name()}: {e}")
            return None

        for iface in (ifaces or {}).values():
            if (iface.get("hwaddr") or "").lower() != mac:
                continue
            for addr in iface.get("addrs") or []:
                if addr.get("type") == libvirt.VIR_IP_ADDR_TYPE_IPV4:
                    return addr.get("addr")
        return None

    def resolve_ip(self, domain, mac: str) -> tuple[Optional[str], Optional[str]]:
        """
        Return (ip, source) for `mac`, source being 'capture' or 'lease'.
        """
        ip = capture_source_ip(mac, interface=self.capture_bridge, timeout=self.capture_timeout)
        if ip:
            return ip, "capture"

        if self.lease_fallback:
            ip = self._lease_ip(domain, mac)
            if ip:
                log_event(f"[registrar] {domain.name()} resolved from DHCP lease: {ip}")
                return ip, "lease"

        return None, None

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    def register_domain(self, domain) -> RegistrationResult:
        name = domain.name()
        mac = primary_mac(domain.XMLDesc(0))
        if mac is None:
            log_event(f"[registrar] WARNING: {name} has no network interface, skipping")
            return RegistrationResult(name=name)

        ip, source = self.resolve_ip(domain, mac)

        remove_host_key(name, self.known_hosts)
        if ip is None:
            log_event(f"[registrar] WARNING: could not resolve IP of {name} ({mac}), hosts file left unchanged")
            return RegistrationResult(name=name, mac=mac)
        remove_host_key(ip, self.known_hosts)

        update_hosts_file(HostMapping(name=name, ip=ip, mac=mac), self.hosts_file)

        add_host_key(
            name,
            ip,
            known_hosts=self.known_hosts,
            port=self.ssh_port,
            timeout=self.keyscan_timeout,
        )

        return RegistrationResult(name=name, mac=mac, ip=ip, source=source)

    def register_all(self) -> List[RegistrationResult]:
        domains = self.list_running_domains()
        log_event(f"[registrar] Found {len(domains)} running VM(s)")

        results = []
        for domain in domains:
            try:
                results.append(self.register_domain(domain))
            except libvirt.libvirtError as e:
                # the VM may have been shut down or undefined since listing
                name = _domain_name(domain)
                log_event(f"[registrar] WARNING: libvirt error while registering {name}: {e}")
                results.append(RegistrationResult(name=name))

        resolved = sum(1 for r in results if r.resolved)
        log_event(f"[registrar] Registered {resolved}/{len(results)} VM(s)")
        return results

    def close(self) -> None:
        if self.conn:
            try:
                self.conn.close()
            except libvirt.libvirtError:
                pass
