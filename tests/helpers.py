# tests/helpers.py
import subprocess

SAMPLE_KEYS = (
    "# operator keys\n"
    "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIKeyOne alice@laptop\n"
    "\n"
    "ssh-rsa AAAAB3NzaC1yc2EAAAADAQABAAABAQKeyTwo bob@desk\n"
    "   \n"
    "#ssh-rsa AAAAdisabled old@box\n"
    "ecdsa-sha2-nistp256 AAAAE2VjZHNhKeyThree ci@runner\n"
)

EXPECTED_KEYS = [
    "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIKeyOne alice@laptop",
    "ssh-rsa AAAAB3NzaC1yc2EAAAADAQABAAABAQKeyTwo bob@desk",
    "ecdsa-sha2-nistp256 AAAAE2VjZHNhKeyThree ci@runner",
]


class FakeDomain:
    """Stands in for a libvirt virDomain."""

    def __init__(self, name, mac=None, leases=None):
        self._name = name
        self._mac = mac
        self._leases = leases or {}

    def name(self):
        return self._name

    def XMLDesc(self, flags=0):
        interface = ""
        if self._mac:
            interface = (
                "<interface type='bridge'>"
                f"<mac address='{self._mac}'/>"
                "<source bridge='virbr0'/>"
                "<target dev='vnet0'/>"
                "</interface>"
            )
        return f"<domain type='kvm'><name>{self._name}</name><devices>{interface}</devices></domain>"

    def interfaceAddresses(self, source, flags=0):
        return self._leases


def completed(cmd, stdout="", stderr="", returncode=0):
    return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)
