# tests/test_vm_schema.py
import pytest
from pydantic import ValidationError

from schemas.vm_schema import HostMapping, RegistrationResult, VMSpecSchema


class TestVMSpecSchema:
    def test_defaults_applied(self, base_image, pubkey_file):
        spec = VMSpecSchema(hostname="web-abcdefgh", base_image=base_image, pubkey_file=pubkey_file)

        assert spec.memory_mb == 512
        assert spec.vcpus == 1
        assert spec.storage_gb == 5
        assert spec.bridge == "virbr0"
        assert spec.mac is None

    def test_missing_image_rejected(self, tmp_path, pubkey_file):
        with pytest.raises(ValidationError):
            VMSpecSchema(
                hostname="web-abcdefgh",
                base_image=tmp_path / "missing.img",
                pubkey_file=pubkey_file,
            )

    def test_mac_is_validated_and_lowercased(self, base_image, pubkey_file):
        spec = VMSpecSchema(
            hostname="web-abcdefgh",
            base_image=base_image,
            pubkey_file=pubkey_file,
            mac="52:54:00:AB:CD:EF",
        )
        assert spec.mac == "52:54:00:ab:cd:ef"

        with pytest.raises(ValidationError):
            VMSpecSchema(
                hostname="web-abcdefgh",
                base_image=base_image,
                pubkey_file=pubkey_file,
                mac="52:54:00:zz",
            )

    def test_sizing_must_be_positive(self, base_image, pubkey_file):
        with pytest.raises(ValidationError):
            VMSpecSchema(hostname="web-abcdefgh", base_image=base_image, pubkey_file=pubkey_file, vcpus=0)

    def test_spec_is_frozen(self, base_image, pubkey_file):
        spec = VMSpecSchema(hostname="web-abcdefgh", base_image=base_image, pubkey_file=pubkey_file)
        with pytest.raises(ValidationError):
            spec.memory_mb = 4096


def test_host_mapping_line_carries_mac():
    mapping = HostMapping(name="web-abcdefgh", ip="192.168.122.45", mac="52:54:00:12:34:56")
    assert mapping.to_hosts_line() == "192.168.122.45\tweb-abcdefgh\t# 52:54:00:12:34:56"


def test_registration_result_resolved():
    assert RegistrationResult(name="a", ip="10.0.0.2", source="capture").resolved
    assert not RegistrationResult(name="a", mac="52:54:00:12:34:56").resolved
