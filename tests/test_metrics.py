# tests/test_metrics.py
from core.metrics import record_registration, record_vm_provisioned, write_metrics
from schemas.vm_schema import RegistrationResult


def test_disabled_writes_nothing(tmp_path):
    assert write_metrics("vm-provision", directory=tmp_path, enabled=False) is None
    assert list(tmp_path.iterdir()) == []


def test_registration_textfile(tmp_path):
    record_registration([
        RegistrationResult(name="a", mac="52:54:00:00:00:01", ip="10.0.0.2", source="capture"),
        RegistrationResult(name="b", mac="52:54:00:00:00:02", ip="10.0.0.3", source="lease"),
        RegistrationResult(name="c", mac="52:54:00:00:00:03"),
    ])

    path = write_metrics("vm-register-hosts", directory=tmp_path, enabled=True)

    content = path.read_text()
    assert path == tmp_path / "vm-register-hosts.prom"
    assert "vm_tools_registrar_vms_seen 3.0" in content
    assert 'vm_tools_registrar_resolved{source="capture"} 1.0' in content
    assert 'vm_tools_registrar_resolved{source="lease"} 1.0' in content
    assert "vm_tools_registrar_unresolved 1.0" in content
    assert 'vm_tools_last_run_timestamp{tool="vm-register-hosts"}' in content


def test_provisioned_counter(tmp_path):
    record_vm_provisioned("br-test", tmp_path)

    content = write_metrics("vm-provision", directory=tmp_path, enabled=True).read_text()
    assert 'vm_tools_provisioned_total{bridge="br-test"} 1.0' in content
    assert "vm_tools_image_dir_disk_usage_percent" in content
