# tests/test_cloud_init.py
import subprocess
from unittest.mock import patch

import pytest
import yaml

from core.cloud_init import (
    build_seed_iso,
    read_authorized_keys,
    render_meta_data,
    render_user_data,
    write_cloud_init_documents,
)
from core.exceptions import CloudInitError
from helpers import EXPECTED_KEYS, completed


class TestAuthorizedKeys:
    def test_skips_comments_and_blank_lines_in_order(self, pubkey_file):
        assert read_authorized_keys(pubkey_file) == EXPECTED_KEYS

    def test_unreadable_file_raises(self, tmp_path):
        with pytest.raises(CloudInitError):
            read_authorized_keys(tmp_path / "nope.pub")


class TestRenderDocuments:
    def test_meta_data_identity(self):
        meta = yaml.safe_load(render_meta_data("web-abcdefgh"))
        assert meta == {"instance-id": "web-abcdefgh", "local-hostname": "web-abcdefgh"}

    def test_user_data_one_entry_per_key(self):
        user_data = render_user_data(EXPECTED_KEYS, user="ops", password_hash="$6$x$y")

        assert user_data.startswith("#cloud-config\n")
        document = yaml.safe_load(user_data)
        assert document["ssh_pwauth"] is False

        account = document["users"][0]
        assert account["name"] == "ops"
        assert account["sudo"] == "ALL=(ALL) NOPASSWD:ALL"
        assert account["lock_passwd"] is True
        assert account["passwd"] == "$6$x$y"
        assert account["ssh_authorized_keys"] == EXPECTED_KEYS

        # one line per key
        for key in EXPECTED_KEYS:
            assert sum(1 for line in user_data.splitlines() if key in line) == 1

    def test_key_comments_with_yaml_syntax_survive(self):
        keys = [
            "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIKeyOne work laptop: alice",
            "ssh-rsa AAAAB3NzaC1yc2EAAAADAQABAAABAQKeyTwo bob #2",
            "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIKeyThree - {ci}: [runner]",
        ]

        account = yaml.safe_load(render_user_data(keys))["users"][0]

        assert account["ssh_authorized_keys"] == keys

    def test_user_data_without_keys(self):
        account = yaml.safe_load(render_user_data([]))["users"][0]
        assert account["ssh_authorized_keys"] == []

    def test_write_documents(self, tmp_path, pubkey_file):
        meta_path, user_path = write_cloud_init_documents(tmp_path, "web-abcdefgh", pubkey_file)

        assert meta_path == tmp_path / "meta-data"
        assert user_path == tmp_path / "user-data"
        assert yaml.safe_load(meta_path.read_text())["local-hostname"] == "web-abcdefgh"
        assert yaml.safe_load(user_path.read_text())["users"][0]["ssh_authorized_keys"] == EXPECTED_KEYS


class TestSeedIso:
    def test_genisoimage_invoked_in_vm_dir(self, tmp_path):
        with patch("core.cloud_init.subprocess.run") as mock_run:
            mock_run.return_value = completed([])
            iso = build_seed_iso(tmp_path, "web-abcdefgh")

        assert iso == tmp_path / "web-abcdefgh-cidata.iso"
        cmd = mock_run.call_args.args[0]
        assert cmd[0] == "genisoimage"
        assert cmd[cmd.index("-volid") + 1] == "cidata"
        assert cmd[-2:] == ["user-data", "meta-data"]
        assert mock_run.call_args.kwargs["cwd"] == str(tmp_path)
        assert mock_run.call_args.kwargs["check"] is True

    def test_genisoimage_failure(self, tmp_path):
        error = subprocess.CalledProcessError(1, ["genisoimage"], stderr="I/O error")
        with patch("core.cloud_init.subprocess.run", side_effect=error):
            with pytest.raises(CloudInitError, match="I/O error"):
                build_seed_iso(tmp_path, "web-abcdefgh")

    def test_genisoimage_missing(self, tmp_path):
        with patch("core.cloud_init.subprocess.run", side_effect=FileNotFoundError()):
            with pytest.raises(CloudInitError, match="not found"):
                build_seed_iso(tmp_path, "web-abcdefgh")
