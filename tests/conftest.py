# tests/conftest.py
import os
import tempfile

# settings create the log directory at import time; keep it out of the tree
os.environ.setdefault("VM_TOOLS_LOG_DIR", tempfile.mkdtemp(prefix="vm-tools-log-"))

import pytest

from helpers import SAMPLE_KEYS


@pytest.fixture
def pubkey_file(tmp_path):
    """Key file mixing comments, blank lines and three real keys."""
    path = tmp_path / "id.pub"
    path.write_text(SAMPLE_KEYS)
    return path


@pytest.fixture
def base_image(tmp_path):
    path = tmp_path / "jammy-server-cloudimg-amd64.img"
    path.write_bytes(b"QFI\xfb")
    return path


@pytest.fixture
def image_dir(tmp_path):
    path = tmp_path / "images"
    path.mkdir()
    return path
