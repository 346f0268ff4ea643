"""
Test configuration and fixtures for pytest.
"""

import pytest
import logging
import tempfile
import shutil
from pathlib import Path

from ecdh_files_cli.core import generate_nonce
from ecdh_files_cli.key_agreement import generate_key_pair
from ecdh_files_cli.logging_config import PACKAGE_LOGGER
from ecdh_files_cli.memory import SecureBuffer


@pytest.fixture
def temp_directory():
    """Create a temporary directory for testing."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def test_file(temp_directory):
    """Create a test file in temporary directory."""
    test_data = b"Hello, World! This is test data."
    file_path = Path(temp_directory) / "test_file.txt"

    with open(file_path, 'wb') as f:
        f.write(test_data)

    return file_path, test_data


@pytest.fixture
def test_files(temp_directory):
    """Create multiple test files in temporary directory."""
    test_files = []
    test_data = [b"Test data 1", b"Test data 2", b"Test data 3"]

    for i, data in enumerate(test_data):
        file_path = Path(temp_directory) / f"test_file_{i}.txt"
        with open(file_path, 'wb') as f:
            f.write(data)
        test_files.append((file_path, data))

    return test_files


@pytest.fixture
def symmetric_key():
    """A fixed 256-bit key."""
    return SecureBuffer(bytes(range(32)))


@pytest.fixture
def nonce():
    """A fresh 16-byte nonce."""
    return generate_nonce()


@pytest.fixture
def key_pairs():
    """Two independent key pairs, wiped after the test."""
    alice = generate_key_pair()
    bob = generate_key_pair()
    yield alice, bob
    alice.wipe()
    bob.wipe()


@pytest.fixture
def isolated_home(temp_directory, monkeypatch):
    """Keep configuration lookups away from the real home and cwd."""
    monkeypatch.setenv("HOME", temp_directory)
    monkeypatch.chdir(temp_directory)
    for name in ("KDF", "DIGEST_BUFFER_SIZE", "VERBOSE", "COLOR_OUTPUT", "LOG_LEVEL", "CONFIG_DIR"):
        monkeypatch.delenv(f"ECDH_FILES_CLI_{name}", raising=False)
    return temp_directory


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Drop handlers the CLI installs so they do not outlive captured streams."""
    yield
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
