"""
Test suite for key agreement, key derivation and secure buffers.
"""

import pytest
import os
import stat
import sys

from Crypto.Hash import SHA256
from Crypto.Protocol.KDF import HKDF

from ecdh_files_cli.key_agreement import (
    AgreementFailed,
    InvalidKeyMaterial,
    KeyAgreementError,
    PRIVATE_KEY_LENGTH,
    PUBLIC_KEY_LENGTH,
    SHARED_SECRET_LENGTH,
    agree,
    generate_key_pair,
    load_key_pair,
    public_key_from_private,
    read_key_file,
    save_key_pair,
    write_key_file,
)
from ecdh_files_cli.key_derivation import (
    EmptySecret,
    HkdfSha256KeyDeriver,
    KeyDerivationError,
    SYMMETRIC_KEY_LENGTH,
    Sha256KeyDeriver,
    derive_key,
    get_key_deriver,
    list_key_derivers,
)
from ecdh_files_cli.memory import SecureBuffer, SecureBufferError, secure_compare, wipe_memory


class TestKeyAgreement:
    """Test P-256 ECDH."""

    def test_key_pair_lengths(self, key_pairs):
        alice, _ = key_pairs
        assert len(alice.public_key) == PUBLIC_KEY_LENGTH == 65
        assert alice.public_key[0] == 0x04
        assert len(alice.private_key) == PRIVATE_KEY_LENGTH == 32

    def test_key_pairs_are_distinct(self, key_pairs):
        alice, bob = key_pairs
        assert alice.public_key != bob.public_key
        assert alice.private_key != bob.private_key

    def test_agreement_is_symmetric(self, key_pairs):
        alice, bob = key_pairs

        with agree(alice.private_key, bob.public_key) as s1, agree(bob.private_key, alice.public_key) as s2:
            assert len(s1) == SHARED_SECRET_LENGTH
            assert s1 == s2

    def test_agreement_with_third_party_differs(self, key_pairs):
        alice, bob = key_pairs
        with generate_key_pair() as carol:
            with agree(alice.private_key, bob.public_key) as s1, agree(carol.private_key, bob.public_key) as s2:
                assert s1 != s2

    def test_public_key_from_private(self, key_pairs):
        alice, _ = key_pairs
        assert public_key_from_private(alice.private_key) == alice.public_key

    def test_empty_keys_rejected(self, key_pairs):
        alice, bob = key_pairs

        with pytest.raises(InvalidKeyMaterial):
            agree(b"", bob.public_key)
        with pytest.raises(InvalidKeyMaterial):
            agree(alice.private_key, b"")

    def test_wrong_length_keys_rejected(self, key_pairs):
        alice, bob = key_pairs

        with pytest.raises(InvalidKeyMaterial):
            agree(bytes(alice.private_key.view())[:31], bob.public_key)
        with pytest.raises(InvalidKeyMaterial):
            agree(alice.private_key, bob.public_key[:33])
        with pytest.raises(InvalidKeyMaterial):
            agree(alice.private_key, bob.public_key + b"\x00")

    def test_out_of_range_private_key_rejected(self, key_pairs):
        _, bob = key_pairs

        with pytest.raises(InvalidKeyMaterial):
            agree(b"\x00" * 32, bob.public_key)
        with pytest.raises(InvalidKeyMaterial):
            agree(b"\xff" * 32, bob.public_key)

    def test_bad_point_prefix_rejected(self, key_pairs):
        alice, bob = key_pairs
        tampered = b"\x02" + bob.public_key[1:]

        with pytest.raises(AgreementFailed):
            agree(alice.private_key, tampered)

    def test_off_curve_point_rejected(self, key_pairs):
        alice, bob = key_pairs
        tampered = bytearray(bob.public_key)
        tampered[-1] ^= 0x01

        with pytest.raises(AgreementFailed):
            agree(alice.private_key, bytes(tampered))

    def test_zero_point_rejected(self, key_pairs):
        alice, _ = key_pairs

        with pytest.raises(AgreementFailed):
            agree(alice.private_key, b"\x04" + b"\x00" * 64)

    def test_errors_share_a_base_class(self):
        assert issubclass(InvalidKeyMaterial, KeyAgreementError)
        assert issubclass(AgreementFailed, KeyAgreementError)

    def test_key_pair_wiped_on_exit(self):
        with generate_key_pair() as key_pair:
            private_key = key_pair.private_key
            assert len(private_key) == 32

        assert private_key.wiped
        assert len(private_key) == 0


class TestKeyFiles:
    """Test raw key file storage."""

    def test_save_and_load_key_pair(self, temp_directory, key_pairs):
        alice, _ = key_pairs
        prefix = os.path.join(temp_directory, "alice")

        public_path, private_path = save_key_pair(alice, prefix)
        assert public_path == prefix + ".pub"
        assert private_path == prefix + ".priv"
        assert os.path.getsize(public_path) == 65
        assert os.path.getsize(private_path) == 32

        with load_key_pair(prefix) as loaded:
            assert loaded.public_key == alice.public_key
            assert loaded.private_key == alice.private_key

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_private_key_file_permissions(self, temp_directory, key_pairs):
        alice, _ = key_pairs
        _, private_path = save_key_pair(alice, os.path.join(temp_directory, "alice"))

        assert stat.S_IMODE(os.stat(private_path).st_mode) == 0o600

    def test_existing_key_files_not_overwritten(self, temp_directory, key_pairs):
        alice, bob = key_pairs
        prefix = os.path.join(temp_directory, "alice")
        save_key_pair(alice, prefix)

        with pytest.raises(KeyAgreementError):
            save_key_pair(bob, prefix)

        save_key_pair(bob, prefix, overwrite=True)
        with read_key_file(prefix + ".pub") as public_key:
            assert public_key == bob.public_key

    def test_mismatched_key_pair_rejected(self, temp_directory, key_pairs):
        alice, bob = key_pairs
        prefix = os.path.join(temp_directory, "mixed")
        write_key_file(prefix + ".priv", alice.private_key, private=True)
        write_key_file(prefix + ".pub", bob.public_key)

        with pytest.raises(InvalidKeyMaterial):
            load_key_pair(prefix)

    def test_missing_key_file(self, temp_directory):
        with pytest.raises(KeyAgreementError):
            read_key_file(os.path.join(temp_directory, "missing.priv"))


class TestKeyDerivation:
    """Test symmetric key derivation."""

    def test_default_is_single_sha256_pass(self):
        secret = b"\x11" * 32

        with derive_key(secret) as key:
            assert len(key) == SYMMETRIC_KEY_LENGTH == 32
            assert key == SHA256.new(data=secret).digest()

    def test_deterministic(self):
        with derive_key(b"shared") as k1, derive_key(SecureBuffer(b"shared")) as k2:
            assert k1 == k2

    def test_different_secrets_give_different_keys(self):
        with derive_key(b"secret one") as k1, derive_key(b"secret two") as k2:
            assert k1 != k2

    def test_empty_secret_rejected(self):
        with pytest.raises(EmptySecret):
            derive_key(b"")
        with pytest.raises(EmptySecret):
            derive_key(SecureBuffer())

    def test_hkdf_deriver(self):
        secret = b"\x22" * 32
        deriver = get_key_deriver("hkdf-sha256")
        assert isinstance(deriver, HkdfSha256KeyDeriver)

        with derive_key(secret, deriver) as hkdf_key, derive_key(secret) as sha_key:
            assert len(hkdf_key) == 32
            assert hkdf_key != sha_key

    def test_hkdf_reads_secure_buffer_in_place(self):
        secret = SecureBuffer(b"\x44" * 32)
        deriver = HkdfSha256KeyDeriver(salt=b"s" * 16)
        expected = HKDF(b"\x44" * 32, 32, b"s" * 16, SHA256, context=deriver.context)

        with derive_key(secret, deriver) as key:
            assert key == expected
            assert secret == b"\x44" * 32

        assert key.wiped
        assert secret == b"\x44" * 32

    def test_hkdf_salt_changes_key(self):
        secret = b"\x33" * 32
        with derive_key(secret, HkdfSha256KeyDeriver(salt=b"a" * 16)) as k1, \
                derive_key(secret, HkdfSha256KeyDeriver(salt=b"b" * 16)) as k2:
            assert k1 != k2

    def test_deriver_registry(self):
        assert list_key_derivers() == ["hkdf-sha256", "sha256"]
        assert isinstance(get_key_deriver(), Sha256KeyDeriver)
        assert isinstance(get_key_deriver("SHA256"), Sha256KeyDeriver)

        with pytest.raises(KeyDerivationError):
            get_key_deriver("md5")

    def test_agreed_secret_derives_same_key(self, key_pairs):
        alice, bob = key_pairs

        with agree(alice.private_key, bob.public_key) as s1, agree(bob.private_key, alice.public_key) as s2:
            with derive_key(s1) as k1, derive_key(s2) as k2:
                assert k1 == k2


class TestSecureBuffer:
    """Test scoped secret buffers."""

    def test_wipe_memory(self):
        data = bytearray(b"secret")
        wipe_memory(data)
        assert data == bytearray(6)

    def test_wipe_on_exit(self):
        with SecureBuffer(b"secret") as buffer:
            assert bytes(buffer.view()) == b"secret"

        assert buffer.wiped
        assert len(buffer) == 0
        assert not buffer

    def test_wipe_on_exception(self):
        backing = bytearray(b"secret")

        with pytest.raises(RuntimeError):
            with SecureBuffer.adopt(backing):
                raise RuntimeError("boom")

        assert backing == bytearray(6)

    def test_adopt_does_not_copy(self):
        backing = bytearray(b"secret")
        buffer = SecureBuffer.adopt(backing)
        buffer.wipe()

        assert backing == bytearray(6)

    def test_view_is_read_only(self):
        buffer = SecureBuffer(b"secret")
        view = buffer.view()

        assert view.readonly
        with pytest.raises(TypeError):
            view[0] = 0
        view.release()
        buffer.wipe()

    def test_view_after_wipe(self):
        buffer = SecureBuffer(b"secret")
        buffer.wipe()
        buffer.wipe()

        with pytest.raises(SecureBufferError):
            buffer.view()

    def test_equality(self):
        assert SecureBuffer(b"abc") == SecureBuffer(b"abc")
        assert SecureBuffer(b"abc") == b"abc"
        assert SecureBuffer(b"abc") != b"abd"
        assert SecureBuffer(b"abc") != b"abcd"

    def test_repr_hides_contents(self):
        buffer = SecureBuffer(b"topsecret")
        assert "topsecret" not in repr(buffer)
        assert "9 bytes" in repr(buffer)

    def test_secure_compare(self):
        assert secure_compare(b"same", b"same")
        assert not secure_compare(b"same", b"diff")


if __name__ == "__main__":
    pytest.main([__file__])
