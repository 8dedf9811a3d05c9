"""Tests for AES-256-GCM access token encryption."""

import base64
import os
import platform

import pytest

from src.errors import DecryptionFailedError
from src.services.credential_encryption import (
    decrypt_token,
    encrypt_token,
    get_key_source_info,
    load_key,
)


@pytest.fixture
def clean_env(monkeypatch):
    monkeypatch.delenv("SONA_ENCRYPTION_KEY", raising=False)
    monkeypatch.delenv("SONA_ENCRYPTION_KEY_FILE", raising=False)


class TestLoadKey:
    """Tests for key source precedence and validation."""

    def test_env_key(self, clean_env, monkeypatch):
        key = os.urandom(32)
        monkeypatch.setenv("SONA_ENCRYPTION_KEY", base64.b64encode(key).decode())
        assert load_key() == key
        assert get_key_source_info() == {"source": "env", "path": None}

    def test_env_key_wrong_length(self, clean_env, monkeypatch):
        monkeypatch.setenv("SONA_ENCRYPTION_KEY", base64.b64encode(b"short").decode())
        with pytest.raises(ValueError, match="invalid length 5"):
            load_key()

    def test_env_key_invalid_base64(self, clean_env, monkeypatch):
        monkeypatch.setenv("SONA_ENCRYPTION_KEY", "!!not-base64!!")
        with pytest.raises(ValueError, match="invalid base64"):
            load_key()

    def test_key_file(self, clean_env, monkeypatch, tmp_path):
        key = os.urandom(32)
        key_file = tmp_path / "token.key"
        key_file.write_bytes(key)
        monkeypatch.setenv("SONA_ENCRYPTION_KEY_FILE", str(key_file))
        assert load_key() == key
        assert get_key_source_info()["source"] == "env_file"

    def test_env_key_wins_over_file(self, clean_env, monkeypatch, tmp_path):
        env_key = os.urandom(32)
        key_file = tmp_path / "token.key"
        key_file.write_bytes(os.urandom(32))
        monkeypatch.setenv("SONA_ENCRYPTION_KEY", base64.b64encode(env_key).decode())
        monkeypatch.setenv("SONA_ENCRYPTION_KEY_FILE", str(key_file))
        assert load_key() == env_key

    def test_missing_key_file(self, clean_env, monkeypatch, tmp_path):
        monkeypatch.setenv("SONA_ENCRYPTION_KEY_FILE", str(tmp_path / "absent.key"))
        with pytest.raises(ValueError, match="does not exist"):
            load_key()

    @pytest.mark.skipif(platform.system() == "Windows", reason="Unix symlinks")
    def test_symlinked_key_file_rejected(self, clean_env, monkeypatch, tmp_path):
        """Symlinked key files are refused."""
        target = tmp_path / "real.key"
        target.write_bytes(os.urandom(32))
        link = tmp_path / "link.key"
        link.symlink_to(target)
        monkeypatch.setenv("SONA_ENCRYPTION_KEY_FILE", str(link))
        with pytest.raises(ValueError, match="symlink"):
            load_key()

    def test_no_key_configured(self, clean_env):
        assert get_key_source_info() == {"source": None, "path": None}
        with pytest.raises(ValueError, match="No encryption key configured"):
            load_key()


class TestEncryptDecrypt:
    """Tests for token encryption."""

    def test_round_trip(self):
        key = os.urandom(32)
        assert decrypt_token(encrypt_token("shpat_abc", key), key) == "shpat_abc"

    def test_nonce_is_random(self):
        key = os.urandom(32)
        assert encrypt_token("shpat_abc", key) != encrypt_token("shpat_abc", key)

    def test_layout_is_nonce_ciphertext_tag(self):
        """Ciphertext is base64(nonce[12] || ciphertext || tag[16])."""
        key = os.urandom(32)
        raw = base64.b64decode(encrypt_token("abcd", key))
        assert len(raw) == 12 + 4 + 16

    def test_encrypt_rejects_short_key(self):
        with pytest.raises(ValueError, match="exactly 32 bytes"):
            encrypt_token("x", os.urandom(16))

    def test_wrong_key_fails(self):
        encrypted = encrypt_token("shpat_abc", os.urandom(32))
        with pytest.raises(DecryptionFailedError, match="InvalidTag"):
            decrypt_token(encrypted, os.urandom(32))

    def test_tampered_ciphertext_fails(self):
        key = os.urandom(32)
        raw = bytearray(base64.b64decode(encrypt_token("shpat_abc", key)))
        raw[-1] ^= 0x01
        with pytest.raises(DecryptionFailedError):
            decrypt_token(base64.b64encode(bytes(raw)).decode(), key)

    def test_malformed_payloads(self):
        key = os.urandom(32)
        with pytest.raises(DecryptionFailedError, match="not valid base64"):
            decrypt_token("%%%", key)
        with pytest.raises(DecryptionFailedError, match="too short"):
            decrypt_token(base64.b64encode(b"tiny").decode(), key)

    def test_decrypt_rejects_wrong_key_length(self):
        with pytest.raises(DecryptionFailedError):
            decrypt_token("AAAA", os.urandom(31))
