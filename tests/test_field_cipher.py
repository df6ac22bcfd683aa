"""Tests for field-level encryption: FieldCipher, parse_field, is_encrypted.

Covers: round-trip (including empty string), idempotent encryption,
plaintext pass-through, storage format, tamper detection on every byte of
the ciphertext and auth tag, key isolation, malformed values.
"""

import base64
import string

import pytest

from mail_manager.vault import (
    FORMAT_TAG,
    AuthenticationFailed,
    EncryptedValue,
    FieldCipher,
    KeyManager,
    MalformedCiphertext,
    PlainValue,
    is_encrypted,
    parse_field,
)
from mail_manager.config import VaultConfig
from mail_manager.vault.encryption import AUTH_TAG_LENGTH, NONCE_LENGTH


def _components(value):
    return value[len(FORMAT_TAG):].split(":")


def _flip(value, component, index):
    """Flip one bit of byte ``index`` in component 1 (tag) or 2 (ciphertext)."""
    parts = _components(value)
    raw = bytearray(base64.b64decode(parts[component]))
    raw[index] ^= 0x01
    parts[component] = base64.b64encode(bytes(raw)).decode("ascii")
    return FORMAT_TAG + ":".join(parts)


# ── Round-trip ──────────────────────────────────────────────────────


class TestRoundTrip:
    @pytest.mark.parametrize("plaintext", [
        "",
        "Secret1",
        "app password with spaces",
        "ünïcødé-пароль-密码",
        "colons:in:the:value",
        "x" * 4096,
    ])
    def test_decrypt_inverts_encrypt(self, cipher, plaintext):
        assert cipher.decrypt_field(cipher.encrypt_field(plaintext)) == plaintext

    def test_empty_string_is_not_encrypted(self, cipher):
        assert cipher.encrypt_field("") == ""
        assert cipher.decrypt_field("") == ""

    def test_fresh_nonce_per_encryption(self, cipher):
        first = cipher.encrypt_field("same secret")
        second = cipher.encrypt_field("same secret")
        assert first != second
        assert _components(first)[0] != _components(second)[0]


# ── Format & idempotence ────────────────────────────────────────────


class TestFormat:
    def test_output_is_tagged(self, cipher):
        value = cipher.encrypt_field("Secret1")
        assert value.startswith("enc:local:")
        assert is_encrypted(value)

    def test_component_sizes(self, cipher):
        nonce, tag, ciphertext = _components(cipher.encrypt_field("Secret1"))
        assert len(base64.b64decode(nonce)) == NONCE_LENGTH == 16
        assert len(base64.b64decode(tag)) == AUTH_TAG_LENGTH == 16
        # GCM is a stream mode: ciphertext length == plaintext length
        assert len(base64.b64decode(ciphertext)) == len("Secret1")

    def test_encrypting_encrypted_value_is_noop(self, cipher):
        once = cipher.encrypt_field("Secret1")
        assert cipher.encrypt_field(once) == once

    def test_decrypting_plaintext_is_noop(self, cipher):
        assert cipher.decrypt_field("not encrypted") == "not encrypted"

    def test_is_encrypted_requires_exact_tag(self):
        assert not is_encrypted("enc:remote:abc:def:ghi")
        assert not is_encrypted("ENC:LOCAL:abc:def:ghi")
        assert not is_encrypted(" enc:local:abc:def:ghi")
        assert not is_encrypted("")
        assert not is_encrypted(None)
        assert is_encrypted("enc:local:")

    def test_parse_field_plain(self):
        assert parse_field("hunter2") == PlainValue("hunter2")

    def test_parse_field_encrypted(self, cipher):
        parsed = parse_field(cipher.encrypt_field("hunter2"))
        assert isinstance(parsed, EncryptedValue)
        assert len(parsed.nonce) == NONCE_LENGTH
        assert parsed.encode().startswith(FORMAT_TAG)

    def test_encode_parse_is_stable(self, cipher):
        value = cipher.encrypt_field("hunter2")
        assert parse_field(value).encode() == value


# ── Tamper detection ────────────────────────────────────────────────


class TestTamperDetection:
    def test_every_ciphertext_byte(self, cipher):
        value = cipher.encrypt_field("Secret1")
        length = len(base64.b64decode(_components(value)[2]))
        for index in range(length):
            with pytest.raises(AuthenticationFailed):
                cipher.decrypt_field(_flip(value, 2, index))

    def test_every_tag_byte(self, cipher):
        value = cipher.encrypt_field("Secret1")
        for index in range(AUTH_TAG_LENGTH):
            with pytest.raises(AuthenticationFailed):
                cipher.decrypt_field(_flip(value, 1, index))

    def test_nonce_byte(self, cipher):
        value = cipher.encrypt_field("Secret1")
        parts = _components(value)
        raw = bytearray(base64.b64decode(parts[0]))
        raw[0] ^= 0xFF
        parts[0] = base64.b64encode(bytes(raw)).decode("ascii")
        with pytest.raises(AuthenticationFailed):
            cipher.decrypt_field(FORMAT_TAG + ":".join(parts))

    def test_swapped_ciphertexts(self, cipher):
        a = _components(cipher.encrypt_field("aaaaaaa"))
        b = _components(cipher.encrypt_field("bbbbbbb"))
        frankenstein = FORMAT_TAG + ":".join([a[0], a[1], b[2]])
        with pytest.raises(AuthenticationFailed):
            cipher.decrypt_field(frankenstein)


class TestKeyIsolation:
    def test_other_key_cannot_decrypt(self, master_key, other_key):
        value = FieldCipher(master_key).encrypt_field("Secret1")
        with pytest.raises(AuthenticationFailed):
            FieldCipher(other_key).decrypt_field(value)

    def test_from_key_manager(self, tmp_path, master_key):
        config = VaultConfig(config_dir=tmp_path / "vault", master_secret="test-master-secret")
        cipher = FieldCipher.from_key_manager(KeyManager(config))
        value = cipher.encrypt_field("Secret1")
        assert FieldCipher(master_key).decrypt_field(value) == "Secret1"

    def test_rejects_wrong_key_length(self):
        with pytest.raises(ValueError):
            FieldCipher(b"too short")


# ── Malformed values ────────────────────────────────────────────────


class TestMalformed:
    @pytest.mark.parametrize("value", [
        "enc:local:",
        "enc:local:onlyone",
        "enc:local:one:two",
        "enc:local:a:b:c:d",
    ])
    def test_wrong_component_count(self, cipher, value):
        with pytest.raises(MalformedCiphertext):
            cipher.decrypt_field(value)

    def test_invalid_base64(self, cipher):
        nonce, tag, _ = _components(cipher.encrypt_field("Secret1"))
        with pytest.raises(MalformedCiphertext):
            cipher.decrypt_field(FORMAT_TAG + ":".join([nonce, tag, "!!not base64!!"]))

    def test_non_canonical_base64_rejected(self, cipher):
        nonce, tag, ciphertext = _components(cipher.encrypt_field("Secret1"))
        # A 16-byte tag encodes with "==" padding; the low bits of the last
        # data character are unused, so flipping one decodes to the same bytes
        alphabet = string.ascii_uppercase + string.ascii_lowercase + string.digits + "+/"
        assert tag.endswith("==")
        stray = alphabet[alphabet.index(tag[-3]) ^ 0x01]
        edited = tag[:-3] + stray + "=="
        assert base64.b64decode(edited) == base64.b64decode(tag)

        with pytest.raises(MalformedCiphertext):
            cipher.decrypt_field(FORMAT_TAG + ":".join([nonce, edited, ciphertext]))

    def test_wrong_nonce_length(self, cipher):
        _, tag, ciphertext = _components(cipher.encrypt_field("Secret1"))
        short_nonce = base64.b64encode(b"12345678").decode("ascii")
        with pytest.raises(MalformedCiphertext):
            cipher.decrypt_field(FORMAT_TAG + ":".join([short_nonce, tag, ciphertext]))

    def test_truncated_tag(self, cipher):
        nonce, tag, ciphertext = _components(cipher.encrypt_field("Secret1"))
        short_tag = base64.b64encode(base64.b64decode(tag)[:8]).decode("ascii")
        with pytest.raises(MalformedCiphertext):
            cipher.decrypt_field(FORMAT_TAG + ":".join([nonce, short_tag, ciphertext]))

    def test_encrypting_malformed_tagged_value_fails(self, cipher):
        with pytest.raises(MalformedCiphertext):
            cipher.encrypt_field("enc:local:garbage")
