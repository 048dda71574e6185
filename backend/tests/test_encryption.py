"""
Tests for credential encryption.
"""
import pytest

from ispecia.services.encryption import EncryptionService, EncryptionError, TOKEN_PREFIX


class TestEncryptionService:

    def test_encrypt_decrypt(self):
        service = EncryptionService("unit-test-key")
        token = service.encrypt("s3cret-password")
        assert token.startswith(TOKEN_PREFIX)
        assert "s3cret-password" not in token
        assert service.decrypt(token) == "s3cret-password"

    def test_nonce_makes_ciphertext_unique(self):
        service = EncryptionService("unit-test-key")
        assert service.encrypt("same") != service.encrypt("same")

    def test_unicode(self):
        service = EncryptionService("unit-test-key")
        assert service.decrypt(service.encrypt("pässwörd ✓")) == "pässwörd ✓"

    def test_wrong_key_fails(self):
        token = EncryptionService("key-one").encrypt("value")
        with pytest.raises(EncryptionError):
            EncryptionService("key-two").decrypt(token)

    def test_tampered_token_fails(self):
        service = EncryptionService("unit-test-key")
        token = service.encrypt("value")
        tampered = token[:-2] + ("A" if token[-2] != "A" else "B") + token[-1]
        with pytest.raises(EncryptionError):
            service.decrypt(tampered)

    @pytest.mark.parametrize("token", ["", "v1:", "v1:abc", "v1:!!!not-base64!!!"])
    def test_garbage_fails(self, token):
        with pytest.raises(EncryptionError):
            EncryptionService("unit-test-key").decrypt(token)

    def test_encrypt_none_fails(self):
        with pytest.raises(EncryptionError):
            EncryptionService("unit-test-key").encrypt(None)
