#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Tests for master key management and key derivation"""

import hashlib
import threading
from binascii import unhexlify

import pytest

from token_crypto import (
    MASTER_KEY_ENV_VAR,
    KEY_SIZE_BYTES,
    SALT_SIZE_BYTES,
    NONCE_SIZE_BYTES,
    PBKDF2_COUNT,
    ErrorKind,
    TokenCryptoConfigError,
    load_master_key,
    clear_master_key_cache,
    master_key_from_hex,
    derive_key,
    generate_salt,
    generate_nonce,
    generate_encryption_key,
    validate_encryption_key,
  )

from .conftest import ZERO_KEY_HEX, OTHER_KEY_HEX


# ===========================================================================
# Key format validation
# ===========================================================================

class TestValidateEncryptionKey:
  def test_accepts_lowercase_hex(self):
    assert validate_encryption_key('0123456789abcdef' * 4)

  def test_accepts_uppercase_and_mixed_case_hex(self):
    assert validate_encryption_key('0123456789ABCDEF' * 4)
    assert validate_encryption_key('aBcDeF01' * 8)

  @pytest.mark.parametrize('length', [0, 1, 32, 63, 65, 128])
  def test_rejects_wrong_length(self, length):
    assert not validate_encryption_key('a' * length)

  def test_rejects_non_hex_characters(self):
    assert not validate_encryption_key('g' + 'a' * 63)
    assert not validate_encryption_key('a' * 63 + ' ')
    assert not validate_encryption_key('0x' + 'a' * 62)

  def test_rejects_trailing_newline(self):
    assert not validate_encryption_key('a' * 64 + '\n')
    assert not validate_encryption_key('a' * 63 + '\n')

  def test_rejects_non_strings(self):
    assert not validate_encryption_key(None)
    assert not validate_encryption_key(b'a' * 64)


class TestGenerateEncryptionKey:
  def test_generated_key_is_valid(self):
    key = generate_encryption_key()
    assert len(key) == 64
    assert key == key.lower()
    assert validate_encryption_key(key)

  def test_generated_keys_differ(self):
    assert generate_encryption_key() != generate_encryption_key()


# ===========================================================================
# Master key loading
# ===========================================================================

class TestMasterKeyFromHex:
  def test_decodes_to_32_bytes(self):
    key = master_key_from_hex(OTHER_KEY_HEX)
    assert key == b'\xa1' * KEY_SIZE_BYTES

  def test_missing_key(self):
    with pytest.raises(TokenCryptoConfigError) as exc_info:
      master_key_from_hex(None)
    assert MASTER_KEY_ENV_VAR in str(exc_info.value)
    assert exc_info.value.kind is ErrorKind.CONFIG

  def test_empty_key(self):
    with pytest.raises(TokenCryptoConfigError):
      master_key_from_hex('')

  def test_malformed_key(self):
    with pytest.raises(TokenCryptoConfigError):
      master_key_from_hex('z' * 64)
    with pytest.raises(TokenCryptoConfigError):
      master_key_from_hex('ab' * 16)

  def test_source_appears_in_message(self):
    with pytest.raises(TokenCryptoConfigError, match='my-config.yaml'):
      master_key_from_hex('nope', source='my-config.yaml')


class TestLoadMasterKey:
  def test_loads_from_environment(self):
    assert load_master_key() == bytes(KEY_SIZE_BYTES)

  def test_missing_environment_value(self, monkeypatch):
    monkeypatch.delenv(MASTER_KEY_ENV_VAR)
    with pytest.raises(TokenCryptoConfigError):
      load_master_key()

  def test_malformed_environment_value(self, monkeypatch):
    monkeypatch.setenv(MASTER_KEY_ENV_VAR, 'not-a-key')
    with pytest.raises(TokenCryptoConfigError):
      load_master_key()

  def test_failure_is_not_cached(self, monkeypatch):
    monkeypatch.setenv(MASTER_KEY_ENV_VAR, 'not-a-key')
    with pytest.raises(TokenCryptoConfigError):
      load_master_key()
    monkeypatch.setenv(MASTER_KEY_ENV_VAR, OTHER_KEY_HEX)
    assert load_master_key() == unhexlify(OTHER_KEY_HEX)

  def test_result_is_memoized(self, monkeypatch):
    first = load_master_key()
    monkeypatch.setenv(MASTER_KEY_ENV_VAR, OTHER_KEY_HEX)
    assert load_master_key() is first

  def test_clear_cache_rereads_environment(self, monkeypatch):
    load_master_key()
    monkeypatch.setenv(MASTER_KEY_ENV_VAR, OTHER_KEY_HEX)
    clear_master_key_cache()
    assert load_master_key() == unhexlify(OTHER_KEY_HEX)

  def test_explicit_environ_mapping(self):
    clear_master_key_cache()
    assert load_master_key({MASTER_KEY_ENV_VAR: OTHER_KEY_HEX}) == unhexlify(OTHER_KEY_HEX)

  def test_concurrent_first_load_yields_single_value(self):
    results = []
    barrier = threading.Barrier(8)

    def worker():
      barrier.wait()
      results.append(load_master_key())

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
      t.start()
    for t in threads:
      t.join()
    assert len(results) == 8
    assert all(r is results[0] for r in results)


# ===========================================================================
# Key derivation
# ===========================================================================

class TestDeriveKey:
  def test_matches_hashlib_pbkdf2_sha512(self):
    master_key = unhexlify(ZERO_KEY_HEX)
    salt = bytes(range(SALT_SIZE_BYTES))
    expected = hashlib.pbkdf2_hmac('sha512', master_key, salt, PBKDF2_COUNT, KEY_SIZE_BYTES)
    assert derive_key(master_key, salt) == expected

  def test_deterministic(self):
    master_key = unhexlify(OTHER_KEY_HEX)
    salt = generate_salt()
    assert derive_key(master_key, salt, pbkdf2_count=1000) == derive_key(master_key, salt, pbkdf2_count=1000)

  def test_salt_changes_key(self):
    master_key = unhexlify(OTHER_KEY_HEX)
    assert derive_key(master_key, b'\x00' * 64, pbkdf2_count=1000) != derive_key(master_key, b'\x01' * 64, pbkdf2_count=1000)

  def test_master_key_changes_key(self):
    salt = generate_salt()
    assert derive_key(unhexlify(ZERO_KEY_HEX), salt, pbkdf2_count=1000) != derive_key(unhexlify(OTHER_KEY_HEX), salt, pbkdf2_count=1000)

  def test_output_size(self):
    assert len(derive_key(unhexlify(ZERO_KEY_HEX), generate_salt(), pbkdf2_count=1000)) == KEY_SIZE_BYTES


class TestRandomDraws:
  def test_sizes(self):
    assert len(generate_salt()) == SALT_SIZE_BYTES
    assert len(generate_nonce()) == NONCE_SIZE_BYTES

  def test_fresh_values(self):
    assert generate_salt() != generate_salt()
    assert generate_nonce() != generate_nonce()
