#!/usr/bin/env python3
#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Master key management, per-value key derivation and AES-256-GCM encryption/decryption of strings"""

from typing import Optional, Mapping, cast
from types import ModuleType

import os
import re
import logging
import threading
from binascii import hexlify, unhexlify

from Cryptodome.Protocol.KDF import PBKDF2
from Cryptodome.Hash import SHA512
from Cryptodome.Cipher import AES
from Cryptodome.Cipher._mode_gcm import GcmMode
from Cryptodome.Random import get_random_bytes

from .exceptions import (
    TokenCryptoConfigError,
    TokenCryptoInputError,
    TokenCryptoAuthenticationError,
  )
from .constants import (
    MASTER_KEY_ENV_VAR,
    MASTER_KEY_HEX_LENGTH,
    KEY_SIZE_BYTES,
    SALT_SIZE_BYTES,
    NONCE_SIZE_BYTES,
    TAG_SIZE_BYTES,
    PBKDF2_COUNT,
  )
from .blob import pack_blob, unpack_blob
from .digest import fingerprint

logger = logging.getLogger(__name__)

PBKDF2_HASH_MODULE: ModuleType = SHA512
"""Type of hash used by PBKDF2 to derive a per-value AES key from the master key and salt"""

_MASTER_KEY_RE = re.compile(r'[0-9a-fA-F]{%d}' % MASTER_KEY_HEX_LENGTH)

_master_key: Optional[bytes] = None
_master_key_lock = threading.Lock()

# ======================= Key management

def validate_master_key_format(candidate: object) -> bool:
  """Return True iff candidate is a string of exactly 64 hex characters (either case)."""
  if not isinstance(candidate, str):
    return False
  return _MASTER_KEY_RE.fullmatch(candidate) is not None

def generate_master_key() -> str:
  """Generate a new cryptographically random master key.

  This is an operator bootstrap utility; use the result as the value of OAUTH_ENCRYPTION_KEY.

  Returns:
      str: 32 random bytes encoded as 64 lowercase hex characters
  """
  return hexlify(get_random_bytes(KEY_SIZE_BYTES)).decode('ascii')

def master_key_from_hex(key_hex: Optional[str], source: str=MASTER_KEY_ENV_VAR) -> bytes:
  """Validate and decode a hex master key.

  Args:
      key_hex (Optional[str]): The hex-encoded key, or None/'' if it was not configured.
      source (str, optional):  Where the value came from, for error messages. Defaults to
                               "OAUTH_ENCRYPTION_KEY".

  Raises:
      TokenCryptoConfigError: The key is missing or is not exactly 64 hex characters

  Returns:
      bytes: The 32-byte master key
  """
  if key_hex is None or key_hex == '':
    raise TokenCryptoConfigError(f"{source} is required for token encryption")
  if not validate_master_key_format(key_hex):
    raise TokenCryptoConfigError(
        f"{source} must be {MASTER_KEY_HEX_LENGTH} hex characters ({KEY_SIZE_BYTES} bytes). "
        "Generate one with: token-crypto generate-key"
      )
  return unhexlify(key_hex)

def load_master_key(environ: Optional[Mapping[str, str]]=None) -> bytes:
  """Load the process master key from the environment.

  The first successful load is cached for the life of the process; later calls return
  the same bytes object without consulting the environment again. Concurrent first
  callers are serialized so that all of them observe a single value.

  Args:
      environ (Optional[Mapping[str, str]], optional):
                            The environment to read OAUTH_ENCRYPTION_KEY from. Only consulted
                            on a cache miss. If None, os.environ is used. Defaults to None.

  Raises:
      TokenCryptoConfigError: OAUTH_ENCRYPTION_KEY is missing or malformed

  Returns:
      bytes: The 32-byte master key
  """
  global _master_key
  key = _master_key
  if key is not None:
    return key
  with _master_key_lock:
    if _master_key is None:
      if environ is None:
        environ = os.environ
      key = master_key_from_hex(environ.get(MASTER_KEY_ENV_VAR))
      logger.debug("Loaded master key from %s (fingerprint %s)", MASTER_KEY_ENV_VAR, fingerprint(hexlify(key).decode('ascii')))
      _master_key = key
    return _master_key

def clear_master_key_cache() -> None:
  """Forget the cached master key and the default cipher built from it.

  The next load_master_key() rereads the environment.
  """
  global _master_key
  from .token_cipher import reset_default_cipher
  with _master_key_lock:
    _master_key = None
  reset_default_cipher()

def derive_key(
      master_key: bytes,
      salt: bytes,
      pbkdf2_count: Optional[int]=None,
      key_size_bytes: int=KEY_SIZE_BYTES,
      hmac_hash_module: ModuleType=PBKDF2_HASH_MODULE
    ) -> bytes:
  """Derive a deterministic AES-256 key from the master key and a per-value salt.

  Args:
      master_key (bytes):   The 32-byte master key.
      salt (bytes):         The random salt stored with the encrypted value. The value is not secret
                            but must be preserved to regenerate the same key during decryption.
      pbkdf2_count(Optional[int], optional):
                            Number of PBKDF2 iterations. If None, 100,000 is used, which is required
                            to decrypt values produced with the default. Defaults to None.
      key_size_bytes(int, optional):
                            Size of the derived key in bytes. Default is 32 (256-bits).
      hmac_hash_module(ModuleType, optional):
                            The HMAC hash used by PBKDF2. Default is SHA512.

  Returns:
      bytes: A key of length key_size_bytes that depends only on the inputs
  """
  assert isinstance(master_key, bytes)
  assert isinstance(salt, bytes)
  if pbkdf2_count is None:
    pbkdf2_count = PBKDF2_COUNT
  else:
    assert isinstance(pbkdf2_count, int)
  key = PBKDF2(master_key, salt, dkLen=key_size_bytes, count=pbkdf2_count, hmac_hash_module=hmac_hash_module)
  return key

def generate_salt(n_bytes: int=SALT_SIZE_BYTES) -> bytes:
  """Generate a cryptographically random 64-byte PBKDF2 salt."""
  return get_random_bytes(n_bytes)

def generate_nonce(n_bytes: int=NONCE_SIZE_BYTES) -> bytes:
  """Generate a cryptographically random 16-byte AES-GCM nonce."""
  return get_random_bytes(n_bytes)

# ======================= AEAD

def _check_master_key(master_key: bytes) -> None:
  if not isinstance(master_key, bytes) or len(master_key) != KEY_SIZE_BYTES:
    raise TokenCryptoConfigError(f"Wrong master key size, expected {KEY_SIZE_BYTES} bytes")

def encrypt_string(
      plaintext: str,
      master_key: bytes,
      salt: Optional[bytes]=None,
      nonce: Optional[bytes]=None,
      pbkdf2_count: Optional[int]=None,
    ) -> str:
  """Encrypt a string using AES-256 GCM mode with a key derived from master_key and a fresh salt.

  Returns a hex blob of the form:

    hex(salt + nonce + tag + aes_encrypt(plaintext.encode('utf-8')))

  Args:
      plaintext (str): A non-empty plaintext string to be encrypted
      master_key (bytes): The 32-byte master key
      salt (Optional[bytes], optional): An optional 64-byte salt. If None, a random salt is
                                        generated. Defaults to None.
      nonce (Optional[bytes], optional): An optional 16-byte nonce. If None, a random nonce is
                                         generated. Defaults to None.
      pbkdf2_count (Optional[int], optional): PBKDF2 iteration count. Defaults to 100,000.

  Raises:
      TokenCryptoInputError: Empty or non-string plaintext
      TokenCryptoInputError: Wrong size salt or nonce
      TokenCryptoConfigError: Wrong size master key

  Returns:
      str: An encrypted representation of plaintext, which may be decrypted with decrypt_string().
  """
  if not isinstance(plaintext, str):
    raise TokenCryptoInputError(f"Plaintext must be a string, got {type(plaintext).__name__}")
  if plaintext == '':
    raise TokenCryptoInputError("Cannot encrypt empty text")
  _check_master_key(master_key)
  if salt is None:
    salt = generate_salt()
  elif len(salt) != SALT_SIZE_BYTES:
    raise TokenCryptoInputError(f"Salt must be {SALT_SIZE_BYTES} bytes, got {len(salt)}")
  if nonce is None:
    nonce = generate_nonce()
  elif len(nonce) != NONCE_SIZE_BYTES:
    raise TokenCryptoInputError(f"Nonce must be {NONCE_SIZE_BYTES} bytes, got {len(nonce)}")
  key = derive_key(master_key, salt, pbkdf2_count=pbkdf2_count)
  cipher = cast(GcmMode, AES.new(key, AES.MODE_GCM, nonce=nonce, mac_len=TAG_SIZE_BYTES))
  bin_plaintext = plaintext.encode('utf-8')
  ciphertext_data, tag = cipher.encrypt_and_digest(bin_plaintext)
  assert len(tag) == TAG_SIZE_BYTES
  blob = pack_blob(salt, nonce, tag, ciphertext_data)
  logger.debug("Encrypted %d plaintext bytes into %d-character blob", len(bin_plaintext), len(blob))
  return blob

def decrypt_string(blob: str, master_key: bytes, pbkdf2_count: Optional[int]=None) -> str:
  """Decrypt a blob previously produced by encrypt_string()

  The key is rederived from master_key and the salt embedded in the blob. If master_key is
  not the key the blob was encrypted with, the derived key differs and tag verification fails.

  Args:
      blob (str): A hex blob in the form hex(salt + nonce + tag + ciphertext)
      master_key (bytes): The 32-byte master key
      pbkdf2_count (Optional[int], optional): PBKDF2 iteration count. Defaults to 100,000.

  Raises:
      TokenCryptoInputError: Empty or too-short blob
      TokenCryptoConfigError: Wrong size master key
      TokenCryptoAuthenticationError: Tag mismatch, wrong master key, or corrupted blob

  Returns:
      str: The original plaintext, as passed to encrypt_string
  """
  parts = unpack_blob(blob)
  _check_master_key(master_key)
  key = derive_key(master_key, parts.salt, pbkdf2_count=pbkdf2_count)
  try:
    cipher = cast(GcmMode, AES.new(key, AES.MODE_GCM, nonce=parts.nonce, mac_len=TAG_SIZE_BYTES))
    bin_plaintext = cipher.decrypt_and_verify(parts.ciphertext, parts.tag)
    plaintext = bin_plaintext.decode('utf-8')
  except ValueError as e:
    logger.debug("Authentication failed for blob %s", fingerprint(blob.lower()))
    raise TokenCryptoAuthenticationError("Encrypted blob cannot be decrypted with the configured key") from e
  logger.debug("Decrypted %d-character blob", len(blob))
  return plaintext
