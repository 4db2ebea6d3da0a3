#!/usr/bin/env python3
#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Encryption/decryption of OAuth tokens at rest"""

from typing import Optional, Union

import asyncio
import json
import logging
import threading

from .internal_types import Jsonable, CipherResult
from .exceptions import TokenCryptoError, TokenCryptoConfigError
from .constants import (
    KEY_SIZE_BYTES,
    SALT_SIZE_BYTES,
    NONCE_SIZE_BYTES,
    TAG_SIZE_BYTES,
    PBKDF2_COUNT,
  )
from .util import (
    load_master_key,
    master_key_from_hex,
    encrypt_string,
    decrypt_string,
    PBKDF2_HASH_MODULE,
  )

logger = logging.getLogger(__name__)

class TokenCipher:
  """An encrypter/decrypter of secret strings bound to a single master key

  Class TokenCipher is the explicit encryption context for OAuth access and refresh tokens
  stored in a database. Construct one at startup (normally with TokenCipher.from_env()) and
  hand it to whatever needs to store or read tokens; the instance holds no state other than the
  master key and is safe to share between threads.

  Every call to encrypt() draws a fresh 64-byte salt and a fresh 16-byte nonce. A per-value
  256-bit AES key is derived from the master key and the salt with PBKDF2-HMAC-SHA512
  (100,000 iterations), and the plaintext is encrypted with AES-256 in GCM mode, which
  attaches a 16-byte authentication tag. Because each value gets its own derived key, a
  nonce can never repeat under the same key.

  The result is a hex string with fixed offsets:

      hex(salt[64] + nonce[16] + tag[16] + ciphertext[len(plaintext)])

  There is no version or key-id field. Changing the master key makes every previously stored
  blob fail with TokenCryptoAuthenticationError, indistinguishable from tampering.
  """

  KEY_SIZE_BYTES = KEY_SIZE_BYTES
  """Number of bytes in the master key and in each derived AES key"""

  PBKDF2_COUNT = PBKDF2_COUNT
  """Number of PBKDF2 iterations from master key + salt to derived key"""

  PBKDF2_HASH_MODULE = PBKDF2_HASH_MODULE
  """Type of hash used by PBKDF2"""

  SALT_SIZE_BYTES = SALT_SIZE_BYTES
  """Number of random salt bytes per encrypted value"""

  NONCE_SIZE_BYTES = NONCE_SIZE_BYTES
  """Number of random nonce bytes per encrypted value"""

  TAG_SIZE_BYTES = TAG_SIZE_BYTES
  """Size of the GCM authentication tag"""

  _master_key: bytes
  """32-byte master key from which every per-value key is derived"""

  _pbkdf2_count: int

  def __init__(self, master_key: Union[bytes, str], pbkdf2_count: Optional[int]=None):
    """Create a token encrypter/decrypter.

    Args:
        master_key (Union[bytes, str]):
                              The master key, either as 32 raw bytes or as 64 hex characters.
        pbkdf2_count(Optional[int], optional):
                              Number of PBKDF2 iterations. Values encrypted with one count can only
                              be decrypted with the same count. If None, 100,000 is used.
                              Defaults to None.

    Raises:
        TokenCryptoConfigError: The master key is not 32 bytes / 64 hex characters
        TokenCryptoConfigError: pbkdf2_count is not a positive integer
    """
    if isinstance(master_key, str):
      master_key = master_key_from_hex(master_key, source="Master key")
    elif not isinstance(master_key, bytes) or len(master_key) != self.KEY_SIZE_BYTES:
      raise TokenCryptoConfigError(f"Master key must be {self.KEY_SIZE_BYTES} bytes")
    if pbkdf2_count is None:
      pbkdf2_count = self.PBKDF2_COUNT
    elif isinstance(pbkdf2_count, bool) or not isinstance(pbkdf2_count, int) or pbkdf2_count < 1:
      raise TokenCryptoConfigError(f"PBKDF2 iteration count must be a positive integer, got {pbkdf2_count!r}")
    self._master_key = master_key
    self._pbkdf2_count = pbkdf2_count

  @classmethod
  def from_env(cls, pbkdf2_count: Optional[int]=None) -> 'TokenCipher':
    """Create a TokenCipher from the process master key in OAUTH_ENCRYPTION_KEY.

    Raises:
        TokenCryptoConfigError: OAUTH_ENCRYPTION_KEY is missing or malformed
    """
    return cls(load_master_key(), pbkdf2_count=pbkdf2_count)

  @property
  def master_key(self) -> bytes:
    """The 32-byte master key"""
    return self._master_key

  @property
  def pbkdf2_count(self) -> int:
    return self._pbkdf2_count

  def encrypt(self, plaintext: str, salt: Optional[bytes]=None, nonce: Optional[bytes]=None) -> str:
    """Encrypt a plaintext string into an opaque hex blob suitable for storage.

    Args:
        plaintext (str):   A non-empty string, e.g. an OAuth access or refresh token.
        salt (Optional[bytes], optional):
                           An optional 64-byte salt, to force the use of a specific salt.
                           If None, a random salt will be generated. Defaults to None.
        nonce (Optional[bytes], optional):
                           An optional 16-byte nonce value, to force the use of a specific nonce.
                           If None, a random nonce will be generated. Defaults to None.

    Raises:
        TokenCryptoInputError: plaintext is empty, or salt/nonce have the wrong size

    Returns:
        str: The hex blob, which will decrypt back to plaintext with the same master key.
             Its length is 2 * (96 + len(plaintext.encode('utf-8'))).
    """
    return encrypt_string(plaintext, self._master_key, salt=salt, nonce=nonce, pbkdf2_count=self._pbkdf2_count)

  def encrypt_jsonable(self, obj: Jsonable, salt: Optional[bytes]=None, nonce: Optional[bytes]=None) -> str:
    """Encrypt a JSON-able value, such as a full OAuth credential dict, as compact sorted JSON."""
    plaintext = json.dumps(obj, sort_keys=True, separators=(',', ':'))
    return self.encrypt(plaintext, salt=salt, nonce=nonce)

  def decrypt(self, blob: str) -> str:
    """Decrypt a hex blob produced by encrypt() into the original plaintext string.

    Args:
        blob (str):  A hex blob of the form hex(salt + nonce + tag + ciphertext).

    Returns:
        str: The plaintext that was passed to encrypt().

    Raises:
        TokenCryptoInputError: The blob is empty or shorter than the 192-character header
        TokenCryptoAuthenticationError: The blob was tampered with, is corrupted, or was not
                                        encrypted with this master key
    """
    return decrypt_string(blob, self._master_key, pbkdf2_count=self._pbkdf2_count)

  def decrypt_jsonable(self, blob: str) -> Jsonable:
    """Decrypt a blob produced by encrypt_jsonable() and deserialize the JSON.

    Raises:
        JSONDecodeError:   The decrypted plaintext is not valid JSON
    """
    plaintext = self.decrypt(blob)
    result: Jsonable = json.loads(plaintext)
    return result

  def try_encrypt(self, plaintext: str) -> CipherResult:
    """Like encrypt(), but returns a CipherResult carrying either the blob or the error."""
    try:
      return CipherResult(value=self.encrypt(plaintext))
    except TokenCryptoError as e:
      return CipherResult(error=e)

  def try_decrypt(self, blob: str) -> CipherResult:
    """Like decrypt(), but returns a CipherResult carrying either the plaintext or the error."""
    try:
      return CipherResult(value=self.decrypt(blob))
    except TokenCryptoError as e:
      return CipherResult(error=e)

  async def encrypt_async(self, plaintext: str) -> str:
    """encrypt() run in a worker thread, so key derivation does not stall the event loop."""
    return await asyncio.to_thread(self.encrypt, plaintext)

  async def decrypt_async(self, blob: str) -> str:
    """decrypt() run in a worker thread, so key derivation does not stall the event loop."""
    return await asyncio.to_thread(self.decrypt, blob)

_default_cipher: Optional[TokenCipher] = None
_default_cipher_lock = threading.Lock()

def get_default_cipher() -> TokenCipher:
  """Return the process-wide TokenCipher bound to OAUTH_ENCRYPTION_KEY, creating it on first use.

  Raises:
      TokenCryptoConfigError: OAUTH_ENCRYPTION_KEY is missing or malformed
  """
  global _default_cipher
  master_key = load_master_key()
  cipher = _default_cipher
  if cipher is not None and cipher.master_key is master_key:
    return cipher
  with _default_cipher_lock:
    if _default_cipher is None or _default_cipher.master_key is not master_key:
      logger.debug("Creating default token cipher")
      _default_cipher = TokenCipher(master_key)
    return _default_cipher

def encrypt(plaintext: str) -> str:
  """Encrypt plaintext with the process master key. See TokenCipher.encrypt()."""
  return get_default_cipher().encrypt(plaintext)

def decrypt(blob: str) -> str:
  """Decrypt a blob with the process master key. See TokenCipher.decrypt()."""
  return get_default_cipher().decrypt(blob)

def reset_default_cipher() -> None:
  """Drop the process-wide TokenCipher; the next get_default_cipher() builds a new one."""
  global _default_cipher
  with _default_cipher_lock:
    _default_cipher = None
