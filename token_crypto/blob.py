#!/usr/bin/env python3
#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Fixed-offset binary layout of an encrypted token blob.

A blob is the hex encoding of:

    salt (64 bytes) + nonce (16 bytes) + tag (16 bytes) + ciphertext (len(plaintext) bytes)

There is no length prefix, version byte or key id. Any change to these offsets makes every
previously stored blob undecryptable.
"""

from typing import NamedTuple
from binascii import hexlify, unhexlify, Error as BinasciiError

from .exceptions import TokenCryptoInputError, TokenCryptoAuthenticationError
from .constants import (
    SALT_SIZE_BYTES,
    NONCE_SIZE_BYTES,
    TAG_SIZE_BYTES,
    NONCE_OFFSET,
    TAG_OFFSET,
    CIPHERTEXT_OFFSET,
    MIN_BLOB_HEX_LENGTH,
  )

class BlobParts(NamedTuple):
  salt: bytes
  nonce: bytes
  tag: bytes
  ciphertext: bytes

def pack_blob(salt: bytes, nonce: bytes, tag: bytes, ciphertext: bytes) -> str:
  """Assemble the parts of an encrypted value into a hex blob.

  Args:
      salt (bytes):       The 64-byte PBKDF2 salt
      nonce (bytes):      The 16-byte AES-GCM nonce
      tag (bytes):        The 16-byte GCM authentication tag
      ciphertext (bytes): The encrypted data

  Returns:
      str: Lowercase hex encoding of salt + nonce + tag + ciphertext
  """
  assert len(salt) == SALT_SIZE_BYTES
  assert len(nonce) == NONCE_SIZE_BYTES
  assert len(tag) == TAG_SIZE_BYTES
  return hexlify(salt + nonce + tag + ciphertext).decode('ascii')

def unpack_blob(blob: str) -> BlobParts:
  """Split a hex blob into its salt, nonce, tag and ciphertext.

  Args:
      blob (str): A blob as produced by pack_blob(). Hex digits may be in either case.

  Raises:
      TokenCryptoInputError: The blob is empty, not a string, or too short to hold the fixed header
      TokenCryptoAuthenticationError: The blob is not valid hex

  Returns:
      BlobParts: The four fields, sliced at their fixed offsets
  """
  if not isinstance(blob, str):
    raise TokenCryptoInputError(f"Encrypted blob must be a string, got {type(blob).__name__}")
  if blob == '':
    raise TokenCryptoInputError("Cannot decrypt an empty string")
  if len(blob) < MIN_BLOB_HEX_LENGTH:
    raise TokenCryptoInputError(
        f"Encrypted blob too short: expected at least {MIN_BLOB_HEX_LENGTH} hex characters, got {len(blob)}"
      )
  try:
    data = unhexlify(blob)
  except (BinasciiError, ValueError) as e:
    raise TokenCryptoAuthenticationError("Encrypted blob cannot be decrypted with the configured key") from e
  return BlobParts(
      salt=data[:NONCE_OFFSET],
      nonce=data[NONCE_OFFSET:TAG_OFFSET],
      tag=data[TAG_OFFSET:CIPHERTEXT_OFFSET],
      ciphertext=data[CIPHERTEXT_OFFSET:],
    )
