# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Package token_crypto provides a command-line tool as well as a runtime API for encrypting OAuth tokens
at rest with AES-256-GCM under a per-value PBKDF2-derived key, plus a one-way SHA-256 fingerprint utility.
"""

from .version import __version__

from .constants import (
    MASTER_KEY_ENV_VAR,
    KEY_SIZE_BITS,
    KEY_SIZE_BYTES,
    MASTER_KEY_HEX_LENGTH,
    SALT_SIZE_BYTES,
    NONCE_SIZE_BYTES,
    TAG_SIZE_BYTES,
    PBKDF2_COUNT,
    MIN_BLOB_HEX_LENGTH,
  )

from .util import (
    load_master_key,
    clear_master_key_cache,
    master_key_from_hex,
    derive_key,
    generate_salt,
    generate_nonce,
    encrypt_string,
    decrypt_string,
    generate_master_key,
    validate_master_key_format,
  )

from .blob import BlobParts, pack_blob, unpack_blob
from .digest import hash_text, fingerprint
from .token_cipher import TokenCipher, get_default_cipher, reset_default_cipher, encrypt, decrypt
from .internal_types import Jsonable, CipherResult
from .exceptions import (
    ErrorKind,
    TokenCryptoError,
    TokenCryptoConfigError,
    TokenCryptoInputError,
    TokenCryptoAuthenticationError,
  )

generate_encryption_key = generate_master_key
validate_encryption_key = validate_master_key_format
