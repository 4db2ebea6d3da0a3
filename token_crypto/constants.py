#!/usr/bin/env python3
#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Constants defined by this package"""

MASTER_KEY_ENV_VAR = "OAUTH_ENCRYPTION_KEY"
"""Name of the environment variable that holds the hex-encoded master key"""

KEY_SIZE_BITS = 256
"""Size of the master key and of each derived AES key in bits"""

KEY_SIZE_BYTES = KEY_SIZE_BITS // 8
"""Size of the master key and of each derived AES key in bytes"""

MASTER_KEY_HEX_LENGTH = KEY_SIZE_BYTES * 2
"""Number of hex characters in a well-formed master key"""

SALT_SIZE_BYTES = 64
"""Number of random salt bytes drawn for each encrypted value. Mixed into PBKDF2 so every value gets its own key"""

NONCE_SIZE_BYTES = 16
"""Number of random bytes used for the AES-GCM nonce on each encrypted value"""

TAG_SIZE_BYTES = 16
"""Size of the GCM authentication tag stored with each encrypted value"""

PBKDF2_COUNT = 100000
"""Number of PBKDF2-HMAC-SHA512 iterations from master key + salt to derived key"""

NONCE_OFFSET = SALT_SIZE_BYTES
"""Byte offset of the nonce within a decoded blob"""

TAG_OFFSET = NONCE_OFFSET + NONCE_SIZE_BYTES
"""Byte offset of the authentication tag within a decoded blob"""

CIPHERTEXT_OFFSET = TAG_OFFSET + TAG_SIZE_BYTES
"""Byte offset of the ciphertext within a decoded blob"""

MIN_BLOB_HEX_LENGTH = CIPHERTEXT_OFFSET * 2
"""Shortest hex blob that can hold the fixed salt/nonce/tag header"""
