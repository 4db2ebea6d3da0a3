#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Shared fixtures for token_crypto tests"""

import pytest

from token_crypto import TokenCipher, clear_master_key_cache, MASTER_KEY_ENV_VAR

ZERO_KEY_HEX = '0' * 64
OTHER_KEY_HEX = 'a1' * 32

FAST_PBKDF2_COUNT = 1000
"""Reduced iteration count for tests that exercise behavior rather than the production KDF cost"""

@pytest.fixture(autouse=True)
def fresh_master_key(monkeypatch):
  monkeypatch.setenv(MASTER_KEY_ENV_VAR, ZERO_KEY_HEX)
  clear_master_key_cache()
  yield
  clear_master_key_cache()

@pytest.fixture
def cipher() -> TokenCipher:
  return TokenCipher(ZERO_KEY_HEX)

@pytest.fixture
def fast_cipher() -> TokenCipher:
  return TokenCipher(ZERO_KEY_HEX, pbkdf2_count=FAST_PBKDF2_COUNT)
