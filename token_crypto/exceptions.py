#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Exceptions defined by this package"""

from typing import Optional
from enum import Enum

class ErrorKind(Enum):
  """The category of a failure, for callers that dispatch on kind rather than exception class."""
  CONFIG = "config"
  INPUT = "input"
  AUTHENTICATION = "authentication"

class TokenCryptoError(Exception):
  """Base class for all error exceptions defined by this package."""
  kind: Optional[ErrorKind] = None

class TokenCryptoConfigError(TokenCryptoError):
  """Exception indicating the master key is missing or malformed."""
  kind = ErrorKind.CONFIG

class TokenCryptoInputError(TokenCryptoError, ValueError):
  """Exception indicating a caller-correctable problem with a plaintext or blob argument."""
  kind = ErrorKind.INPUT

class TokenCryptoAuthenticationError(TokenCryptoError):
  """Exception indicating a blob failed integrity verification.

  Raised for tampering, a wrong master key, or corrupted/truncated hex alike; the
  message never says which.
  """
  kind = ErrorKind.AUTHENTICATION
