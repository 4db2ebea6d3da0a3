#!/usr/bin/env python3
#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""One-way SHA-256 fingerprints of strings.

These digests are unsalted and deterministic. They are meant for correlating log lines and
spotting duplicate tokens without exposing the token itself. They are NOT suitable for storing
verifiable secrets such as passwords; use a real password hash for that.
"""

from Cryptodome.Hash import SHA256

def hash_text(text: str) -> str:
  """Compute the SHA-256 digest of a string.

  Args:
      text (str): The string to be hashed. It is encoded as UTF-8 before hashing.

  Returns:
      str: The digest as 64 lowercase hex characters.
  """
  assert isinstance(text, str)
  return SHA256.new(text.encode('utf-8')).hexdigest()

def fingerprint(text: str, length: int=12) -> str:
  """A short prefix of hash_text(text), for log messages."""
  return hash_text(text)[:length]
