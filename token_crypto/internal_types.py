#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Type hints used internally by this package"""

from typing import Dict, List, NamedTuple, Optional, Union

from .exceptions import TokenCryptoError, ErrorKind

JsonableAtom = Union[None, bool, int, float, str]
Jsonable = Union[JsonableAtom, Dict[str, 'Jsonable'], List['Jsonable']]

class CipherResult(NamedTuple):
  """Outcome of a non-raising encrypt/decrypt; exactly one of value and error is set."""
  value: Optional[str] = None
  error: Optional[TokenCryptoError] = None

  @property
  def ok(self) -> bool:
    return self.error is None

  @property
  def kind(self) -> Optional[ErrorKind]:
    return None if self.error is None else self.error.kind
