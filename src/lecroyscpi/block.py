r"""
block — definite-length binary block parser.

Waveform reads come back as::

    DAT1,#9000001000<1000 bytes of data>
    \__/ |\_______/
      |  ||   |
      |  ||   +--- number of bytes of data
      |  |+------- how many length digits follow (here 9, zero padded)
      |  +-------- always '#'
      +----------- whatever array was asked for

Some instruments answer only ``#0`` when the acquisition produced nothing.
That is reported as an empty block, not as an error.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Optional

from .errors import MalformedBlockError

logger = logging.getLogger(__name__)

MARKER = b"#"
# "DAT1,#9" plus nine digits fits comfortably
MAX_HEADER_SCAN = 25


@dataclasses.dataclass(frozen=True)
class DataBlock:
    payload: bytes
    byte_count: int
    declared_length: int

    @property
    def truncated(self) -> bool:
        return self.declared_length > self.byte_count

    @property
    def empty(self) -> bool:
        return self.declared_length == 0


def decode_block(raw: bytes, max_header_scan: int = MAX_HEADER_SCAN,
                 capacity: Optional[int] = None) -> DataBlock:
    raw = bytes(raw)
    head = raw[:max_header_scan]
    pos = head.find(MARKER)
    if pos < 0:
        raise MalformedBlockError(f"data block does not begin with '#': first {len(head)} bytes {head!r}", head)

    nd_at = pos + 1
    nd_char = raw[nd_at:nd_at + 1]
    if not nd_char.isdigit():
        raise MalformedBlockError(f"bad digit count {nd_char!r} after '#'", head)
    ndigits = int(nd_char)
    if ndigits == 0:
        return DataBlock(b"", 0, 0)

    len_field = raw[nd_at + 1:nd_at + 1 + ndigits]
    if len(len_field) != ndigits or not len_field.isdigit():
        raise MalformedBlockError(f"bad length field {len_field!r} (expected {ndigits} digits)", head)
    length = int(len_field)

    start = nd_at + 1 + ndigits
    n = length
    if capacity is not None and length > capacity:
        logger.warning("block of %d bytes truncated to buffer capacity %d", length, capacity)
        n = capacity

    available = len(raw) - start
    if available < n:
        raise MalformedBlockError(f"block declares {length} bytes but only {available} received", head)
    return DataBlock(raw[start:start + n], n, length)
