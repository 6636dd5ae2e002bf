"""
channels — single-character channel tokens and their LeCroy source names.

Tokens are rooted in the old LeCroy naming where the maths channels were
called A, B, C and D:

    '1'..'4'  acquisition channels   C1..C4
    'A'..'H'  maths/function slots   F1..F8
    'S'..'Z'  memory slots           M1..M8

Letters are case-insensitive. ``Channel.from_token`` is strict; the module
level helpers (``parse_channel``, ``resolve_source`` ...) are the user-text
boundary and fall back to channel 1 with a warning instead of raising.
"""
from __future__ import annotations

import dataclasses
import logging
from enum import Enum
from typing import Union

from .errors import UnknownChannelError

logger = logging.getLogger(__name__)


class ChannelKind(Enum):
    ACQUISITION = "C"
    FUNCTION = "F"
    MEMORY = "M"


# first token and slot count per family
_TOKEN_BASE = {
    ChannelKind.ACQUISITION: ("1", 4),
    ChannelKind.FUNCTION: ("A", 8),
    ChannelKind.MEMORY: ("S", 8),
}

# maths slots F1..F4 are bound one-to-one to C1..C4
BOUND_SLOTS = 4


@dataclasses.dataclass(frozen=True)
class Channel:
    kind: ChannelKind
    index: int  # 1-based

    def __post_init__(self):
        _, count = _TOKEN_BASE[self.kind]
        if not 1 <= self.index <= count:
            raise UnknownChannelError(f"{self.kind.name.lower()} slot {self.index} out of range 1..{count}")

    @classmethod
    def from_token(cls, token: str) -> "Channel":
        # some characters upper-case to two ("ß" -> "SS")
        t = token.upper() if isinstance(token, str) else ""
        if len(t) != 1 or len(token) != 1:
            raise UnknownChannelError(f"unknown channel {token!r}")
        for kind, (first, count) in _TOKEN_BASE.items():
            offset = ord(t) - ord(first)
            if 0 <= offset < count:
                return cls(kind, offset + 1)
        raise UnknownChannelError(f"unknown channel {token!r}")

    @property
    def token(self) -> str:
        first, _ = _TOKEN_BASE[self.kind]
        return chr(ord(first) + self.index - 1)

    @property
    def source(self) -> str:
        """Instrument-side name, e.g. ``C2`` or ``F1``."""
        return f"{self.kind.value}{self.index}"

    @property
    def is_derived(self) -> bool:
        return self.kind is not ChannelKind.ACQUISITION

    def __str__(self) -> str:
        return self.token


DEFAULT_CHANNEL = Channel(ChannelKind.ACQUISITION, 1)

ChannelLike = Union[Channel, str]


def parse_channel(token: ChannelLike) -> Channel:
    """Lenient constructor: unknown tokens become channel 1 (one warning)."""
    if isinstance(token, Channel):
        return token
    try:
        return Channel.from_token(token)
    except UnknownChannelError:
        logger.warning("unknown channel %r, using channel %s", token, DEFAULT_CHANNEL.token)
        return DEFAULT_CHANNEL


def resolve_source(token: ChannelLike) -> str:
    return parse_channel(token).source


def is_derived_channel(token: ChannelLike) -> bool:
    """True unless the token is one of the acquisition channels 1-4."""
    if isinstance(token, Channel):
        return token.is_derived
    try:
        return Channel.from_token(token).is_derived
    except UnknownChannelError:
        return True


def related_channel(token: ChannelLike) -> Channel:
    """
    Partner of a channel under the maths/acquisition binding.

    LeCroy won't let you set the number of sweeps on F1 alone, you have to
    restate its source as well. So 'A' gives '1' and '3' gives 'C'. Maths
    slots E-H, memories and unknown tokens have no partner and give '1'.
    """
    if isinstance(token, Channel):
        ch = token
    else:
        try:
            ch = Channel.from_token(token)
        except UnknownChannelError:
            logger.warning("unknown channel %r, using channel %s", token, DEFAULT_CHANNEL.token)
            return DEFAULT_CHANNEL

    if ch.index <= BOUND_SLOTS:
        if ch.kind is ChannelKind.ACQUISITION:
            return Channel(ChannelKind.FUNCTION, ch.index)
        if ch.kind is ChannelKind.FUNCTION:
            return Channel(ChannelKind.ACQUISITION, ch.index)
    logger.warning("%s has no associated acquisition channel, using channel %s",
                   ch.source, DEFAULT_CHANNEL.token)
    return DEFAULT_CHANNEL


def related_acquisition_channel(token: ChannelLike) -> str:
    return related_channel(token).token


def split_pair(token: ChannelLike) -> tuple[Channel, Channel]:
    """Return ``(maths, acquisition)`` for either member of a bound pair."""
    ch = parse_channel(token)
    if ch.is_derived:
        return ch, related_channel(ch)
    return related_channel(ch), ch
