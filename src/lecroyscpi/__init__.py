__version__ = "0.1.0"

from .errors import (
    ScopeError, NotConnectedError, TransportError, CommandError, ResponseError,
    MalformedBlockError, AcquisitionIncompleteError, UnknownChannelError, FileWriteError,
)
from .channels import (
    Channel, ChannelKind, parse_channel, resolve_source, is_derived_channel,
    related_channel, related_acquisition_channel,
)
from .block import DataBlock, decode_block
from .acquisition import AcquisitionMode, TriggerMode, transfer_flags
from .wfi import WaveformInfo, read_wfi
from .traces import average_segments, subtract_traces
from .scope import LeCroyScope, MockLeCroyResource, MockResourceManager
from .capture import CaptureResult, capture


__all__ = [
    "ScopeError","NotConnectedError","TransportError","CommandError","ResponseError",
    "MalformedBlockError","AcquisitionIncompleteError","UnknownChannelError","FileWriteError",
    "Channel","ChannelKind","parse_channel","resolve_source","is_derived_channel",
    "related_channel","related_acquisition_channel",
    "DataBlock","decode_block",
    "AcquisitionMode","TriggerMode","transfer_flags",
    "WaveformInfo","read_wfi",
    "average_segments","subtract_traces",
    "LeCroyScope","MockLeCroyResource","MockResourceManager",
    "CaptureResult","capture",
]
