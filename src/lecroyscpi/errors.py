"""Exception hierarchy shared by every lecroyscpi module."""


class ScopeError(Exception):
    """Base error for this library."""


class NotConnectedError(ScopeError): ...
class TransportError(ScopeError): ...
class CommandError(ScopeError): ...
class ResponseError(ScopeError): ...
class UnknownChannelError(ScopeError): ...
class AcquisitionIncompleteError(ScopeError): ...
class FileWriteError(ScopeError): ...


class MalformedBlockError(ScopeError):
    """Binary response without a usable ``#<D><N>`` header.

    ``head`` keeps the first bytes that were scanned so the caller can log
    what the instrument actually sent.
    """

    def __init__(self, msg: str, head: bytes = b""):
        super().__init__(msg)
        self.head = head
