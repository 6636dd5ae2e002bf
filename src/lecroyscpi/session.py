"""
session — thin transport wrapper around a PyVISA message-based resource.

Exposes the four transactions the protocol layer needs (send, send and
receive text, receive raw bytes, obtain a number), each with an optional
per-call timeout in milliseconds. PyVISA failures are re-raised as
``TransportError`` and are never retried here.
"""
from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from typing import Any, Optional, Type, Union

from .errors import CommandError, ResponseError, TransportError

_NUM_RE = re.compile(r'[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?')


def _parse_number(resp: str) -> float:
    m = _NUM_RE.search(resp)
    if not m:
        raise ResponseError(f"no numeric value in response: {resp!r}")
    return float(m.group(0))


def parse_insp(resp: str, kind: Type[Union[int, float]] = float) -> Union[int, float]:
    """
    Parse an ``INSP?`` reply such as ``"WAVE_ARRAY_1       : 20004    "``.

    INSP? doesn't just return a number, it echoes the parameter name, pads it
    with spaces, then ": ". Value starts one character after the first ':'.
    """
    colon = resp.find(":")
    if colon < 0:
        raise ResponseError(f"problem parsing INSP? reply, no ':' in {resp!r}")
    rest = resp[colon + 2:].strip().strip('"').strip()
    m = _NUM_RE.match(rest)
    if not m:
        raise ResponseError(f"no numeric value after ':' in {resp!r}")
    if kind is int:
        return int(float(m.group(0)))
    return float(m.group(0))


class Session:
    def __init__(self, resource: Any, *, check_errors: bool = False,
                 logger: Optional[logging.Logger] = None):
        self.resource = resource
        self.check_errors = check_errors
        self.logger = logger
        self._last_cmd: Optional[str] = None

    @contextmanager
    def _timeout(self, timeout_ms: Optional[int]):
        r = self.resource
        old = getattr(r, "timeout", None)
        if timeout_ms is not None and old is not None:
            r.timeout = timeout_ms
        try:
            yield
        finally:
            if timeout_ms is not None and old is not None:
                r.timeout = old

    @contextmanager
    def suspend_checks(self):
        old = self.check_errors
        self.check_errors = False
        try:
            yield
        finally:
            self.check_errors = old

    def send(self, cmd: str) -> None:
        self._last_cmd = cmd
        if self.logger: self.logger.debug("→ %s", cmd)
        try:
            self.resource.write(cmd)
        except Exception as e:
            raise TransportError(f"send failed for '{cmd}': {e}") from e
        if self.check_errors:
            self._check_command_status()

    def send_and_receive(self, cmd: str, timeout_ms: Optional[int] = None) -> str:
        if self.logger: self.logger.debug("? %s", cmd)
        try:
            with self._timeout(timeout_ms):
                resp = self.resource.query(cmd)
        except Exception as e:
            raise TransportError(f"query failed for '{cmd}': {e}") from e
        if self.logger: self.logger.debug("← %s", resp.strip())
        return resp

    def receive_raw(self, max_len: Optional[int] = None, timeout_ms: Optional[int] = None) -> bytes:
        r = self.resource
        try:
            with self._timeout(timeout_ms):
                data = r.read_raw()
        except Exception as e:
            raise TransportError(f"raw read failed after '{self._last_cmd}': {e}") from e
        if self.logger: self.logger.debug("← <%d bytes>", len(data))
        if max_len is not None and len(data) > max_len:
            data = data[:max_len]
        return data

    def obtain_numeric(self, cmd: str, timeout_ms: Optional[int] = None) -> float:
        return _parse_number(self.send_and_receive(cmd, timeout_ms))

    def obtain_long(self, cmd: str, timeout_ms: Optional[int] = None) -> int:
        return int(self.obtain_numeric(cmd, timeout_ms))

    def obtain_insp(self, cmd: str, kind: Type[Union[int, float]] = float,
                    timeout_ms: Optional[int] = None) -> Union[int, float]:
        return parse_insp(self.send_and_receive(cmd, timeout_ms), kind)

    def _check_command_status(self) -> None:
        """Read (and clear) the Command Status Register; nonzero means the last command failed."""
        try:
            s = self.resource.query("CMR?").strip()
        except Exception as e:
            raise TransportError(f"CMR? failed after '{self._last_cmd}': {e}") from e
        if self.logger: self.logger.debug("CMR? %s", s)
        try:
            code = int(_parse_number(s))
        except ResponseError:
            code = 1
        if code != 0:
            raise CommandError(f"Instrument error after '{self._last_cmd}': CMR={s}")
