"""Protocol session state machine for one client connection.

The session turns decoded requests into responses and applies control
requests to the device state. It never performs I/O: the engine feeds it
decoder output and writes whatever it returns.

Faults are returned, not raised. A refused request yields a
:class:`SessionResult` carrying the error and no responses, and the
session stays usable for the next message.
"""

from __future__ import annotations

import enum
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from pytuyastub._constants import MAX_TIMESTAMP_SKEW_SECONDS, NO_SEQUENCE
from pytuyastub._redact import redact_for_log
from pytuyastub.config import DeviceIdentity
from pytuyastub.exceptions import (
    FrameError,
    IdentityMismatchError,
    MalformedFrameError,
    StaleRequestError,
    StubStateError,
    TuyaStubError,
)
from pytuyastub.models._base import CommandType
from pytuyastub.models.message import TuyaMessage
from pytuyastub.models.payloads import ControlRequest, QueryRequest, QueryResponse, StatusPush
from pytuyastub.state.store import DeviceStateStore

_logger = logging.getLogger(__name__)

#: Return code the device attaches to every response.
RETCODE_OK = 0


class SessionState(enum.StrEnum):
    IDLE = "idle"
    CONNECTED = "connected"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class SessionResult:
    """Outcome of handling one decoded item."""

    request: TuyaMessage | None
    responses: tuple[TuyaMessage, ...] = ()
    error: TuyaStubError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ProtocolSession:
    """Request/response logic for a single connection."""

    def __init__(
        self,
        identity: DeviceIdentity,
        store: DeviceStateStore,
        *,
        clock: Callable[[], float] = time.time,
        max_skew: float = MAX_TIMESTAMP_SKEW_SECONDS,
    ) -> None:
        self._identity = identity
        self._store = store
        self._clock = clock
        self._max_skew = max_skew
        self._state = SessionState.IDLE
        self._handlers: dict[CommandType, Callable[[TuyaMessage], tuple[TuyaMessage, ...]]] = {
            CommandType.DP_QUERY: self._handle_query,
            CommandType.CONTROL: self._handle_control,
            CommandType.HEARTBEAT: self._handle_heartbeat,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is SessionState.CONNECTED

    def connect(self) -> None:
        """Transport accepted a connection."""
        if self._state is SessionState.CONNECTED:
            raise StubStateError("Session is already connected")
        self._state = SessionState.CONNECTED

    def close(self) -> None:
        """Transport closed; safe to call more than once."""
        self._state = SessionState.CLOSED

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def handle(self, item: TuyaMessage | FrameError) -> SessionResult:
        """Handle one decoder result.

        Raises
        ------
        StubStateError
            If the session is not connected.
        """
        if not self.is_connected:
            raise StubStateError(f"Cannot handle messages in state {self._state}")

        if isinstance(item, FrameError):
            return SessionResult(request=None, error=item)

        handler = self._handlers.get(item.command_type) if item.command_type is not None else None
        if handler is None:
            _logger.debug("Unhandled command %s", item.describe())
            return SessionResult(request=item)

        _logger.debug("Handling %s: %s", item.describe(), redact_for_log(item.data))
        try:
            responses = handler(item)
        except (FrameError, IdentityMismatchError, StaleRequestError) as exc:
            _logger.warning("Refused %s: %s", item.describe(), exc)
            return SessionResult(request=item, error=exc)
        return SessionResult(request=item, responses=responses)

    def handle_all(self, items: Iterable[TuyaMessage | FrameError]) -> list[SessionResult]:
        """Handle *items* in order."""
        return [self.handle(item) for item in items]

    def status_push(self, dps: dict[str, Any] | None = None) -> TuyaMessage:
        """Build the unsolicited status frame for *dps* (default: current state)."""
        return TuyaMessage(
            command=CommandType.STATUS,
            seqno=NO_SEQUENCE,
            retcode=RETCODE_OK,
            data=self._push_body(dps),
        )

    def property_push(self, dps: dict[str, Any] | None = None) -> TuyaMessage:
        """Build the push sent when the host changes a data point.

        It is a ``CONTROL`` frame without sequence number or return code.
        Its encrypted ``{devId, dps, t}`` body tells it apart from the
        empty control acknowledgement.
        """
        return TuyaMessage(command=CommandType.CONTROL, seqno=NO_SEQUENCE, data=self._push_body(dps))

    def _push_body(self, dps: dict[str, Any] | None) -> dict[str, Any]:
        snapshot = self._store.snapshot() if dps is None else dps
        return StatusPush(dev_id=self._identity.device_id, dps=snapshot, t=int(self._clock())).to_wire()

    # ------------------------------------------------------------------
    # Command handlers
    # ------------------------------------------------------------------

    def _check_identity(self, message: TuyaMessage, dev_id: str) -> None:
        if dev_id != self._identity.device_id:
            raise IdentityMismatchError(
                f"devId {dev_id!r} does not match {self._identity.device_id!r}",
                seqno=message.seqno,
                command=message.command,
            )

    def _handle_query(self, message: TuyaMessage) -> tuple[TuyaMessage, ...]:
        try:
            request = QueryRequest.model_validate(message.data or {})
        except ValidationError as exc:
            raise MalformedFrameError(
                f"Invalid query payload: {exc.error_count()} error(s)",
                seqno=message.seqno,
                command=message.command,
            ) from exc
        self._check_identity(message, request.dev_id)

        device_id = self._identity.device_id
        body = QueryResponse(dev_id=device_id, gw_id=device_id, dps=self._store.snapshot())
        return (
            TuyaMessage(
                command=CommandType.DP_QUERY,
                seqno=message.seqno,
                retcode=RETCODE_OK,
                data=body.to_wire(),
            ),
        )

    def _handle_control(self, message: TuyaMessage) -> tuple[TuyaMessage, ...]:
        try:
            request = ControlRequest.model_validate(message.data or {})
        except ValidationError as exc:
            raise MalformedFrameError(
                f"Invalid control payload: {exc.error_count()} error(s)",
                seqno=message.seqno,
                command=message.command,
            ) from exc
        self._check_identity(message, request.dev_id)

        if request.t is None:
            raise StaleRequestError("Control request has no timestamp", seqno=message.seqno, command=message.command)
        skew = abs(self._clock() - request.t)
        if skew > self._max_skew:
            raise StaleRequestError(
                f"Timestamp {request.t} is {skew:.0f}s away from local time (max {self._max_skew:.0f}s)",
                seqno=message.seqno,
                command=message.command,
            )

        try:
            snapshot = self._store.update(request.dps)
        except (TypeError, ValueError) as exc:
            raise MalformedFrameError(str(exc), seqno=message.seqno, command=message.command) from exc

        ack = TuyaMessage(command=CommandType.CONTROL, seqno=message.seqno, retcode=RETCODE_OK)
        return ack, self.status_push(snapshot)

    def _handle_heartbeat(self, message: TuyaMessage) -> tuple[TuyaMessage, ...]:
        return (TuyaMessage(command=CommandType.HEARTBEAT, seqno=message.seqno, retcode=RETCODE_OK),)
