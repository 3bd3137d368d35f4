import asyncio
import enum

from .common import HostUnreachableError, Session, Sink, Source, pump
from .endpoint import Endpoint, format_address, lookup
from .logging import get_logger
from .scope import Scope, run_cancellable


LOGGER = get_logger(__name__)


class ConnectorState(enum.Enum):
    IDLE = "idle"
    DIALING = "dialing"
    ACTIVE = "active"
    CLOSING = "closing"
    TERMINATED = "terminated"


class Connector:
    """Relays stdin to a single dialed peer and the peer to stdout."""

    def __init__(self, endpoint: Endpoint, *, stdin: Source, stdout: Sink, scope: Scope):
        self._endpoint = endpoint
        self._stdin = stdin
        self._stdout = stdout
        self._scope = scope
        self.state = ConnectorState.IDLE

    async def dial(self) -> Session:
        self.state = ConnectorState.DIALING
        LOGGER.info("Connecting to %s.", self._endpoint)

        error: OSError | None = None
        for address in await lookup(self._endpoint):
            try:
                reader, writer = await asyncio.open_connection(str(address), self._endpoint.port)
            except OSError as e:
                LOGGER.debug("Connect to %s failed: %s", format_address(address, self._endpoint.port), e)
                error = e
                continue

            return Session(
                format_address(address, self._endpoint.port),
                reader,
                writer,
                self._scope.child(),
            )

        raise HostUnreachableError(f"Connect to {self._endpoint}: {error}")

    async def run(self):
        session = await self.dial()
        self.state = ConnectorState.ACTIVE
        LOGGER.info("Connected to %s.", session)

        session.scope.spawn(self._send(session))

        try:
            await run_cancellable(session.scope, pump(session.reader, self._stdout))
        except OSError as e:
            LOGGER.error("Connection to %s failed: %s", session, e)
        finally:
            self.state = ConnectorState.CLOSING
            session.scope.cancel()
            await session.close()

        self.state = ConnectorState.TERMINATED
        LOGGER.info("Connection from %s closed.", session)

    async def _send(self, session: Session):
        try:
            sent = await pump(self._stdin, session.writer)
        except OSError as e:
            LOGGER.warning("Sending to %s failed: %s", session, e)
            return

        LOGGER.info("End of input after %d bytes, closing write side of %s.", sent, session)
        session.half_close()
