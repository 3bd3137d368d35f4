import asyncio
import enum
import socket

from .bus import Bus, Subscriber
from .common import Constants, HostUnreachableError, Session, Sink, Source, pump
from .endpoint import Endpoint, IpVersion, format_address, lookup
from .logging import get_logger
from .scope import Scope, run_cancellable


LOGGER = get_logger(__name__)


class ListenerState(enum.Enum):
    IDLE = "idle"
    BINDING = "binding"
    ACCEPTING = "accepting"
    SERVING = "serving"
    TERMINATED = "terminated"


class Listener:
    """Accepts clients, fans stdin out to all of them and relays them to stdout.

    Without `keep_open` the listener serves exactly one client and stops
    once that client's inbound stream ends. With `keep_open` it accepts
    clients until its scope is cancelled, and a failing client only takes
    its own session down.
    """

    def __init__(
        self,
        endpoint: Endpoint,
        *,
        stdin: Source,
        stdout: Sink,
        scope: Scope,
        keep_open: bool = False,
        capacity: int = Constants.BUS_CAPACITY,
    ):
        self._endpoint = endpoint
        self._stdin = stdin
        self._stdout = stdout
        self._scope = scope.child()
        self._keep_open = keep_open
        self._bus = Bus(capacity)
        self._server: asyncio.Server | None = None
        self._sessions: set[Session] = set()
        self._accepted = 0

        self.state = ListenerState.IDLE
        self.address: tuple | None = None

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    def _open_socket(self, address) -> socket.socket:
        family = socket.AF_INET6 if address.version == 6 else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if family == socket.AF_INET6:
                # Dual-stack unless IPv6 was explicitly requested.
                sock.setsockopt(
                    socket.IPPROTO_IPV6,
                    socket.IPV6_V6ONLY,
                    self._endpoint.version is IpVersion.V6,
                )
            sock.bind((str(address), self._endpoint.port))
            sock.listen(Constants.LISTEN_BACKLOG)
        except OSError:
            sock.close()
            raise
        return sock

    async def bind(self) -> socket.socket:
        self.state = ListenerState.BINDING

        error: OSError | None = None
        for address in await lookup(self._endpoint):
            try:
                return self._open_socket(address)
            except OSError as e:
                LOGGER.debug("Bind to %s failed: %s", format_address(address, self._endpoint.port), e)
                error = e

        raise HostUnreachableError(f"Bind to {self._endpoint}: {error}")

    async def start(self):
        sock = await self.bind()
        self.address = sock.getsockname()
        self._server = await asyncio.start_server(self._accept, sock=sock)
        self._scope.spawn(self._produce())

        self.state = ListenerState.ACCEPTING
        LOGGER.info("Listening on %s.", format_address(*self.address[:2]))

    async def serve(self):
        if self._server is None:
            raise RuntimeError("Listener.start() must be called first.")

        try:
            await self._scope.wait()
        finally:
            self._scope.cancel()
            self._server.close()
            await self._server.wait_closed()
            self.state = ListenerState.TERMINATED

        LOGGER.info("Listener on %s closed.", format_address(*self.address[:2]))

    async def run(self):
        await self.start()
        await self.serve()

    async def _produce(self):
        try:
            received = await pump(self._stdin, self._bus.publisher)
            LOGGER.info("End of input after %d bytes.", received)
        except OSError as e:
            LOGGER.error("Reading input failed: %s", e)
        finally:
            self._bus.publisher.close()

    async def _accept(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        peer = format_address(*writer.get_extra_info("peername")[:2])

        if self._scope.cancelled or (not self._keep_open and self._accepted > 0):
            LOGGER.info("Rejected connection from %s.", peer)
            writer.close()
            return

        self._accepted += 1
        if not self._keep_open:
            self._server.close()

        self.state = ListenerState.SERVING
        session = Session(peer, reader, writer, self._scope.child())
        self._sessions.add(session)
        LOGGER.info("Accepted connection from %s.", session)

        try:
            await self._serve_session(session)
        finally:
            self._sessions.discard(session)
            if not self._keep_open:
                self._scope.cancel()

    async def _serve_session(self, session: Session):
        # Subscribe before the first suspension so no broadcast chunk is missed.
        subscriber = self._bus.subscribe()
        session.scope.spawn(self._forward(session, subscriber))

        try:
            await run_cancellable(session.scope, pump(session.reader, self._stdout))
        except OSError as e:
            if self._keep_open:
                LOGGER.warning("Connection from %s failed: %s", session, e)
            else:
                LOGGER.error("Connection from %s failed: %s", session, e)
        finally:
            session.scope.cancel()
            subscriber.close()
            await session.close()

        LOGGER.info("Connection from %s closed.", session)

    async def _forward(self, session: Session, subscriber: Subscriber):
        try:
            await pump(subscriber, session.writer)
        except OSError as e:
            LOGGER.warning("Sending to %s failed: %s", session, e)
            return
        finally:
            subscriber.close()

        session.half_close()
