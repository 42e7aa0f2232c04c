import enum
import logging
from typing import Optional

from websockets.exceptions import ConnectionClosed

from common.protocol import FrameError, recv_identity, recv_message, send_message
from server.dispatch import broadcast
from server.state import ServerContext

logger = logging.getLogger(__name__)


class ConnectionState(enum.Enum):
    HANDSHAKE = "handshake"
    ACTIVE = "active"
    CLOSED = "closed"


class ConnectionHandler:
    '''
    Drives one client connection: identity handshake, then the message loop,
    then cleanup. One handler runs per connection, each on its own thread.
    '''

    def __init__(self, ctx: ServerContext, conn, peer: Optional[str] = None):
        self.ctx = ctx
        self.conn = conn
        self.peer = peer or "?"
        self.identity: Optional[str] = None
        self.state = ConnectionState.HANDSHAKE

    def run(self) -> None:
        ''' Run the connection until it closes; never raises '''
        try:
            if self._handshake():
                self._active()
        except Exception:
            logger.exception("Handler for %s (%s) failed", self.identity, self.peer)
        finally:
            self._close()

    def _handshake(self) -> bool:
        try:
            identity = recv_identity(self.conn)
        except (ConnectionClosed, FrameError) as e:
            logger.info("Handshake from %s failed: %s", self.peer, e)
            return False
        if not identity:
            logger.info("Empty identity from %s, closing", self.peer)
            return False

        self.identity = identity
        self.ctx.registry.register(identity, self.conn)
        self.state = ConnectionState.ACTIVE
        logger.info("User %r connected from %s", identity, self.peer)
        return True

    def _active(self) -> None:
        while True:
            try:
                inbound = recv_message(self.conn)
            except ConnectionClosed:
                return
            except FrameError as e:
                logger.warning("Bad frame from %r: %s", self.identity, e)
                return

            if not inbound.sender:
                logger.warning("Message without sender from %r, closing", self.identity)
                return

            msg = self.ctx.log.append(inbound)
            self.ctx.directory.update_summary(msg.recipient, msg.content, msg.timestamp)
            delivered = broadcast(self.ctx.registry, msg)
            logger.debug("Message %d %r -> %r delivered to %d peer(s)",
                         msg.id, msg.sender, msg.recipient, delivered)

            try:
                send_message(self.conn, msg)   # echo back to the sender
            except ConnectionClosed:
                return

    def _close(self) -> None:
        if self.state is ConnectionState.CLOSED:
            return
        if self.identity is not None:
            self.ctx.registry.deregister(self.identity)
            logger.info("User %r disconnected", self.identity)
        self.state = ConnectionState.CLOSED
        try:
            self.conn.close()
        except Exception as e:
            logger.debug("Closing connection of %r failed: %s", self.identity, e)


def make_handler(ctx: ServerContext):
    ''' Build the per-connection callable the websockets server calls '''
    def handle(conn) -> None:
        peer = None
        remote = getattr(conn, "remote_address", None)
        if remote:
            peer = f"{remote[0]}:{remote[1]}"
        ConnectionHandler(ctx, conn, peer).run()
    return handle
