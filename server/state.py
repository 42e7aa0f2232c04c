import itertools
import logging
from dataclasses import dataclass, replace, field
from threading import Lock
from typing import Any, Dict, Iterator, List, Optional

from common.messages import InboundMessage, Message, Session, avatar_for, iso_now

logger = logging.getLogger(__name__)


@dataclass   # decorator to automatically generate init, repr, etc.
class Connection:   # container class for storing info about each connected user
    identity: str     # unique name given in the handshake
    handle: Any       # transport connected to the user (send / recv / close)
    avatar: str


class ConnectionRegistry:
    # This class manages all live connections, keyed by identity
    def __init__(self):
        self.lock = Lock()  # guards the mapping below
        self.connections: Dict[str, Connection] = {}

    def register(self, identity: str, handle) -> Connection:
        '''
        This function adds a connection, replacing any existing one for the same identity.
        The replaced connection is not told about it; it just stops receiving broadcasts.
        '''
        conn = Connection(identity=identity, handle=handle, avatar=avatar_for(identity))
        with self.lock:
            previous = self.connections.pop(identity, None)   # pop so the new entry goes to the end
            self.connections[identity] = conn
        if previous is not None and previous.handle is not handle:
            logger.warning("Identity %r re-registered, previous connection evicted", identity)
        return conn

    def deregister(self, identity: str) -> None:
        '''
        This function removes the entry for identity, whichever connection it belongs to.
        An evicted connection that closes therefore also removes the connection that
        replaced it; the replacement keeps running but no longer receives broadcasts.
        '''
        with self.lock:
            self.connections.pop(identity, None)

    def snapshot(self) -> List[Connection]:
        ''' Copy of all connections, in registration order '''
        with self.lock:
            return list(self.connections.values())

    def get(self, identity: str) -> Optional[Connection]:
        with self.lock:
            return self.connections.get(identity)

    def identities(self) -> List[str]:
        with self.lock:
            return list(self.connections.keys())

    def __contains__(self, identity: str) -> bool:
        with self.lock:
            return identity in self.connections

    def __len__(self) -> int:
        with self.lock:
            return len(self.connections)


class MessageLog:
    '''
    Append-only, in-memory record of every message. Shares its lock with the
    SessionDirectory so that appends and summary updates are serialized together.
    '''

    def __init__(self, lock: Optional[Lock] = None):
        self.lock = lock or Lock()
        self._ids = itertools.count(1)
        self._messages: List[Message] = []

    def append(self, partial: InboundMessage) -> Message:
        '''
        This function stamps a client message and appends it to the log.
        Input:
            - partial: the sender / recipient / content sent by the client
        Output:
            - Message: the stored message with id, timestamp, is_read and avatar set
        Raises EmptySenderError if the sender is empty.
        '''
        avatar = avatar_for(partial.sender)
        with self.lock:
            msg = Message(
                id=next(self._ids),
                sender=partial.sender,
                recipient=partial.recipient,
                content=partial.content,
                timestamp=iso_now(),
                is_read=False,
                avatar=avatar,
            )
            self._messages.append(msg)
        return msg

    def history(self, recipient: str) -> Iterator[Message]:
        '''
        Messages addressed to recipient, in append order. The result is lazy but only
        covers what was in the log when history() was called.
        '''
        with self.lock:
            count = len(self._messages)
        return (m for m in itertools.islice(self._messages, count) if m.recipient == recipient)

    def __len__(self) -> int:
        with self.lock:
            return len(self._messages)


class SessionDirectory:
    # Ordered list of chat destinations with a summary of their latest message
    def __init__(self, lock: Optional[Lock] = None):
        self.lock = lock or Lock()
        self._sessions: List[Session] = []

    def add(self, session: Session) -> None:
        with self.lock:
            self._sessions.append(session)

    def update_summary(self, recipient: str, content: str, timestamp: str) -> bool:
        '''
        This function records the latest message of a session.
        Output:
            - True if a session with id == recipient exists and was updated,
              False otherwise. Unknown recipients are normal, sessions are never created here.
        '''
        with self.lock:
            for s in self._sessions:
                if s.id == recipient:
                    s.last_msg = content
                    s.last_time = timestamp
                    return True
        return False

    def list(self) -> List[Session]:
        ''' Copies of all sessions, in directory order '''
        with self.lock:
            return [replace(s) for s in self._sessions]


@dataclass
class ServerContext:
    '''
    Everything the connection handlers and HTTP routes share. Created once at
    startup (or once per test) and passed to whoever needs it.
    '''
    registry: ConnectionRegistry = field(default_factory=ConnectionRegistry)
    chat_lock: Lock = field(default_factory=Lock)   # covers log and directory together
    log: Optional[MessageLog] = None
    directory: Optional[SessionDirectory] = None

    def __post_init__(self):
        if self.log is None:
            self.log = MessageLog(self.chat_lock)
        if self.directory is None:
            self.directory = SessionDirectory(self.chat_lock)

    @classmethod
    def create(cls, seed_sessions: Optional[List[Session]] = None) -> "ServerContext":
        ctx = cls()
        for s in seed_sessions or []:
            ctx.directory.add(s)
        return ctx
