import contextlib
import logging
import threading
from typing import Optional, Callable, List

import requests
from websockets.exceptions import ConnectionClosed
from websockets.sync.client import connect as ws_connect

from common.messages import Message, Session
from common.protocol import FrameError, send_identity, send_json, recv_stamped

HTTP_TIMEOUT = 5  # seconds

logger = logging.getLogger(__name__)


class NetClient:
    ''' Network client for the chat relay '''
    def __init__(self, host: str, port: int, username: str,
                 on_message: Optional[Callable[[Message], None]] = None,
                 on_disconnect: Optional[Callable[[], None]] = None):
        self.host, self.port, self.username = host, port, username
        self.ws = None
        self._stack = contextlib.ExitStack()   # owns the WebSocket connection
        # Backlog messages until a handler attaches; then flush
        self._on_message: Optional[Callable[[Message], None]] = None   # when a message is received, this function will be called
        self._backlog: List[Message] = []   # store messages received before a handler attaches
        self._lock = threading.RLock()   # held while callbacks run so delivery stays in order
        if on_message:
            self.on_message = on_message
        self.on_disconnect = on_disconnect
        self.recv_thread: Optional[threading.Thread] = None   # thread for receiving messages
        self.running = False

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def ws_url(self) -> str:
        return f"ws://{self.host}:{self.port}/ws"

    @property
    def on_message(self) -> Optional[Callable[[Message], None]]:
        ''' The callback function for handling incoming messages '''
        return self._on_message

    @on_message.setter
    def on_message(self, cb: Optional[Callable[[Message], None]]):
        '''
        Set the callback for incoming messages. If there are any backlog messages received before
        the handler attached, flush them now.
        Input:
            - cb: callback function that accepts a Message
        '''
        with self._lock:
            self._on_message = cb
            if cb is None:
                return
            pending, self._backlog = self._backlog, []
            for msg in pending:
                self._call(cb, msg)

    def connect(self):
        ''' Open the WebSocket, send the handshake and start listening '''
        self.ws = self._stack.enter_context(ws_connect(self.ws_url))
        try:
            send_identity(self.ws, self.username)
        except Exception:
            self._stack.close()
            raise
        self.running = True
        self.recv_thread = threading.Thread(target=self._recv_loop, daemon=True)
        self.recv_thread.start()

    def close(self):
        self.running = False
        self._stack.close()
        if self.recv_thread is not None and self.recv_thread is not threading.current_thread():
            self.recv_thread.join(timeout=HTTP_TIMEOUT)

    def send_message(self, to: str, content: str):
        ''' Send a message to a session; the server fills in id, timestamp and avatar '''
        send_json(self.ws, {"from": self.username, "to": to, "content": content})

    def sessions(self) -> List[Session]:
        ''' Fetch the session directory '''
        res = requests.get(f"{self.base_url}/api/sessions", timeout=HTTP_TIMEOUT)
        res.raise_for_status()
        return [Session(**s) for s in res.json()]

    def history(self, session_id: str) -> List[Message]:
        ''' Fetch every message sent to session_id, oldest first '''
        res = requests.get(f"{self.base_url}/api/messages",
                           params={"session_id": session_id}, timeout=HTTP_TIMEOUT)
        res.raise_for_status()
        return [Message.from_dict(m) for m in res.json() or []]

    def _call(self, cb: Callable[[Message], None], msg: Message):
        try:
            cb(msg)
        except Exception:
            # a failing handler must not stop the receive thread
            logger.exception("on_message handler failed for message %d", msg.id)

    def _deliver(self, msg: Message):
        with self._lock:
            cb = self._on_message
            if cb is None:
                self._backlog.append(msg)  # no handler yet, replay later
                return
            self._call(cb, msg)

    def _recv_loop(self):
        ''' Thread function to receive messages from server '''
        try:
            while self.running:
                self._deliver(recv_stamped(self.ws))
        except (ConnectionClosed, FrameError):
            pass
        finally:
            self.running = False
            if self.on_disconnect:
                self.on_disconnect()
