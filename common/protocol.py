import json
from typing import Any, Dict, Union

from common.messages import InboundMessage, Message

ENC = "utf-8"   # encoding for binary frames

# A transport is anything with send(str) / recv() -> str | bytes / close(),
# e.g. a websockets ServerConnection or ClientConnection.


class FrameError(ValueError):
    """Raised when a frame cannot be decoded into what the protocol expects."""
    pass


def _as_text(frame: Union[str, bytes]) -> str:
    if isinstance(frame, bytes):
        try:
            return frame.decode(ENC)
        except UnicodeDecodeError as e:
            raise FrameError(f"frame is not valid {ENC}") from e
    return frame


def send_json(conn, obj: Dict[str, Any]) -> None:
    '''
    The function sends an object that can be converted to JSON as one text frame.
    Inputs:
        - conn: the transport to send through
        - obj: dict - the object to be sent
    Output: None
    '''
    conn.send(json.dumps(obj, ensure_ascii=False))


def recv_json(conn) -> Dict[str, Any]:
    '''
    The function receives one frame and decodes it into a JSON object.
    Input:
        - conn: the transport to receive from
    Output:
        - dict - the received JSON object
    Raises FrameError if the frame is not a JSON object; transport errors
    (connection closed) propagate unchanged.
    '''
    text = _as_text(conn.recv())
    try:
        obj = json.loads(text)
    except json.JSONDecodeError as e:
        raise FrameError(f"malformed JSON frame: {e.msg}") from e
    if not isinstance(obj, dict):
        raise FrameError("frame is not a JSON object")
    return obj


def send_identity(conn, identity: str) -> None:
    ''' The handshake frame is the bare identity as plain text '''
    conn.send(identity)


def recv_identity(conn) -> str:
    ''' Receive the handshake frame; may return an empty string '''
    return _as_text(conn.recv())


def encode_message(msg: Message) -> str:
    return json.dumps(msg.to_dict(), ensure_ascii=False)


def send_message(conn, msg: Message) -> None:
    conn.send(encode_message(msg))


def recv_message(conn) -> InboundMessage:
    '''
    Receive a client message frame. Only "from", "to" and "content" are read;
    everything else the client sends is ignored since the server stamps it.
    Missing "to"/"content" are treated as empty strings.
    '''
    obj = recv_json(conn)
    fields = {}
    for key in ("from", "to", "content"):
        value = obj.get(key)
        if value is None:
            value = ""
        if not isinstance(value, str):
            raise FrameError(f"field {key!r} must be a string")
        fields[key] = value
    return InboundMessage(sender=fields["from"], recipient=fields["to"], content=fields["content"])


def recv_stamped(conn) -> Message:
    ''' Client side: receive a fully stamped message from the server '''
    return Message.from_dict(recv_json(conn))
