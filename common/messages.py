import datetime
from dataclasses import dataclass, asdict
from typing import Dict, Any

import emoji


def iso_now() -> str:
    '''Return current UTC time in ISO format'''
    return datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class EmptySenderError(ValueError):
    """Raised when an avatar has to be derived from an empty identity."""
    pass


def avatar_for(identity: str) -> str:
    '''
    The function derives the avatar marker shown next to a user's messages.
    It is the first character of the identity, or the whole leading emoji when the
    identity starts with one (so "👩‍💻dev" gives "👩‍💻" instead of a broken half).
    Input:
        - identity: the user's name
    Output:
        - str: the avatar marker
    '''
    if not identity:
        raise EmptySenderError("cannot derive an avatar from an empty identity")
    found = emoji.emoji_list(identity)
    if found and found[0]["match_start"] == 0:
        return found[0]["emoji"]
    return identity[0]


@dataclass(frozen=True)
class InboundMessage:   # what a client is allowed to set on a message frame
    sender: str
    recipient: str
    content: str


# Wire names differ from attribute names because "from" is a keyword.
@dataclass(frozen=True)
class Message:
    id: int
    sender: str
    recipient: str        # session id
    content: str
    timestamp: str        # ISO 8601, UTC
    is_read: bool
    avatar: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "from": self.sender,
            "to": self.recipient,
            "content": self.content,
            "timestamp": self.timestamp,
            "is_read": self.is_read,
            "avatar": self.avatar,
        }

    @classmethod
    def from_dict(cls, obj: Dict[str, Any]) -> "Message":
        return cls(
            id=int(obj.get("id", 0)),
            sender=obj.get("from", ""),
            recipient=obj.get("to", ""),
            content=obj.get("content", ""),
            timestamp=obj.get("timestamp", ""),
            is_read=bool(obj.get("is_read", False)),
            avatar=obj.get("avatar", ""),
        )


@dataclass
class Session:
    id: str
    name: str
    avatar: str           # image URL
    is_group: bool
    last_msg: str
    last_time: str        # ISO 8601, UTC
    unread: int = 0       # reserved, nothing increments it yet

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
