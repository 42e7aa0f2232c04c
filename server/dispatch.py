import logging

from common.messages import Message
from common.protocol import encode_message
from server.state import ConnectionRegistry

logger = logging.getLogger(__name__)


def broadcast(registry: ConnectionRegistry, msg: Message) -> int:
    '''
    This function sends a message to every registered connection except its sender.
    The peer list is copied under the registry lock and the sends happen without it,
    so a slow peer does not hold up new connections registering.
    Delivery is best effort: a failed send is logged and skipped.
    Inputs:
        - registry: the live connections
        - msg: the stamped message
    Output:
        - int: how many peers the message was delivered to
    '''
    data = encode_message(msg)
    delivered = 0
    for conn in registry.snapshot():
        if conn.identity == msg.sender:
            continue
        try:
            conn.handle.send(data)
        except Exception as e:
            logger.debug("Dropped message %d for %r: %s", msg.id, conn.identity, e)
            continue
        delivered += 1
    return delivered
