"""
Main entry point for the console chat client.
Connect with a name, print incoming messages, send whatever is typed.
"""
import argparse

from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI
import requests

from common.messages import Message
from .net import NetClient

HELP = """Commands:
  /sessions      list chat sessions
  /history       show messages of the current session
  /to <id>       switch the current session
  /quit          leave"""


def format_message(msg: Message) -> str:
    return f"[{msg.timestamp}] ({msg.avatar}) {msg.sender} -> {msg.recipient}: {msg.content}"


def run_command(net: NetClient, line: str, room: str) -> str:
    '''
    Handle one "/" command typed by the user.
    Output: the session messages should go to afterwards
    '''
    cmd, _, arg = line.partition(" ")
    if cmd == "/sessions":
        for s in net.sessions():
            marker = "*" if s.id == room else " "
            print(f"{marker} {s.id:<20} {s.name}  | {s.last_msg}")
    elif cmd == "/history":
        for msg in net.history(room):
            print(format_message(msg))
    elif cmd == "/to" and arg.strip():
        room = arg.strip()
        print(f"Now sending to {room}")
    else:
        print(HELP)
    return room


def main():
    """
    Start the console client.

    Step 1: Connect to server and send the name as handshake
    Step 2: Read lines from stdin until /quit or end of input
    """
    ap = argparse.ArgumentParser()
    ap.add_argument("--host", default="127.0.0.1", help="Server host address")
    ap.add_argument("--port", type=int, default=3000, help="Server port")
    ap.add_argument("--name", required=True, help="Name to chat as")
    ap.add_argument("--room", default="public-chat", help="Session to send messages to")
    args = ap.parse_args()

    if not args.name:
        ap.error("name must not be empty")

    net = NetClient(args.host, args.port, args.name,
                    on_message=lambda m: print(format_message(m)),
                    on_disconnect=lambda: print("Disconnected."))
    try:
        net.connect()
    except (OSError, InvalidHandshake, InvalidURI) as e:
        ap.exit(1, f"Could not connect to {net.ws_url}: {e}\n")

    print(f"Connected as user: {args.name}, sending to {args.room}. Type /help for commands.")
    room = args.room
    try:
        while net.running:
            try:
                line = input()
            except EOFError:
                break
            if not line:
                continue
            if line == "/quit":
                break
            if line.startswith("/"):
                try:
                    room = run_command(net, line, room)
                except requests.RequestException as e:
                    print(f"Request failed: {e}")
                continue
            try:
                net.send_message(room, line)
            except ConnectionClosed:
                break
    except KeyboardInterrupt:
        pass
    finally:
        net.close()


if __name__ == "__main__":
    main()
