"""
HTTP routes answered on the same port as the WebSocket endpoint.

The websockets server hands every incoming request to ``process_request``
before the upgrade; returning a Response answers it as plain HTTP, returning
None lets the WebSocket handshake go ahead.
"""

import email.utils
import json
import logging
from http import HTTPStatus
from typing import Any, Optional
from urllib.parse import parse_qs, urlsplit

from websockets.datastructures import Headers
from websockets.http11 import Request, Response

from server.state import ServerContext

logger = logging.getLogger(__name__)

WS_PATH = "/ws"
JSON_TYPE = "application/json"
HTML_TYPE = "text/html; charset=utf-8"


def make_response(status: HTTPStatus, body: bytes = b"", content_type: Optional[str] = None) -> Response:
    headers = Headers()
    headers["Date"] = email.utils.formatdate(usegmt=True)
    headers["Connection"] = "close"
    headers["Content-Length"] = str(len(body))
    if content_type:
        headers["Content-Type"] = content_type
    return Response(status.value, status.phrase, headers, body)


def json_response(payload: Any, status: HTTPStatus = HTTPStatus.OK) -> Response:
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    return make_response(status, body, JSON_TYPE)


class HttpApi:
    """Serves the REST endpoints and the landing page from a ServerContext."""

    def __init__(self, ctx: ServerContext, index_path: str):
        self.ctx = ctx
        self.index_path = index_path

    def __call__(self, connection, request: Request) -> Optional[Response]:
        return self.process_request(connection, request)

    def process_request(self, connection, request: Request) -> Optional[Response]:
        url = urlsplit(request.path)
        if url.path == WS_PATH:
            return None
        if url.path == "/api/sessions":
            return self.sessions()
        if url.path == "/api/messages":
            params = parse_qs(url.query)
            return self.messages(params.get("session_id", [""])[0])
        return self.index()

    def sessions(self) -> Response:
        return json_response([s.to_dict() for s in self.ctx.directory.list()])

    def messages(self, session_id: str) -> Response:
        if not session_id:
            logger.info("GET /api/messages without session_id")
            return make_response(HTTPStatus.BAD_REQUEST)
        return json_response([m.to_dict() for m in self.ctx.log.history(session_id)])

    def index(self) -> Response:
        try:
            with open(self.index_path, "rb") as f:
                body = f.read()
        except FileNotFoundError:
            logger.warning("Landing page %s not found", self.index_path)
            return make_response(HTTPStatus.NOT_FOUND)
        return make_response(HTTPStatus.OK, body, HTML_TYPE)
