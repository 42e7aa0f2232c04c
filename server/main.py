import argparse
import logging
import sys
from typing import Optional, Sequence

from websockets.sync.server import Server, serve

from server.config import ConfigError, ServerConfig, parse_port
from server.handler import make_handler
from server.http_api import WS_PATH, HttpApi
from server.logger import setup_logging
from server.state import ServerContext

logger = logging.getLogger(__name__)


def build_server(config: ServerConfig, ctx: Optional[ServerContext] = None) -> Server:
    '''
    This function creates the listening server: WebSocket chat on /ws, the REST
    endpoints and the landing page on everything else. Each connection runs on its own thread.
    Inputs:
        - config: where to listen and what to serve
        - ctx: shared state, created from config.sessions when not given
    Output:
        - the websockets Server (call serve_forever() / shutdown())
    '''
    if ctx is None:
        ctx = ServerContext.create(config.sessions)
    return serve(
        make_handler(ctx),
        config.host,
        config.port,
        process_request=HttpApi(ctx, config.index_path),
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> ServerConfig:
    try:
        config = ServerConfig.from_env()
    except ConfigError as e:
        sys.exit(f"Invalid configuration: {e}")

    ap = argparse.ArgumentParser(description="Real-time chat relay server")
    ap.add_argument("--host", default=config.host, help="Address to listen on")
    ap.add_argument("--port", default=None, help="Port to listen on (default: $PORT or 3000)")
    ap.add_argument("--log-level", default=config.log_level, help="DEBUG, INFO, WARNING, ...")
    args = ap.parse_args(argv)

    config.host = args.host
    config.log_level = args.log_level.upper()
    if args.port is not None:
        try:
            config.port = parse_port(args.port)
        except ConfigError as e:
            ap.error(str(e))
    return config


def main(argv: Optional[Sequence[str]] = None):
    config = parse_args(argv)
    try:
        setup_logging(config.log_level)
    except ValueError as e:
        sys.exit(f"Invalid configuration: {e}")

    with build_server(config) as server:
        logger.info("Server listening on http://%s:%d (chat on %s)", config.host, config.port, WS_PATH)
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            logger.info("Shutting down")


if __name__ == "__main__":
    main()
