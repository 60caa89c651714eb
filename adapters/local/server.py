"""
Candor Local Server

A simple HTTP server that wires all local adapters together.

Routes:
    POST /webhooks/{slack|google_chat|teams}   platform webhooks
    POST /api/sessions/{session_id}/token      issue a session token (verified bearer JWT)
    GET  /api/sessions/verify?token=...        verify a session token
    GET  /health

Requests are served on threads; all async work runs on one shared event
loop so per-conversation locks see every request.

Usage:
    python -m adapters.local.server
"""

import asyncio
import concurrent.futures
import json
import logging
import re
import sys
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qs, urlparse

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from adapters.local.auth_middleware import AuthError, JWTVerifier, extract_auth
from candor.config.bootstrap import Application, build_application
from candor.config.settings import Settings
from candor.errors.exceptions import CandorError, ConfigurationError
from candor.models.message import ChatPlatform, RawRequest
from candor.webhooks.handler import WebhookResponse

logger = logging.getLogger("candor.server")

TOKEN_PATH = re.compile(r"^/api/sessions/([^/]+)/token$")
WEBHOOK_PREFIX = "/webhooks/"

# Upper bound on one inbound turn; past it the platform is asked to redeliver
WEBHOOK_TIMEOUT_SECONDS = 120

# --- Global state (initialized in init) ---
app: Application
loop: asyncio.AbstractEventLoop
verifier: Optional[JWTVerifier] = None


def _run_async(coro, timeout: float = 120):
    """Run a coroutine on the shared loop from a request thread.

    On timeout the coroutine is cancelled and concurrent.futures.TimeoutError
    propagates.
    """
    future = asyncio.run_coroutine_threadsafe(coro, loop)
    try:
        return future.result(timeout)
    except concurrent.futures.TimeoutError:
        future.cancel()
        raise


def dispatch_webhook(
    platform: ChatPlatform, request: RawRequest, timeout: float = WEBHOOK_TIMEOUT_SECONDS
) -> WebhookResponse:
    """Hand a webhook to the shared loop. A timed-out turn asks for redelivery."""
    try:
        return _run_async(app.webhooks.handle(platform, request), timeout)
    except concurrent.futures.TimeoutError:
        logger.error(f"{platform.value} webhook timed out after {timeout}s")
        return WebhookResponse(503, {"error": "Timed out", "retryable": True})


class CandorHandler(BaseHTTPRequestHandler):
    """HTTP request handler for webhooks and the session token API."""

    def do_GET(self):
        parsed = urlparse(self.path)

        if parsed.path == "/health":
            self._json_response({
                "status": "ok",
                "platforms": [p.value for p in app.adapters.registered_platforms()],
                "llm_providers": app.llm.providers(),
                "active_conversations": app.orchestrator.locks.active(),
            })
        elif parsed.path == "/api/sessions/verify":
            self._handle_verify(parse_qs(parsed.query).get("token", [""])[0])
        else:
            self.send_error(404)

    def do_POST(self):
        path = urlparse(self.path).path

        if path.startswith(WEBHOOK_PREFIX):
            self._handle_webhook(path[len(WEBHOOK_PREFIX):].strip("/"))
            return

        match = TOKEN_PATH.match(path)
        if match:
            self._handle_issue_token(match.group(1))
        else:
            self.send_error(404)

    def _handle_webhook(self, platform_name: str):
        try:
            platform = ChatPlatform(platform_name)
        except ValueError:
            self._json_response({"error": f"Unknown platform: {platform_name}"}, 404)
            return

        raw_body = self._read_body()
        try:
            parsed = json.loads(raw_body) if raw_body else {}
        except json.JSONDecodeError:
            self._json_response({"error": "Body must be JSON"}, 400)
            return
        if not isinstance(parsed, dict):
            self._json_response({"error": "Body must be a JSON object"}, 400)
            return

        request = RawRequest(headers=dict(self.headers.items()), raw_body=raw_body, parsed=parsed)
        response = dispatch_webhook(platform, request)
        self._json_response(response.body, response.status)

    def _handle_issue_token(self, session_id: str):
        try:
            auth = extract_auth(self.headers, verifier)
        except AuthError as e:
            self._json_response({"error": e.message}, e.status)
            return

        try:
            token = app.session_tokens.issue(auth.user_id, auth.org_id, session_id)
        except ConfigurationError as e:
            logger.error(f"Session token issue failed: {e}")
            self._json_response({"error": "Session tokens are not configured"}, 503)
            return

        self._json_response({
            "token": token,
            "expires_in": app.session_tokens.ttl_seconds,
        })

    def _handle_verify(self, token: str):
        payload = app.session_tokens.verify(token)
        if payload is None:
            self._json_response({"valid": False}, 401)
            return
        self._json_response({
            "valid": True,
            "userId": payload.user_id,
            "orgId": payload.org_id,
            "sessionId": payload.session_id,
            "exp": payload.exp,
        })

    def _read_body(self) -> bytes:
        length = int(self.headers.get("Content-Length") or 0)
        return self.rfile.read(length) if length else b""

    def _json_response(self, data: dict, status: int = 200):
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.end_headers()
        self.wfile.write(json.dumps(data, default=str).encode())

    def log_message(self, format, *args):
        pass


def _start_loop() -> asyncio.AbstractEventLoop:
    event_loop = asyncio.new_event_loop()
    thread = threading.Thread(target=event_loop.run_forever, name="candor-loop", daemon=True)
    thread.start()
    return event_loop


def init(settings: Settings) -> None:
    """Initialize all components."""
    global app, loop, verifier

    loop = _start_loop()
    verifier = JWTVerifier.from_settings(settings)
    if verifier is None:
        logger.warning("AUTH_JWT_SECRET / AUTH_JWKS_URL not set; session token issuing is disabled")
    try:
        app = _run_async(build_application(settings))
    except CandorError as e:
        logger.error(f"Startup failed: {e}")
        sys.exit(1)


def main():
    settings = Settings.from_env(".env")
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    init(settings)

    server = ThreadingHTTPServer(("0.0.0.0", settings.port), CandorHandler)
    logger.info(f"Candor server listening on http://localhost:{settings.port}")
    logger.info(f"  Webhooks: /webhooks/{{{'|'.join(p.value for p in ChatPlatform)}}}")

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        server.server_close()
        loop.call_soon_threadsafe(loop.stop)


if __name__ == "__main__":
    main()
