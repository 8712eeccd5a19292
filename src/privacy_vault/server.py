"""HTTP service for privacy-vault.

Endpoints:
    GET  /health              — Health check
    POST /anonymize           — {"message"} → {"anonymizedMessage"}
    POST /deanonymize         — {"anonymizedMessage"} → {"message"}
    POST /secure-completion   — {"prompt", "systemPrompt", "model",
                                 "temperature", "maxTokens"} → {"response"}

All endpoints expect/return JSON.  Internal failures are logged here and
reported to the caller as a generic per-endpoint error; a failed completion
call is a 502, distinct from the 500 of a store failure.
"""

from __future__ import annotations
import json
import logging
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

from .completion import CompletionClient, CompletionParams
from .config import VaultSettings, create_completion, create_relay, load_settings
from .errors import CompletionFailedError, InvalidInputError, VaultError
from .relay import SecureRelay

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-OpenAI-API-Key"


class _RequestTooLarge(Exception):
    pass


class VaultHTTPServer(ThreadingHTTPServer):
    """Threaded HTTP server carrying the relay and settings for its handlers."""

    daemon_threads = True

    def __init__(self, address: tuple[str, int], relay: SecureRelay, settings: VaultSettings) -> None:
        super().__init__(address, VaultHandler)
        self.relay = relay
        self.settings = settings


class VaultHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the vault."""

    server: VaultHTTPServer

    def _read_json(self) -> dict[str, Any]:
        length = int(self.headers.get("Content-Length") or 0)
        if length < 0:
            raise ValueError("negative Content-Length")
        if length > self.server.settings.max_body_bytes:
            # Drain so the client sees the 413 rather than a reset
            remaining = length
            while remaining > 0:
                chunk = self.rfile.read(min(remaining, 65536))
                if not chunk:
                    break
                remaining -= len(chunk)
            raise _RequestTooLarge()
        body = self.rfile.read(length).decode("utf-8")
        data = json.loads(body) if body else {}
        return data if isinstance(data, dict) else {}

    def _respond(self, status: int, data: Any) -> None:
        body = json.dumps(data, ensure_ascii=False).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)

    def do_GET(self) -> None:
        if self.path == "/health":
            try:
                tokens = self.server.relay.tokenizer.store.size
            except VaultError as e:
                logger.error("health check failed: %s", e)
                self._respond(503, {"status": "unavailable"})
                return
            self._respond(200, {"status": "ok", "tokens": tokens})
        else:
            self._respond(404, {"error": "Not Found"})

    def do_POST(self) -> None:
        routes = {
            "/anonymize": (self._anonymize, "Failed to anonymize message."),
            "/deanonymize": (self._deanonymize, "Failed to deanonymize message."),
            "/secure-completion": (self._secure_completion, "Failed to process secure completion request."),
        }
        try:
            body = self._read_json()
        except _RequestTooLarge:
            self._respond(413, {"error": "Request body too large."})
            return
        except ValueError:
            self._respond(400, {"error": "Invalid request: body must be JSON."})
            return

        route = routes.get(self.path)
        if route is None:
            self._respond(404, {"error": "Not Found"})
            return
        handler, failure = route

        try:
            result = handler(body)
        except InvalidInputError as e:
            self._respond(400, {"error": f"Invalid request: {e}."})
        except CompletionFailedError as e:
            logger.error("%s failed: %s", self.path, e)
            self._respond(502, {"error": "Completion service failed."})
        except VaultError as e:
            logger.error("%s failed: %s", self.path, e)
            self._respond(500, {"error": failure})
        except Exception:
            logger.exception("%s failed unexpectedly", self.path)
            self._respond(500, {"error": failure})
        else:
            self._respond(200, result)

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    def _anonymize(self, body: dict[str, Any]) -> dict[str, Any]:
        message = body.get("message")
        if not isinstance(message, str) or not message.strip():
            raise InvalidInputError('"message" must be a non-empty string')
        result = self.server.relay.anonymize(message)
        return {"anonymizedMessage": result.text}

    def _deanonymize(self, body: dict[str, Any]) -> dict[str, Any]:
        text = body.get("anonymizedMessage")
        if not isinstance(text, str) or not text.strip():
            raise InvalidInputError('"anonymizedMessage" must be a non-empty string')
        return {"message": self.server.relay.deanonymize(text)}

    def _secure_completion(self, body: dict[str, Any]) -> dict[str, Any]:
        prompt = body.get("prompt")
        if not isinstance(prompt, str) or not prompt.strip():
            raise InvalidInputError('"prompt" must be a non-empty string')
        params = CompletionParams.from_request(
            system_prompt=body.get("systemPrompt"),
            model=body.get("model"),
            temperature=body.get("temperature"),
            max_output_length=body.get("maxTokens"),
        )
        response = self.server.relay.relay(prompt, params, completion=self._completion())
        return {"response": response}

    def _completion(self) -> CompletionClient:
        header_key = self.headers.get(API_KEY_HEADER)
        if header_key:
            return create_completion(self.server.settings, api_key=header_key)
        if self.server.relay.completion is not None:
            return self.server.relay.completion
        return create_completion(self.server.settings)


def make_server(
    settings: VaultSettings,
    relay: SecureRelay | None = None,
) -> VaultHTTPServer:
    """Bind (but don't start) the HTTP server."""
    relay = relay or create_relay(settings)
    return VaultHTTPServer((settings.host, settings.port), relay, settings)


def serve(settings: VaultSettings | None = None) -> None:
    """Start the HTTP service and block until interrupted."""
    settings = settings or load_settings()
    server = make_server(settings)
    host, port = server.server_address[:2]
    logger.info("privacy-vault listening on http://%s:%s", host, port)
    logger.info("  store: %s (%s)", settings.store_backend, settings.db_path)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("shutting down")
    finally:
        server.server_close()
        server.relay.tokenizer.store.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    serve()
