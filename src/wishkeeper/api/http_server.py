import json
import logging
import re
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlsplit

from wishkeeper.api.service import ApiService
from wishkeeper.errors import AuthorizationError, InvalidRange, PersistenceError, ValidationError

_ID = r"([^/]+)"

logger = logging.getLogger(__name__)

POST_ROUTES = [
    (re.compile(r"^/session/load$"), lambda s, body: s.load()),
    (re.compile(r"^/session/login$"), lambda s, body: s.login(body)),
    (re.compile(r"^/session/logout$"), lambda s, body: s.logout()),
    (re.compile(r"^/session/select$"), lambda s, body: s.select_collection(body)),
    (re.compile(r"^/session/filter$"), lambda s, body: s.set_filter(body)),
    (re.compile(r"^/containers$"), lambda s, body: s.create_container(body)),
    (re.compile(rf"^/containers/{_ID}/rename$"), lambda s, body, c: s.rename_container(c, body)),
    (re.compile(rf"^/containers/{_ID}/toggle$"), lambda s, body, c: s.toggle_container(c)),
    (re.compile(rf"^/containers/{_ID}/delete$"), lambda s, body, c: s.delete_container(c, body)),
    (re.compile(r"^/collections$"), lambda s, body: s.create_collection(body)),
    (re.compile(rf"^/collections/{_ID}/rename$"), lambda s, body, c: s.rename_collection(c, body)),
    (re.compile(rf"^/collections/{_ID}/christmas$"), lambda s, body, c: s.set_christmas(c, body)),
    (re.compile(rf"^/collections/{_ID}/container$"), lambda s, body, c: s.move_collection(c, body)),
    (re.compile(rf"^/collections/{_ID}/delete$"), lambda s, body, c: s.delete_collection(c)),
    (re.compile(rf"^/collections/{_ID}/entries$"), lambda s, body, c: s.create_entry(c, body)),
    (re.compile(rf"^/collections/{_ID}/reorder$"), lambda s, body, c: s.reorder_entries(c, body)),
    (
        re.compile(rf"^/collections/{_ID}/entries/{_ID}/step$"),
        lambda s, body, c, e: s.move_entry_step(c, e, body),
    ),
    (
        re.compile(rf"^/collections/{_ID}/entries/{_ID}/bought$"),
        lambda s, body, c, e: s.toggle_bought(c, e),
    ),
    (
        re.compile(rf"^/collections/{_ID}/entries/{_ID}/starred$"),
        lambda s, body, c, e: s.toggle_starred(c, e),
    ),
    (
        re.compile(rf"^/collections/{_ID}/entries/{_ID}/edit$"),
        lambda s, body, c, e: s.edit_entry(c, e, body),
    ),
    (
        re.compile(rf"^/collections/{_ID}/entries/{_ID}/delete$"),
        lambda s, body, c, e: s.delete_entry(c, e),
    ),
]

ENTRIES_PATH = re.compile(rf"^/collections/{_ID}/entries$")


def create_server(
    host: str = "127.0.0.1", port: int = 8000, service: ApiService | None = None
) -> ThreadingHTTPServer:
    service = service if service is not None else ApiService()

    class WishkeeperHandler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:  # noqa: N802
            path = urlsplit(self.path).path
            if path == "/health":
                self._respond(200, service.health())
                return

            if path == "/state":
                self._respond(200, service.get_state())
                return

            match = ENTRIES_PATH.match(path)
            if match:
                self._respond(200, service.get_entries(match.group(1)))
                return

            self._respond(404, {"error": "not found"})

        def do_POST(self) -> None:  # noqa: N802
            path = urlsplit(self.path).path
            for pattern, handler in POST_ROUTES:
                match = pattern.match(path)
                if match:
                    break
            else:
                self._respond(404, {"error": "not found"})
                return

            try:
                result = handler(service, self._payload(), *match.groups())
            except AuthorizationError as exc:
                self._respond(403, {"error": str(exc)})
                return
            except (ValidationError, InvalidRange) as exc:
                self._respond(400, {"error": str(exc)})
                return
            except PersistenceError as exc:
                self._respond(502, {"error": str(exc)})
                return

            self._respond(502 if result.get("ok") is False else 200, result)

        def log_message(self, format: str, *args) -> None:  # noqa: A003
            logger.debug("%s %s", self.address_string(), format % args)

        def _payload(self) -> dict:
            """Request body as a JSON object; an absent body is an empty one."""
            length = self.headers.get("Content-Length") or "0"
            if not length.isdigit():
                raise ValidationError("invalid json")
            raw = self.rfile.read(int(length)) if int(length) else b"{}"
            try:
                payload = json.loads(raw)
            except ValueError:
                raise ValidationError("invalid json") from None
            if not isinstance(payload, dict):
                raise ValidationError("invalid json")
            return payload

        def _respond(self, status: int, body: dict) -> None:
            data = json.dumps(body).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            self.wfile.write(data)

    return ThreadingHTTPServer((host, port), WishkeeperHandler)
