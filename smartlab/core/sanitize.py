"""Request scrubbing against NoSQL operator injection."""

import json
from typing import Any
from urllib.parse import parse_qsl, urlencode

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send


def is_forbidden_key(key: str) -> bool:
    """Keys that MongoDB would read as an operator or a dotted path."""
    return key.startswith("$") or "." in key


def scrub(value: Any) -> Any:
    """Recursively drop forbidden keys from dicts, including dicts inside lists."""
    if isinstance(value, dict):
        return {
            key: scrub(item)
            for key, item in value.items()
            if not (isinstance(key, str) and is_forbidden_key(key))
        }
    if isinstance(value, list):
        return [scrub(item) for item in value]
    return value


def scrub_query_string(query_string: bytes) -> bytes:
    if not query_string:
        return query_string
    pairs = parse_qsl(query_string.decode("latin-1"), keep_blank_values=True)
    kept = [(key, value) for key, value in pairs if not is_forbidden_key(key)]
    if len(kept) == len(pairs):
        return query_string
    return urlencode(kept).encode("latin-1")


class SanitizeMiddleware:
    """
    Pure ASGI middleware that scrubs query strings and JSON bodies before
    routing, so no handler ever sees a ``$``-prefixed or dotted key.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        scope = dict(scope)
        scope["query_string"] = scrub_query_string(scope.get("query_string", b""))

        content_type = Headers(scope=scope).get("content-type", "")
        if "application/json" not in content_type:
            await self.app(scope, receive, send)
            return

        body = b""
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                # Client went away before sending the body; nothing to serve
                return
            body += message.get("body", b"")
            more_body = message.get("more_body", False)

        try:
            payload = json.loads(body)
        except ValueError:
            # Let request validation report the malformed body
            pass
        else:
            body = json.dumps(scrub(payload)).encode("utf-8")
            scope["headers"] = [
                (name, value) for name, value in scope["headers"] if name != b"content-length"
            ] + [(b"content-length", str(len(body)).encode("latin-1"))]

        body_sent = False

        async def replay() -> Message:
            nonlocal body_sent
            if not body_sent:
                body_sent = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, replay, send)
