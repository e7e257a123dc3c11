#!/usr/bin/env python3
"""Local stand-in for the Supabase auth and storage endpoints the API calls."""
from __future__ import annotations

import argparse
import json
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

BUCKETS = {"blog-images", "logos"}

USERS: dict[str, dict[str, object]] = {
    "admin-token": {
        "id": "11111111-1111-1111-1111-111111111111",
        "email": "admin@example.com",
        "app_metadata": {"role": "admin"},
        "user_metadata": {},
    },
    "user-token": {
        "id": "33333333-3333-3333-3333-333333333333",
        "email": "user@example.com",
        "app_metadata": {"provider": "github"},
        # Ignored by the API: user_metadata never grants a role.
        "user_metadata": {"role": "admin"},
    },
}


class MockSupabaseHandler(BaseHTTPRequestHandler):
    server_version = "MockSupabase/1.0"

    def do_GET(self) -> None:  # noqa: N802 - stdlib handler signature
        if self.path == "/healthz":
            self._write_json(HTTPStatus.OK, {"status": "ok"})
            return

        if self.path != "/auth/v1/user":
            self._write_json(HTTPStatus.NOT_FOUND, {"message": "not found"})
            return

        user = self._current_user()
        if user is None:
            self._write_json(HTTPStatus.UNAUTHORIZED, {"message": "invalid token"})
            return
        self._write_json(HTTPStatus.OK, user)

    def do_POST(self) -> None:  # noqa: N802 - stdlib handler signature
        prefix = "/storage/v1/object/"
        if not self.path.startswith(prefix):
            self._write_json(HTTPStatus.NOT_FOUND, {"message": "not found"})
            return

        bucket, _, object_path = self.path[len(prefix) :].partition("/")
        length = int(self.headers.get("Content-Length", "0"))
        self.rfile.read(length)

        if bucket not in BUCKETS:
            self._write_json(HTTPStatus.NOT_FOUND, {"error": "Bucket not found", "message": "Bucket not found"})
            return
        if self._current_user() is None:
            self._write_json(HTTPStatus.FORBIDDEN, {"message": "new row violates row-level security policy"})
            return
        self._write_json(HTTPStatus.OK, {"Key": f"{bucket}/{object_path}"})

    def log_message(self, _: str, *args: object) -> None:
        if args:
            print("mock-supabase:", *args)

    def _current_user(self) -> dict[str, object] | None:
        authorization = self.headers.get("Authorization", "")
        if not authorization.lower().startswith("bearer "):
            return None
        return USERS.get(authorization.split(" ", maxsplit=1)[1].strip())

    def _write_json(self, status: HTTPStatus, payload: dict[str, object]) -> None:
        raw = json.dumps(payload).encode("utf-8")
        self.send_response(status.value)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(raw)))
        self.end_headers()
        self.wfile.write(raw)


def main() -> None:
    parser = argparse.ArgumentParser(description="Mock Supabase auth and storage endpoints.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=54321)
    args = parser.parse_args()

    server = ThreadingHTTPServer((args.host, args.port), MockSupabaseHandler)
    print(f"mock-supabase listening on http://{args.host}:{args.port}", flush=True)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
