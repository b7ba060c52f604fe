"""Local HTTP server that exposes playable references to the AR runtime."""

import errno
import socket
import threading
from typing import Optional

from flask import Flask, abort, send_file
from werkzeug.serving import make_server

from .config import OBJECT_SERVER_HOST, OBJECT_SERVER_PORT, OBJECT_SERVER_PORT_FALLBACKS
from .object_urls import ObjectUrlRegistry


def create_app(registry: ObjectUrlRegistry) -> Flask:
    app = Flask(__name__)

    @app.route("/objects/<token>")
    def serve_object(token: str):
        obj = registry.resolve(token)
        if obj is None or not obj.path.exists():
            abort(404)
        return send_file(obj.path, mimetype=obj.mime_type, conditional=True)

    @app.route("/health")
    def health():
        return {"status": "ok", "objects": len(registry)}

    return app


class ObjectServer:
    """Serves a Flask app from a daemon thread on the first free port."""

    def __init__(self, app: Flask, host: str = OBJECT_SERVER_HOST):
        self.app = app
        self.host = host
        self.port: Optional[int] = None
        self._server = None
        self._thread: Optional[threading.Thread] = None

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def start(self) -> bool:
        candidates = [OBJECT_SERVER_PORT]
        for candidate in OBJECT_SERVER_PORT_FALLBACKS:
            if candidate not in candidates:
                candidates.append(candidate)

        for port in candidates:
            if not _can_bind(self.host, port):
                print(f"⚠️ Port {port} is in use. Trying next available port...")
                continue
            try:
                self._server = make_server(self.host, port, self.app, threaded=True)
            except OSError as exc:
                if exc.errno == errno.EADDRINUSE:
                    print(f"⚠️ Port {port} became busy. Trying next available port...")
                    continue
                raise
            self.port = port
            self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
            self._thread.start()
            print(f"Serving hologram videos on {self.base_url}")
            return True

        print("❌ Unable to start the video server; all configured ports are busy.")
        return False

    def stop(self) -> None:
        if self._server is not None:
            self._server.shutdown()
            self._server = None
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None


def _can_bind(host: str, port: int) -> bool:
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
        return True
    except OSError:
        return False
