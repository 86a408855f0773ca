"""
ui_server.py
============
Flask app serving the shared folder: browse (/info), download (/f/...),
upload (POST /), delete (/f/del/...) and a server-sent-events stream that
tells browsers when the folder's fingerprint changes.
Built by main.py around a LiveContentCache; does NOT run its own watcher.
"""

import json
import os
import queue
import socket
import threading
import time
from pathlib import Path
from urllib.parse import quote

from flask import Flask, Response, abort, redirect, request, send_from_directory
from werkzeug.exceptions import HTTPException
from werkzeug.security import safe_join

from errors import ReadinessTimeout
from logger import get_logger

logger = get_logger("server")

CHUNK_SIZE = 64 * 1024


def get_addresses() -> list[str]:
    """Non-loopback IPv4 addresses of this host."""
    addresses = []
    try:
        infos = socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET)
    except OSError as e:
        logger.warning(f"cannot resolve local addresses: {e}")
        return addresses
    for info in infos:
        address = info[4][0]
        if not address.startswith("127.") and address not in addresses:
            addresses.append(address)
    return addresses


def unique_name(folder: Path, file_name: str) -> str:
    """``a.txt`` -> ``a dup0.txt`` -> ``a dup1.txt`` ... so uploads never overwrite."""
    stem, ext = os.path.splitext(file_name)
    candidate = file_name
    i = 0
    while (folder / candidate).exists():
        candidate = f"{stem} dup{i}{ext}"
        i += 1
    return candidate


# ── Push to all SSE clients ───────────────────────────────────────────────────
class Broadcaster:
    """Tells SSE clients when the snapshot fingerprint changes.

    ``notify`` is called after every applied watch event; bursts (e.g.
    copying many files) are coalesced into one check.
    """

    def __init__(self, cache, debounce: float = 0.25):
        self.cache = cache
        self.debounce = debounce
        self._clients: list[queue.Queue] = []
        self._lock = threading.Lock()
        self._timer = None
        self.last_fingerprint = None

    def subscribe(self, maxsize=100) -> queue.Queue:
        q: queue.Queue = queue.Queue(maxsize=maxsize)
        with self._lock:
            self._clients.append(q)
        return q

    def unsubscribe(self, q):
        with self._lock:
            if q in self._clients:
                self._clients.remove(q)

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def notify(self, event=None):
        with self._lock:
            if self._timer:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce, self.check)
            self._timer.daemon = True
            self._timer.start()

    def check(self) -> bool:
        """Publish the fingerprint if it moved. Never blocks on readiness."""
        if not self.cache.ready:
            return False
        entry = self.cache.get_snapshot()
        if entry.fingerprint == self.last_fingerprint:
            return False
        self.last_fingerprint = entry.fingerprint
        self.publish({"event": "changed", "rootContentMD5": entry.fingerprint, "ts": time.time()})
        return True

    def publish(self, payload: dict):
        data = json.dumps(payload)
        with self._lock:
            dead = []
            for q in self._clients:
                try:
                    q.put_nowait(data)
                except queue.Full:
                    dead.append(q)
            for q in dead:
                self._clients.remove(q)

    def stop(self):
        with self._lock:
            if self._timer:
                self._timer.cancel()
                self._timer = None


# ── App ───────────────────────────────────────────────────────────────────────
def create_app(config, cache, broadcaster: Broadcaster = None, addresses=None,
               progress_callback=None, error_callback=None) -> Flask:
    files_path = config.files_folder_path
    public_path = config.public_path
    port = config.port
    allow_deletion = config.allow_deletion
    progress_threshold = config.get("progress_threshold", default=10)
    ready_timeout = config.get("ready_timeout")
    if addresses is None:
        addresses = get_addresses()

    app = Flask(__name__, static_folder=str(public_path), static_url_path="")
    app.config["FILESHARE_ADDRESSES"] = addresses

    @app.after_request
    def cors(resp):
        resp.headers["Access-Control-Allow-Origin"] = "*"
        resp.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS, PUT, PATCH, DELETE"
        resp.headers["Access-Control-Allow-Headers"] = "X-Requested-With,content-type"
        resp.headers["Access-Control-Allow-Credentials"] = "true"
        return resp

    @app.route("/")
    def index():
        return send_from_directory(str(public_path), "index.html")

    @app.route("/f/<path:filename>")
    def download(filename):
        if config.is_disabled("file_download"):
            abort(404)
        return send_from_directory(str(files_path), filename)

    @app.route("/f/del/<path:filename>", methods=["GET", "DELETE"])
    def delete(filename):
        if not allow_deletion:
            abort(403)
        target = safe_join(str(files_path), filename)
        if target is None or not os.path.isfile(target):
            abort(404)
        try:
            os.remove(target)
        except FileNotFoundError:
            abort(404)
        logger.info(f"deleted {filename}")
        return {"deleted": filename}

    @app.route("/", methods=["POST"])
    def upload():
        files_path.mkdir(parents=True, exist_ok=True)
        uploads = [f for f in request.files.values() if f and f.filename]
        if not uploads:
            return redirect("/?error=1")

        expected = request.content_length or 0
        received = 0
        progress = 0
        final_name = None
        try:
            for storage in uploads:
                base = os.path.basename(storage.filename.replace("\\", "/"))
                if not base:
                    return redirect("/?error=1")
                final_name = unique_name(files_path, base)
                with open(files_path / final_name, "wb") as out:
                    while True:
                        chunk = storage.stream.read(CHUNK_SIZE)
                        if not chunk:
                            break
                        out.write(chunk)
                        received += len(chunk)
                        if expected:
                            percent = received * 100 / expected
                            if percent > progress + progress_threshold:
                                progress = int(percent)
                                if progress_callback:
                                    progress_callback(progress, final_name)
        except OSError as e:
            logger.error(f"upload of {final_name} failed: {e}")
            if error_callback:
                error_callback(request.url, e)
            return redirect("/?error=1")

        logger.info(f"uploaded {final_name}")
        return redirect("/?success=" + quote(final_name, safe=""))

    @app.route("/info")
    def info():
        if config.is_disabled("info"):
            abort(404)

        body = {"addresses": addresses, "port": port, "allowDeletion": allow_deletion}
        if config.is_disabled("file_download"):
            return body

        try:
            snapshot, fingerprint = cache.get_snapshot(timeout=ready_timeout)
        except ReadinessTimeout:
            return {"error": "not ready"}, 503

        body["rootContentMD5"] = fingerprint
        # the client already has this tree
        if request.args.get("md5") != fingerprint:
            body["rootContent"] = snapshot.to_dict()
        return body

    @app.route("/api/stream")
    def stream():
        """SSE endpoint – stays open and pushes fingerprint changes."""
        if broadcaster is None:
            abort(404)
        q = broadcaster.subscribe()

        def generate():
            # current fingerprint on connect, if the scan is done
            entry = cache.get_snapshot() if cache.ready else None
            if entry is not None:
                hello = json.dumps({"event": "snapshot", "rootContentMD5": entry.fingerprint, "ts": time.time()})
                yield f"data: {hello}\n\n"
            while True:
                try:
                    data = q.get(timeout=25)
                    yield f"data: {data}\n\n"
                except queue.Empty:
                    yield ": heartbeat\n\n"   # keep connection alive

        resp = Response(
            generate(),
            mimetype="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )
        resp.call_on_close(lambda: broadcaster.unsubscribe(q))
        return resp

    @app.errorhandler(Exception)
    def handle_error(e):
        if error_callback:
            error_callback(request.url, e)
        if isinstance(e, HTTPException):
            return e
        logger.exception(f"unhandled error on {request.url}")
        return {"error": "internal server error"}, 500

    return app


# ── Entry point called by main.py ────────────────────────────────────────────
def run(app: Flask, port=8080):
    for address in app.config["FILESHARE_ADDRESSES"] or ["localhost"]:
        logger.info(f"listening on http://{address}:{port}")
    app.run(host="0.0.0.0", port=port, threaded=True, debug=False, use_reloader=False)
