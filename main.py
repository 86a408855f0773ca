"""
main.py
=======
Orchestrator: loads settings, builds the live content cache, starts the
folder watcher and runs the HTTP server.

Usage:  python main.py [config.json]
UI:     http://<this machine>:8080
"""

import sys

from config import Config
from content_cache import LiveContentCache
from file_watcher import FolderWatcher
from logger import get_logger, setup_logging
import ui_server

logger = get_logger("main")


def progress_callback(progress, file_name):
    logger.info(f"upload progress: {file_name} {progress}%")


def error_callback(context, err):
    logger.error(f"{context}: {err}")


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    config = Config(argv[0] if argv else None)
    setup_logging(config.log_dir)

    files_path = config.files_folder_path
    files_path.mkdir(parents=True, exist_ok=True)
    logger.info(f"sharing {files_path}")

    cache = LiveContentCache(error_callback=error_callback)
    broadcaster = ui_server.Broadcaster(cache, debounce=config.get("broadcast_debounce"))
    watcher = FolderWatcher(files_path, cache, on_applied=broadcaster.notify)
    app = ui_server.create_app(
        config, cache, broadcaster,
        progress_callback=progress_callback,
        error_callback=error_callback,
    )

    # 1. Watcher (initial scan runs in the background; /info waits for it)
    watcher.start()

    # 2. HTTP server (blocking – must be last)
    try:
        ui_server.run(app, port=config.port)
    finally:
        broadcaster.stop()
        watcher.stop()


if __name__ == "__main__":
    main()
