"""
Console entry point: restore or prompt for a session, then print every
reconciled update until Ctrl+C.
"""

import argparse
import getpass
import queue
import sys

from .constants import VIEWER_VERSION
from .config import log, safe_print, setup_logging, load_config, save_config
from .analysis import summarize
from .app import ViewerApp


def _print_status(state):
    safe_print(f"[{state.status_type.value.upper():7}] {state.status_message}")


def _prompt_login(app, config):
    username = config.get("username") or input("Username: ").strip()
    password = config.get("password") or getpass.getpass("Password: ")
    if not app.login(username, password):
        return False
    if config.get("username") != username:
        config["username"] = username
        save_config(config)
    return True


def _print_history(app):
    entries = app.show_history()
    for i, update in enumerate(entries, 1):
        safe_print(f"{i:3}. {summarize(update)}")
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(prog="microscope-viewer",
                                     description="Live viewer for the microscopy image server.")
    parser.add_argument("--history", action="store_true", help="print stored history and exit")
    parser.add_argument("--clear-history", action="store_true", help="delete stored history and exit")
    parser.add_argument("--logout", action="store_true", help="forget the stored session and exit")
    args = parser.parse_args(argv)

    setup_logging()
    safe_print("Microscope Viewer v" + VIEWER_VERSION)
    safe_print()

    config = load_config()
    app = ViewerApp.from_config(config)
    app.add_status_listener(_print_status)

    updates = queue.Queue()
    app.add_update_listener(updates.put)

    restored = app.initialize()
    if args.logout:
        app.logout()
        return 0
    if not restored and not _prompt_login(app, config):
        return 1

    if args.clear_history:
        app.clear_history()
        safe_print("History cleared.")
        return 0
    if args.history:
        return _print_history(app)

    app.start_monitoring()
    try:
        while True:
            try:
                update = updates.get(timeout=1.0)
            except queue.Empty:
                continue
            safe_print(summarize(update))
    except KeyboardInterrupt:
        safe_print("\nStopping...")
    finally:
        app.shutdown(timeout=20)
    log.info("Viewer exited")
    return 0


if __name__ == "__main__":
    sys.exit(main())
