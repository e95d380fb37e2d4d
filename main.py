#!/usr/bin/env python3
"""Command-line front end for TransmissionRemote."""

import argparse
import concurrent.futures
import sys
import threading

import events
from config_manager import ConfigManager, profile_url
from log_setup import setup_logging
from remote_client import RemoteClient
from torrent_model import (
    FLAG_ACTIVE,
    FLAG_CHECKING,
    FLAG_COMPLETE,
    FLAG_DOWNLOADING,
    FLAG_ERROR,
    FLAG_PAUSED,
    FLAG_SEEDING,
)

APP_NAME = "TransmissionRemote"

FILTERS = {
    "all": 0,
    "downloading": FLAG_DOWNLOADING,
    "seeding": FLAG_SEEDING,
    "paused": FLAG_PAUSED,
    "checking": FLAG_CHECKING,
    "complete": FLAG_COMPLETE,
    "error": FLAG_ERROR,
    "active": FLAG_ACTIVE,
}


def fmt_size(size):
    if not size:
        return "0 B"
    size = float(size)
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} PB"


def fmt_rate(rate):
    return f"{fmt_size(rate)}/s"


def fmt_percent(fraction):
    try:
        return f"{float(fraction) * 100:.1f}%"
    except (TypeError, ValueError):
        return "-"


def status_label(flags):
    if flags & FLAG_ERROR:
        return "Error"
    if flags & FLAG_CHECKING:
        return "Checking"
    if flags & FLAG_PAUSED:
        return "Paused"
    if flags & FLAG_SEEDING:
        return "Seeding"
    if flags & FLAG_DOWNLOADING:
        return "Downloading"
    if flags & FLAG_COMPLETE:
        return "Finished"
    return "Queued"


def fmt_stats(stats):
    return (
        f"{stats.count} torrents | DL: {fmt_rate(stats.down_rate_total)} | UL: {fmt_rate(stats.up_rate_total)} | "
        f"{stats.downloading} downloading, {stats.seeding} seeding, {stats.paused} paused"
    )


def print_torrents(torrents, out=sys.stdout):
    print("ID | Name | Status | Done | Down | Up", file=out)
    print("-" * 80, file=out)
    for t in torrents:
        print(
            f"{t.id} | {t.name[:50]} | {status_label(t.flags)} | {fmt_percent(t.percent_done)} | "
            f"{fmt_rate(t.rate_download)} | {fmt_rate(t.rate_upload)}",
            file=out,
        )


def _resolve_profile_id(cm, pid):
    pid = pid or cm.get_default_profile_id()
    if not pid or not cm.get_profile(pid):
        print("No default profile set or invalid. Use add-profile / set-default.", file=sys.stderr)
        return None
    return pid


def _print_error(sender, message):
    print(f"Error: {message}", file=sys.stderr)


def connect_and_wait(client, pid, timeout):
    """Connect and block until the first torrent list arrived or the attempt failed."""
    ready = threading.Event()
    outcome = {"ok": False}

    def on_list(sender, stats, update_serial):
        outcome["ok"] = True
        ready.set()

    def on_state(sender, connected):
        if not connected:
            ready.set()

    def on_error(sender, message):
        if not client.session.connected:
            ready.set()

    client.subscribe(events.TORRENT_LIST_UPDATED, on_list)
    client.subscribe(events.CONNECTION_STATE_CHANGED, on_state)
    client.subscribe(events.ERROR_DIALOG, on_error)
    try:
        if client.connect_profile(pid) is None:
            return False
        ready.wait(timeout)
        return outcome["ok"]
    finally:
        client.bus.unsubscribe(events.TORRENT_LIST_UPDATED, on_list)
        client.bus.unsubscribe(events.CONNECTION_STATE_CHANGED, on_state)
        client.bus.unsubscribe(events.ERROR_DIALOG, on_error)


def _wait_for(future, timeout):
    try:
        future.result(timeout)
    except concurrent.futures.TimeoutError:
        print(f"Error: no response from the daemon within {timeout:g}s", file=sys.stderr)
        return False
    return True


def drain_loop(client, timeout=5):
    """Wait until everything already posted to the callback loop has run."""
    done = threading.Event()
    client.loop.call_after(done.set)
    done.wait(timeout)


def cmd_profiles(cm, args):
    default_id = cm.get_default_profile_id()
    profiles = cm.get_profiles()
    if not profiles:
        print("No profiles configured.")
        return 0
    for pid, p in profiles.items():
        marker = "*" if pid == default_id else " "
        print(f"{marker} {pid}  {p.get('name')}  {profile_url(p)}")
    return 0


def cmd_add_profile(cm, args):
    pid = cm.add_profile(
        args.name,
        args.host,
        port=args.port,
        path=args.path,
        ssl=args.ssl,
        user=args.user or "",
        password=args.password or "",
        auto_connect=args.auto_connect,
    )
    if args.default:
        cm.set_default_profile_id(pid)
    print(pid)
    return 0


def cmd_set_default(cm, args):
    if not cm.get_profile(args.profile_id):
        print(f"No such profile: {args.profile_id}", file=sys.stderr)
        return 1
    cm.set_default_profile_id(args.profile_id)
    return 0


def cmd_list(client, pid, args):
    if not connect_and_wait(client, pid, args.timeout):
        return 1
    print_torrents(client.torrents(FILTERS[args.filter], args.search or ""))
    return 0


def cmd_watch(client, pid, args):
    stop = threading.Event()

    def on_status(sender, text):
        print(text)

    def on_list(sender, stats, update_serial):
        print(f"[{update_serial}] {fmt_stats(stats)}")

    def on_completed(sender, name, torrent_id):
        print(f"Finished downloading: {name}")

    def on_state(sender, connected):
        if not connected:
            stop.set()

    client.subscribe(events.STATUS_MESSAGE, on_status)
    client.subscribe(events.TORRENT_LIST_UPDATED, on_list)
    client.subscribe(events.TORRENT_COMPLETED, on_completed)
    client.subscribe(events.CONNECTION_STATE_CHANGED, on_state)
    if client.connect_profile(pid) is None:
        return 1
    try:
        while not stop.wait(0.5):
            pass
    except KeyboardInterrupt:
        pass
    return 0


def cmd_action(client, pid, args):
    if not connect_and_wait(client, pid, args.timeout):
        return 1
    failed = threading.Event()
    client.subscribe(events.ERROR_DIALOG, lambda sender, message: failed.set())
    future = client.actions.submit(args.command, args.ids)
    if future is None:
        return 1
    if not _wait_for(future, args.timeout):
        return 1
    drain_loop(client)
    return 1 if failed.is_set() else 0


def cmd_add(client, pid, args):
    if not connect_and_wait(client, pid, args.timeout):
        return 1
    failed = threading.Event()
    client.subscribe(events.ERROR_DIALOG, lambda sender, message: failed.set())
    client.subscribe(events.STATUS_MESSAGE, lambda sender, text: print(text))
    worker, futures = client.add(args.sources, paused=True if args.paused else None)
    if worker is not None:
        worker.join()
    if not all(_wait_for(f, args.timeout) for f in futures):
        return 1
    drain_loop(client)
    return 1 if failed.is_set() else 0


def build_parser():
    parser = argparse.ArgumentParser(prog="transmission-remote", description="Remote control for a Transmission daemon.")
    parser.add_argument("--profile", help="profile id (defaults to the default profile)")
    parser.add_argument("--timeout", type=float, default=30, help="seconds to wait for the daemon")
    parser.add_argument("--verbose", "-v", action="store_true", help="log to the console")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("profiles", help="list connection profiles")

    p = sub.add_parser("add-profile", help="add a connection profile")
    p.add_argument("name")
    p.add_argument("host")
    p.add_argument("--port", type=int, default=9091)
    p.add_argument("--path", default="/transmission/rpc")
    p.add_argument("--ssl", action="store_true")
    p.add_argument("--user")
    p.add_argument("--password")
    p.add_argument("--auto-connect", action="store_true")
    p.add_argument("--default", action="store_true", help="make it the default profile")

    p = sub.add_parser("set-default", help="set the default profile")
    p.add_argument("profile_id")

    p = sub.add_parser("list", help="print the torrent list")
    p.add_argument("--filter", choices=sorted(FILTERS), default="all")
    p.add_argument("--search", help="only torrents whose name contains this text")

    sub.add_parser("watch", help="poll and print updates until interrupted")

    for name in ("pause", "resume", "verify", "remove", "delete"):
        p = sub.add_parser(name, help=f"{name} torrents by id")
        p.add_argument("ids", type=int, nargs="+")

    p = sub.add_parser("add", help="add .torrent files, magnet links or URLs")
    p.add_argument("sources", nargs="+")
    p.add_argument("--paused", action="store_true")

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    cm = ConfigManager()
    prefs = cm.get_preferences()
    setup_logging(prefs.get("log_level", "INFO"), console=args.verbose)

    if args.command == "profiles":
        return cmd_profiles(cm, args)
    if args.command == "add-profile":
        return cmd_add_profile(cm, args)
    if args.command == "set-default":
        return cmd_set_default(cm, args)

    pid = _resolve_profile_id(cm, args.profile)
    if pid is None:
        return 1

    handlers = {"list": cmd_list, "watch": cmd_watch, "add": cmd_add}
    handler = handlers.get(args.command, cmd_action)
    with RemoteClient(cm) as client:
        client.subscribe(events.ERROR_DIALOG, _print_error)
        return handler(client, pid, args)


if __name__ == "__main__":
    sys.exit(main())
