"""
BillVault CLI — manage saved bills from the terminal.

Commands:
- billvault init      — Create the document database and a default billvault.yaml
- billvault list      — List saved bills (optionally filtered)
- billvault show      — Print a bill's metadata and content
- billvault save-as   — Save a text file as a new bill (optionally password-protected)
- billvault save      — Overwrite an existing bill with a text file
- billvault delete    — Delete a bill
- billvault autosave  — Show or change the persisted auto-save settings
- billvault watch     — Auto-save a text file into a bill until interrupted
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import sys
from pathlib import Path
from typing import Optional

import yaml

from billvault.documents.validation import require_valid_name
from billvault.editor.bridge import BufferEditor, EditorBridge, FileEditor, decode_content
from billvault.engine.config import (
    AUTOSAVE_INTERVAL_CHOICES_MS,
    CONFIG_FILE_NAME,
    AutoSaveConfig,
    PlatformConfig,
    load_platform_config,
)
from billvault.engine.errors import BillVaultError
from billvault.engine.logging import configure_logging
from billvault.engine.runtime import BillVaultRuntime

logger = logging.getLogger("billvault.cli")


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="billvault",
        description="BillVault — saved bills and auto-save",
    )
    parser.add_argument(
        "--config", default=None, help=f"Path to {CONFIG_FILE_NAME} (default: auto-discover)"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # billvault init
    subparsers.add_parser("init", help="Create the document database")

    # billvault list
    list_parser = subparsers.add_parser("list", help="List saved bills")
    list_parser.add_argument("--search", help="Only names containing this text (case-insensitive)")

    # billvault show
    show_parser = subparsers.add_parser("show", help="Print a bill")
    show_parser.add_argument("name", help="Bill name")
    show_parser.add_argument("--password", help="Password for protected bills (prompted if needed)")

    # billvault save-as
    save_as_parser = subparsers.add_parser("save-as", help="Save a file as a new bill")
    save_as_parser.add_argument("name", help="New bill name")
    save_as_parser.add_argument("--file", required=True, help="Text file holding the sheet")
    save_as_parser.add_argument("--bill-type", type=int, help="Bill type (footer) number")
    save_as_parser.add_argument(
        "--protect", action="store_true", help="Protect the bill with a password"
    )
    save_as_parser.add_argument("--password", help="Password for --protect (prompted if not provided)")

    # billvault save
    save_parser = subparsers.add_parser("save", help="Overwrite an existing bill with a file")
    save_parser.add_argument("name", help="Bill name")
    save_parser.add_argument("--file", required=True, help="Text file holding the sheet")
    save_parser.add_argument("--bill-type", type=int, help="Bill type (footer) number")
    save_parser.add_argument("--password", help="Password for protected bills (prompted if needed)")

    # billvault delete
    delete_parser = subparsers.add_parser("delete", help="Delete a bill")
    delete_parser.add_argument("name", help="Bill name")

    # billvault autosave
    autosave_parser = subparsers.add_parser("autosave", help="Show or change auto-save settings")
    toggle = autosave_parser.add_mutually_exclusive_group()
    toggle.add_argument("--enable", action="store_true", help="Turn auto-save on")
    toggle.add_argument("--disable", action="store_true", help="Turn auto-save off")
    autosave_parser.add_argument(
        "--interval",
        type=int,
        help=f"Interval in ms, one of {', '.join(str(i) for i in AUTOSAVE_INTERVAL_CHOICES_MS)}",
    )

    # billvault watch
    watch_parser = subparsers.add_parser("watch", help="Auto-save a file into a bill")
    watch_parser.add_argument("name", help="Bill name (created on the first auto-save if absent)")
    watch_parser.add_argument("--file", required=True, help="Text file to watch")
    watch_parser.add_argument("--password", help="Password for protected bills (prompted if needed)")
    watch_parser.add_argument(
        "--interval", type=int, help="Override the auto-save interval (ms) for this session"
    )
    watch_parser.add_argument(
        "--max-saves", type=int, help="Exit after this many successful auto-saves"
    )

    args = parser.parse_args(argv)

    try:
        if args.command == "init":
            return cmd_init(args)
        elif args.command == "list":
            return cmd_list(args)
        elif args.command == "show":
            return cmd_show(args)
        elif args.command == "save-as":
            return cmd_save_as(args)
        elif args.command == "save":
            return cmd_save(args)
        elif args.command == "delete":
            return cmd_delete(args)
        elif args.command == "autosave":
            return cmd_autosave(args)
        elif args.command == "watch":
            return cmd_watch(args)
        else:
            parser.print_help()
            return 0
    except BillVaultError as e:
        logger.debug(f"{args.command} failed: {e!r}")
        print(f"[ERROR] {e.message}", file=sys.stderr)
        return 1


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load_config(args: argparse.Namespace) -> PlatformConfig:
    config = load_platform_config(args.config)
    configure_logging(config.logging.level)
    return config


def _start_runtime(args: argparse.Namespace, editor: Optional[EditorBridge] = None) -> BillVaultRuntime:
    runtime = BillVaultRuntime(_load_config(args), editor=editor)
    runtime.startup()
    return runtime


def _read_sheet(path: str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise BillVaultError(f"Cannot read {path}: {e.strerror or e}") from e


async def _password_if_protected(runtime: BillVaultRuntime, name: str, given: Optional[str]) -> Optional[str]:
    if given:
        return given
    record = await runtime.store.get(name)
    if record.is_protected:
        return getpass.getpass(f"  Password for '{name}': ")
    return None


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_init(args: argparse.Namespace) -> int:
    """
    Bootstrap a BillVault workspace:
    1. Write a default billvault.yaml if none is found
    2. Create the document and preference tables
    3. Create the log directory
    """
    print("=" * 60)
    print("  BillVault Initialization")
    print("=" * 60)

    config_path = Path(args.config) if args.config else Path.cwd() / CONFIG_FILE_NAME
    if config_path.exists():
        print(f"[OK] Using existing {config_path}")
    else:
        with open(config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(PlatformConfig().model_dump(), f, sort_keys=False)
        print(f"[OK] Wrote default {config_path}")
        args.config = str(config_path)

    runtime = _start_runtime(args)
    try:
        settings = runtime.autosave_settings()
        print(f"[OK] Document database ready at {runtime.config.storage.url}")
        print(f"[OK] Logs in {runtime.config.logging.directory}")
        state = "on" if settings.enabled else "off"
        print(f"[OK] Auto-save {state}, every {settings.interval_ms} ms")
    finally:
        runtime.shutdown()
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    runtime = _start_runtime(args)
    try:
        rows = asyncio.run(runtime.service.list_documents(args.search))
    finally:
        runtime.shutdown()

    if not rows:
        print("No saved bills.")
        return 0
    width = max(len(r.name) for r in rows)
    for r in rows:
        lock = " [protected]" if r.protected else ""
        print(f"{r.name:<{width}}  {r.modified_at.isoformat()}  bill type {r.bill_type}{lock}")
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    runtime = _start_runtime(args)

    async def _show():
        password = await _password_if_protected(runtime, args.name, args.password)
        return await runtime.service.open(args.name, password)

    try:
        record = asyncio.run(_show())
    finally:
        runtime.shutdown()

    print(f"Name:      {record.name}")
    print(f"Created:   {record.created_at.isoformat()}")
    print(f"Modified:  {record.modified_at.isoformat()}")
    print(f"Bill type: {record.bill_type}")
    print(f"Protected: {'yes' if record.is_protected else 'no'}")
    print("-" * 60)
    print(decode_content(record.content))
    return 0


def cmd_save_as(args: argparse.Namespace) -> int:
    text = _read_sheet(args.file)
    editor = BufferEditor()
    runtime = _start_runtime(args, editor=editor)
    editor.set_text(text)

    try:
        if args.bill_type is not None:
            runtime.service.set_bill_type(args.bill_type)
        if args.protect:
            password = args.password
            confirm = args.password
            if not password:
                password = getpass.getpass("  Enter password: ")
                confirm = getpass.getpass("  Confirm password: ")
            record = asyncio.run(runtime.service.save_as_protected(args.name, password, confirm))
        else:
            record = asyncio.run(runtime.service.save_as(args.name))
    finally:
        runtime.shutdown()

    lock = " (password-protected)" if record.is_protected else ""
    print(f"[OK] Saved '{record.name}'{lock}")
    return 0


def cmd_save(args: argparse.Namespace) -> int:
    text = _read_sheet(args.file)
    editor = BufferEditor()
    runtime = _start_runtime(args, editor=editor)

    async def _save():
        password = await _password_if_protected(runtime, args.name, args.password)
        await runtime.service.open(args.name, password)
        editor.set_text(text)
        if args.bill_type is not None:
            runtime.service.set_bill_type(args.bill_type)
        return await runtime.service.save()

    try:
        record = asyncio.run(_save())
    finally:
        runtime.shutdown()

    print(f"[OK] Saved '{record.name}' at {record.modified_at.isoformat()}")
    return 0


def cmd_delete(args: argparse.Namespace) -> int:
    runtime = _start_runtime(args)
    try:
        asyncio.run(runtime.service.delete(args.name))
    finally:
        runtime.shutdown()
    print(f"[OK] Deleted '{args.name}'")
    return 0


def cmd_autosave(args: argparse.Namespace) -> int:
    runtime = _start_runtime(args)
    try:
        enabled = True if args.enable else False if args.disable else None
        if enabled is not None or args.interval is not None:
            settings = runtime.update_autosave(enabled=enabled, interval_ms=args.interval)
            print("[OK] Auto-save settings updated")
        else:
            settings = runtime.autosave_settings()
    finally:
        runtime.shutdown()

    print(f"  enabled:  {'yes' if settings.enabled else 'no'}")
    print(f"  interval: {settings.interval_ms} ms")
    return 0


def cmd_watch(args: argparse.Namespace) -> int:
    """
    Keep a bill in sync with a text file: every auto-save tick re-reads the
    file and writes it to the bill. Runs until Ctrl+C (or --max-saves).
    """
    editor = FileEditor(Path(args.file))
    runtime = _start_runtime(args, editor=editor)
    try:
        return asyncio.run(_watch(runtime, args))
    except KeyboardInterrupt:
        print("\n[OK] Stopped watching")
        return 0
    finally:
        runtime.shutdown()


async def _watch(runtime: BillVaultRuntime, args: argparse.Namespace) -> int:
    service = runtime.service
    scheduler = runtime.scheduler

    if await service.store.exists(args.name):
        password = await _password_if_protected(runtime, args.name, args.password)
        await service.open(args.name, password)
    else:
        service.active_name = require_valid_name(args.name, set())

    done = asyncio.Event()
    saves = 0

    def on_save(name: str) -> None:
        nonlocal saves
        saves += 1
        print(f"[OK] Auto-saved '{name}'")
        if args.max_saves and saves >= args.max_saves:
            done.set()

    def on_error(message: str) -> None:
        print(f"[ERROR] {message}", file=sys.stderr)

    scheduler.on_save = on_save
    scheduler.on_error = on_error

    if args.interval is not None:
        if args.interval <= 0:
            print("[ERROR] --interval must be positive", file=sys.stderr)
            return 1
        scheduler.start(AutoSaveConfig(interval_ms=args.interval))
    else:
        settings = runtime.start_autosave()
        if not settings.enabled:
            print("[ERROR] Auto-save is disabled (see 'billvault autosave --enable')", file=sys.stderr)
            return 1

    print(f"Watching {args.file} -> '{service.active_name}' every {scheduler.config.interval_ms} ms")
    try:
        await done.wait()
    finally:
        scheduler.stop()
        await scheduler.wait_idle()
    return 0


if __name__ == "__main__":
    sys.exit(main())
