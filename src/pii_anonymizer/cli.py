"""CLI interface for pii-anonymizer.

Usage:
    # Anonymize text (stdin: raw text, stdout: JSON with tokens + stats)
    echo 'Contact John Smith at john@example.com' | \
        python -m pii_anonymizer.cli anonymize

    # Anonymize and restore in one process (stdout: JSON)
    echo 'Call +1 234-567-8910' | python -m pii_anonymizer.cli --ner roundtrip

    # Interactive session: anonymize lines, restore with :restore
    python -m pii_anonymizer.cli shell

    # Run the model fetch proxy
    python -m pii_anonymizer.cli serve-proxy --port 18792

Sessions live only in this process; the key is never written anywhere,
so a one-shot `anonymize` cannot be restored later by design.
"""

from __future__ import annotations
import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from .config import ManagerConfig, load_config, load_from_yaml
from .session import SessionManager
from .state import StatusSnapshot
from .types import DetectorMode

logger = logging.getLogger(__name__)

SHELL_HELP = """\
Type text to anonymize it. Commands:
  :restore <text>   restore anonymized text from the current session
  :ner on|off       switch the NER detector
  :stats            show stats of the current session
  :status           show detector status
  :clear            forget the current session
  :quit             exit
"""


def _load_config(args: argparse.Namespace) -> ManagerConfig:
    config = load_from_yaml(args.config) if args.config else load_config()
    if args.skip_types:
        config.skip_types = set(args.skip_types.split(","))
    if args.allow_list:
        config.allow_list = set(args.allow_list.split(","))
    if args.no_semantic:
        config.semantic = False
    if args.no_download:
        config.auto_download = False
    if args.log_level:
        config.log_level = args.log_level.upper()
    return config


def _stats_dict(manager: SessionManager) -> dict[str, Any] | None:
    stats = manager.get_session_stats()
    if stats is None:
        return None
    return {"total_entities": stats.total_entities, "counts_by_type": dict(stats.counts_by_type)}


async def _prepare(manager: SessionManager, *, ner: bool) -> None:
    result = await manager.initialize()
    if not result.success:
        raise SystemExit(f"error: {result.error}")
    if ner:
        result = await manager.set_detector_mode(DetectorMode.REGEX_PLUS_NER)
        if not result.success:
            logger.warning("NER unavailable, continuing regex-only: %s", result.error)


async def _anonymize(manager: SessionManager, text: str, *, ner: bool, restore: bool) -> dict:
    await _prepare(manager, ner=ner)
    result = await manager.anonymize(text)
    if not result.success:
        raise SystemExit(f"error: {result.error}")

    output: dict[str, Any] = {
        "text": result.anonymized_text,
        "entity_count": result.entity_count,
        "stats": _stats_dict(manager),
        "mode": manager.mode.value if manager.mode else None,
    }
    if restore:
        restored = await manager.deanonymize(result.anonymized_text)
        if not restored.success:
            raise SystemExit(f"error: {restored.error}")
        output["restored"] = restored.original_text
        output["matches"] = restored.original_text == text
    await manager.dispose()
    return output


def cmd_anonymize(args: argparse.Namespace) -> None:
    """Anonymize plain text on stdin."""
    manager = SessionManager(_load_config(args))
    output = asyncio.run(_anonymize(manager, sys.stdin.read(), ner=args.ner, restore=False))
    json.dump(output, sys.stdout, ensure_ascii=False)
    sys.stdout.write("\n")


def cmd_roundtrip(args: argparse.Namespace) -> None:
    """Anonymize stdin, then restore it with the same session."""
    manager = SessionManager(_load_config(args))
    output = asyncio.run(_anonymize(manager, sys.stdin.read(), ner=args.ner, restore=True))
    json.dump(output, sys.stdout, ensure_ascii=False)
    sys.stdout.write("\n")


def _print_progress(snapshot: StatusSnapshot) -> None:
    if snapshot.ner_loading:
        line = snapshot.status_text
        if snapshot.download_progress:
            line += f" [{snapshot.download_progress}]"
        sys.stderr.write(line + "\n")


async def _shell(manager: SessionManager, *, ner: bool) -> None:
    unsubscribe = manager.status.subscribe(_print_progress, replay=False)
    await _prepare(manager, ner=ner)
    sys.stdout.write(SHELL_HELP)
    try:
        while True:
            try:
                line = await asyncio.to_thread(input, f"[{manager.status_text}]> ")
            except EOFError:
                break
            line = line.strip()
            if not line:
                continue
            if line in (":quit", ":q"):
                break
            if line.startswith(":restore "):
                result = await manager.deanonymize(line[len(":restore "):])
                print(result.original_text if result.success else f"error: {result.error}")
            elif line.startswith(":ner "):
                enable = line.split(None, 1)[1].strip().lower() in ("on", "true", "1")
                target = DetectorMode.REGEX_PLUS_NER if enable else DetectorMode.REGEX_ONLY
                result = await manager.set_detector_mode(target)
                print(manager.status_text if result.success else f"error: {result.error}")
            elif line == ":stats":
                print(json.dumps(_stats_dict(manager), ensure_ascii=False))
            elif line == ":status":
                snap = manager.status.snapshot
                print(json.dumps({
                    "init_state": snap.init_state.value,
                    "mode": snap.mode.value if snap.mode else None,
                    "status": snap.status_text,
                    "last_error": snap.last_error,
                }))
            elif line == ":clear":
                manager.clear_session()
                print("session cleared")
            elif line.startswith(":"):
                sys.stdout.write(SHELL_HELP)
            else:
                result = await manager.anonymize(line)
                if result.success:
                    print(result.anonymized_text)
                    print(f"({result.entity_count} entities)")
                else:
                    print(f"error: {result.error}")
    finally:
        unsubscribe()
        await manager.dispose()


def cmd_shell(args: argparse.Namespace) -> None:
    """Interactive session keeping one anonymization in memory."""
    manager = SessionManager(_load_config(args))
    asyncio.run(_shell(manager, ner=args.ner))


def cmd_serve_proxy(args: argparse.Namespace) -> None:
    """Run the model fetch proxy sidecar."""
    from .server import serve

    config = _load_config(args)
    serve(host=args.host or config.proxy_host, port=args.port or config.proxy_port)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="pii-anonymizer",
        description="Local PII anonymization with encrypted, reversible sessions",
    )
    parser.add_argument("--config", default=None, help="YAML config path")
    parser.add_argument("--ner", action="store_true", help="Enable the NER detector")
    parser.add_argument("--no-download", action="store_true", help="Never download NER models")
    parser.add_argument("--no-semantic", action="store_true", help="Skip semantic enrichment of NER matches")
    parser.add_argument("--skip-types", default="", help="Comma-separated entity types to skip")
    parser.add_argument("--allow-list", default="", help="Comma-separated values to never anonymize")
    parser.add_argument("--log-level", default=None, help="Logging level (default from config)")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("anonymize", help="Anonymize plain text (stdin)")
    sub.add_parser("roundtrip", help="Anonymize then restore (stdin)")
    sub.add_parser("shell", help="Interactive session")
    proxy = sub.add_parser("serve-proxy", help="Run the model fetch proxy")
    proxy.add_argument("--host", default=None)
    proxy.add_argument("--port", type=int, default=None)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=_load_config(args).log_level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    cmds = {
        "anonymize": cmd_anonymize,
        "roundtrip": cmd_roundtrip,
        "shell": cmd_shell,
        "serve-proxy": cmd_serve_proxy,
    }
    cmds[args.command](args)


if __name__ == "__main__":
    main()
