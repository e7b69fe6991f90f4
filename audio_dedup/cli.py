from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional

from .app import AudioDedupApp
from .commands import doctor as cmd_doctor
from .commands import groups as cmd_groups
from .commands import resolve as cmd_resolve
from .commands import scan as cmd_scan
from .config import Settings, find_config
from .errors import AudioDedupError, ConfigError
from .events import FanOutEventSink, JsonLinesEventSink, LoggingEventSink

LOG_FORMAT = "%(levelname).1s | %(name)s | %(message)s"

C_RESET = "\033[0m"
LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",  # Cyan
    logging.INFO: "\033[37m",  # Light gray
    logging.WARNING: "\033[33m",  # Yellow
    logging.ERROR: "\033[31m",  # Red
    logging.CRITICAL: "\033[35m",  # Magenta
}


class ShortPathFormatter(logging.Formatter):
    def __init__(self, fmt: str, roots: list[Path]) -> None:
        super().__init__(fmt)
        self.roots = [str(root) for root in roots if root]

    def _shorten(self, message: str) -> str:
        for root in self.roots:
            if not message:
                break
            message = message.replace(f"{root}/", "")
            message = message.replace(root, "")
        return message

    def format(self, record: logging.LogRecord) -> str:
        return self._shorten(super().format(record))


class ColorFormatter(ShortPathFormatter):
    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        if not color:
            return message
        return f"{color}{message}{C_RESET}"


class WarningBufferHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__(level=logging.WARNING)
        self.records: list[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
        except Exception:  # pragma: no cover
            msg = record.getMessage()
        self.records.append(msg)


def _id_list(value: str) -> list[int]:
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected comma-separated file ids, got {value!r}") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Find and resolve duplicate audio files")
    parser.add_argument("--config", type=Path, help="Path to config.yaml")
    parser.add_argument("--log-level", default="INFO", help="Python logging level")
    parser.add_argument(
        "--warnings-log",
        type=Path,
        default=None,
        help="Write warnings and errors to this file (default: ./audio-dedup-warnings.log)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    index_parser = subparsers.add_parser("index", help="Index the library roots into the store")
    index_parser.add_argument("--force", action="store_true", help="Re-read tags of unchanged files")
    index_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON")

    fp_parser = subparsers.add_parser("fingerprint", help="Generate missing acoustic fingerprints")
    fp_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON")

    groups_parser = subparsers.add_parser("groups", help="List duplicate groups")
    groups_parser.add_argument("--group", type=int, default=None, help="Only show this group id")
    groups_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON")

    compare_parser = subparsers.add_parser("compare", help="Explain how two files compare")
    compare_parser.add_argument("first", type=int)
    compare_parser.add_argument("second", type=int)
    compare_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON")

    similar_parser = subparsers.add_parser("similar", help="Find files that sound like the given file")
    similar_parser.add_argument("file_id", type=int)
    similar_parser.add_argument("--threshold", type=float, default=None)
    similar_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON")

    scan_parser = subparsers.add_parser("scan", help="Run a cancellable background duplicate scan")
    scan_parser.add_argument(
        "--events",
        type=Path,
        default=None,
        help="Also record scan events to this file (JSON Lines)",
    )
    scan_parser.add_argument("--quiet", action="store_true", help="Do not list groups afterwards")
    scan_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON")

    preview_parser = subparsers.add_parser("preview", help="Preview automatic resolution")
    preview_parser.add_argument("--exclude", type=_id_list, default=[], help="File ids never to delete")
    preview_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON")

    resolve_parser = subparsers.add_parser("resolve", help="Delete lower-ranked duplicates")
    resolve_parser.add_argument("--exclude", type=_id_list, default=[], help="File ids never to delete")
    resolve_parser.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    resolve_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON")

    conflicts_parser = subparsers.add_parser("conflicts", help="List directories sharing duplicates")
    conflicts_parser.add_argument("--limit", type=int, default=50, help="0 shows all")
    conflicts_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON")

    dir_parser = subparsers.add_parser(
        "resolve-dir", help="Delete the duplicates one directory shares with another"
    )
    dir_parser.add_argument("keep", type=Path, help="Directory whose copies are kept")
    dir_parser.add_argument("delete", type=Path, help="Directory whose copies are deleted")
    dir_parser.add_argument("--dry-run", action="store_true", help="Only report what would be deleted")
    dir_parser.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    dir_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON")

    subparsers.add_parser("doctor", help="Run basic config/store/backend checks")
    return parser


def load_settings(config: Optional[Path]) -> Settings:
    config_path = find_config(config)
    if config_path is None:
        return Settings()
    return Settings.load(config_path)


def configure_logging(
    level_name: str, settings: Settings, warn_log_path: Path
) -> WarningBufferHandler:
    log_level = getattr(logging, level_name.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(log_level)

    display_roots = [root.resolve() for root in settings.library.roots]
    color_handler = logging.StreamHandler()
    color_handler.setFormatter(ColorFormatter(LOG_FORMAT, display_roots))
    root_logger.addHandler(color_handler)

    warn_buffer = WarningBufferHandler()
    warn_buffer.setFormatter(ShortPathFormatter(LOG_FORMAT, display_roots))
    root_logger.addHandler(warn_buffer)

    file_handler = logging.FileHandler(warn_log_path, mode="w", encoding="utf-8", delay=True)
    file_handler.setLevel(logging.WARNING)
    file_handler.setFormatter(ShortPathFormatter(LOG_FORMAT, display_roots))
    root_logger.addHandler(file_handler)
    return warn_buffer


def main(argv: Optional[list[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = load_settings(args.config)
    except ConfigError as exc:
        raise SystemExit(f"Configuration error: {exc}") from exc

    warn_log_path = args.warnings_log or Path.cwd() / "audio-dedup-warnings.log"
    warn_buffer = configure_logging(args.log_level, settings, warn_log_path)

    sink = None
    if args.command == "scan":
        events_path = getattr(args, "events", None)
        sink = FanOutEventSink(
            LoggingEventSink(logging.DEBUG),
            JsonLinesEventSink(events_path) if events_path else None,
        )
    json_output = getattr(args, "json", False)
    if args.command == "doctor":
        try:
            report = cmd_doctor.run(settings)
        finally:
            _print_warning_summary(warn_buffer, warn_log_path)
        for line in report.checks:
            print(line)
        if not report.ok:
            raise SystemExit(1)
        return

    app = AudioDedupApp.create(settings, sink=sink)
    try:
        match args.command:
            case "index":
                cmd_scan.run_index(app.get_indexer(), force=args.force, json_output=json_output)
                app.cache.invalidate()
            case "fingerprint":
                cmd_scan.run_fingerprint(app.fingerprints, json_output=json_output)
                app.cache.invalidate()
            case "groups":
                cmd_groups.run_groups(app.get_service(), group_id=args.group, json_output=json_output)
            case "compare":
                cmd_groups.run_compare(app.get_service(), args.first, args.second, json_output=json_output)
            case "similar":
                cmd_groups.run_similar(
                    app.get_service(), args.file_id, threshold=args.threshold, json_output=json_output
                )
            case "scan":
                cmd_scan.run_scan(app.get_service(), json_output=json_output, show_groups=not args.quiet)
            case "preview":
                cmd_resolve.run_preview(app.get_service(), exclude_ids=args.exclude, json_output=json_output)
            case "resolve":
                cmd_resolve.run_resolve(
                    app.get_service(),
                    exclude_ids=args.exclude,
                    assume_yes=args.yes,
                    json_output=json_output,
                )
            case "conflicts":
                cmd_groups.run_conflicts(app.get_service(), limit=args.limit, json_output=json_output)
            case "resolve-dir":
                cmd_resolve.run_resolve_directory(
                    app.get_service(),
                    args.keep,
                    args.delete,
                    dry_run=args.dry_run,
                    assume_yes=args.yes,
                    json_output=json_output,
                )
            case _:
                parser.error("Unknown command")
    except AudioDedupError as exc:
        logging.getLogger(__name__).error("%s", exc)
        raise SystemExit(1) from exc
    finally:
        app.close()
        _print_warning_summary(warn_buffer, warn_log_path)


def _print_warning_summary(warn_buffer: WarningBufferHandler, warn_log_path: Path) -> None:
    if not warn_buffer.records:
        return
    print("\n\033[33mWarnings/Errors summary:\033[0m")
    for line in warn_buffer.records:
        print(f" - {line}")
    print(f"\nFull warning log: {warn_log_path}")


if __name__ == "__main__":
    main()
