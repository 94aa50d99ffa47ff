"""Command line entry point for indexing and querying a local search store.

Examples::

    site-search index products docs.jsonl
    site-search search products "red shoes" --limit 5
    site-search suggest products sho
"""

from __future__ import annotations

import argparse
from collections.abc import Iterator, Sequence
import logging
from pathlib import Path
import sys
from typing import IO, Any

from opentelemetry.sdk.trace.export import ConsoleSpanExporter
import orjson
from pydantic import ValidationError

from site_search import SearchStack, __version__, build_search_stack
from site_search.config import Settings
from site_search.domain.search import SearchOptions, SuggestOptions
from site_search.observability.context import generate_span_id, generate_trace_id, set_trace_context
from site_search.observability.logging import configure_logging
from site_search.observability.tracing import init_tracing
from site_search.search.errors import SearchEngineError


logger = logging.getLogger(__name__)

_REQUIRED_DOCUMENT_KEYS = ("element_id", "title")


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="site-search",
        description="Index documents into and query a local full-text search store",
    )
    parser.add_argument(
        "--storage-backend",
        choices=("sqlite", "file", "memory"),
        help="Override SEARCH_ENGINE_STORAGE_BACKEND",
    )
    parser.add_argument(
        "--storage-path",
        type=Path,
        help="Override SEARCH_ENGINE_STORAGE_PATH",
    )
    parser.add_argument(
        "--log-level",
        help="Override SEARCH_ENGINE_LOG_LEVEL (debug, info, warning, error)",
    )
    parser.add_argument("--trace", action="store_true", help="Print finished spans to stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    index = subparsers.add_parser("index", help="Index documents read as JSON lines")
    index.add_argument("index_handle")
    index.add_argument(
        "source",
        nargs="?",
        type=Path,
        help="JSON lines file with element_id, title, body and optional site_id, language, element_type "
        "(default: stdin)",
    )
    index.add_argument("--site-id", type=int, help="Site for documents that do not name one")

    remove = subparsers.add_parser("remove", help="Remove one document")
    remove.add_argument("index_handle")
    remove.add_argument("element_id", type=int)
    remove.add_argument("--site-id", type=int)

    clear = subparsers.add_parser("clear", help="Remove every document of an index")
    clear.add_argument("index_handle")

    search = subparsers.add_parser("search", help="Run a query and print ranked hits")
    search.add_argument("index_handle")
    search.add_argument("query")
    search.add_argument("--site-id", type=int)
    search.add_argument("--limit", type=int, default=20)
    search.add_argument("--offset", type=int, default=0)
    search.add_argument("--language")
    search.add_argument("--no-fuzzy", action="store_true", help="Disable fuzzy expansion for this query")
    search.add_argument("--highlight", action="store_true", help="Add a highlighted title to each hit")

    suggest = subparsers.add_parser("suggest", help="Autocomplete a prefix")
    suggest.add_argument("index_handle")
    suggest.add_argument("prefix")
    suggest.add_argument("--site-id", type=int)
    suggest.add_argument("--limit", type=int)
    suggest.add_argument("--fuzzy", action="store_true", help="Add fuzzy completions when room remains")

    rebuild = subparsers.add_parser("rebuild-metadata", help="Recompute document counts and lengths")
    rebuild.add_argument("index_handle")
    return parser


def _settings_from_args(args: argparse.Namespace) -> Settings:
    overrides: dict[str, Any] = {}
    if args.storage_backend:
        overrides["storage_backend"] = args.storage_backend
    if args.storage_path:
        overrides["storage_path"] = args.storage_path
    if args.log_level:
        overrides["log_level"] = args.log_level
    return Settings(**overrides)


def _write_json(stream: IO[str], payload: Any) -> None:
    stream.write(orjson.dumps(payload).decode() + "\n")


def _read_documents(source: IO[str]) -> Iterator[tuple[int, dict[str, Any] | None, str | None]]:
    """Yield ``(line_number, document, error)`` for each non-blank line."""
    for line_number, line in enumerate(source, start=1):
        if not line.strip():
            continue
        try:
            document = orjson.loads(line)
        except orjson.JSONDecodeError as exc:
            yield line_number, None, f"invalid JSON: {exc}"
            continue
        if not isinstance(document, dict):
            yield line_number, None, "expected a JSON object"
            continue
        missing = [key for key in _REQUIRED_DOCUMENT_KEYS if key not in document]
        if missing:
            yield line_number, None, f"missing {', '.join(missing)}"
            continue
        yield line_number, document, None


def _run_index(stack: SearchStack, args: argparse.Namespace, stdout: IO[str]) -> int:
    site_default = args.site_id if args.site_id is not None else stack.settings.default_site_id
    indexed = failed = 0

    def index_stream(source: IO[str]) -> None:
        nonlocal indexed, failed
        for line_number, document, error in _read_documents(source):
            if document is None:
                logger.error("Line %d skipped: %s", line_number, error)
                failed += 1
                continue
            stats = stack.indexer.index_document(
                args.index_handle,
                int(document.get("site_id", site_default)),
                int(document["element_id"]),
                str(document["title"]),
                str(document.get("body", "")),
                document.get("language"),
                str(document.get("element_type", "entry")),
            )
            indexed += 1
            _write_json(stdout, stats.model_dump())

    if args.source is None:
        index_stream(sys.stdin)
    else:
        with args.source.open(encoding="utf-8") as handle:
            index_stream(handle)

    logger.info("Indexed %d documents into %s (%d skipped)", indexed, args.index_handle, failed)
    return 0 if failed == 0 else 2


def _run_search(stack: SearchStack, args: argparse.Namespace, stdout: IO[str]) -> int:
    options = SearchOptions(
        site_id=args.site_id,
        limit=args.limit,
        offset=args.offset,
        language=args.language,
        fuzzy=not args.no_fuzzy,
    )
    result = stack.engine.search(args.index_handle, args.query, options)
    payload = result.model_dump()
    if args.highlight:
        for hit in payload["hits"]:
            hit["highlight"] = stack.engine.highlight(hit.get("title") or "", result.terms)
    _write_json(stdout, payload)
    return 0


def _dispatch(stack: SearchStack, args: argparse.Namespace, stdout: IO[str]) -> int:
    site_id = getattr(args, "site_id", None)
    if args.command == "index":
        return _run_index(stack, args, stdout)
    if args.command == "remove":
        site = stack.settings.default_site_id if site_id is None else site_id
        stack.indexer.remove_document(args.index_handle, site, args.element_id)
        _write_json(stdout, {"removed": args.element_id, "site_id": site})
        return 0
    if args.command == "clear":
        stack.indexer.clear_index(args.index_handle)
        _write_json(stdout, {"cleared": args.index_handle})
        return 0
    if args.command == "search":
        return _run_search(stack, args, stdout)
    if args.command == "suggest":
        options = SuggestOptions(site_id=site_id, limit=args.limit, fuzzy=args.fuzzy)
        _write_json(stdout, stack.engine.suggest(args.prefix, args.index_handle, options))
        return 0
    if args.command == "rebuild-metadata":
        rebuilt = stack.indexer.rebuild_metadata(args.index_handle)
        _write_json(
            stdout,
            {
                str(site): {"doc_count": stats.doc_count, "total_length": stats.total_length}
                for site, stats in sorted(rebuilt.items())
            },
        )
        return 0
    raise ValueError(f"Unknown command {args.command!r}")


def main(argv: Sequence[str] | None = None, *, stdout: IO[str] | None = None) -> int:
    parser = build_argument_parser()
    args = parser.parse_args(argv)

    try:
        settings = _settings_from_args(args)
    except ValidationError as exc:
        sys.stderr.write(f"Invalid configuration: {exc}\n")
        return 1
    configure_logging(settings.log_level, settings.log_json)
    if args.trace:
        init_tracing(resource_attributes={"service.version": __version__}, exporter=ConsoleSpanExporter(out=sys.stderr))
    set_trace_context(generate_trace_id(), generate_span_id(), index=args.index_handle, command=args.command)

    try:
        stack = build_search_stack(settings)
    except SearchEngineError as exc:
        logger.error("Cannot open index storage: %s", exc)
        return 1
    try:
        return _dispatch(stack, args, stdout or sys.stdout)
    except SearchEngineError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1
    except ValidationError as exc:
        logger.error("Invalid %s options: %s", args.command, exc)
        return 1
    except OSError as exc:
        logger.error("Cannot read input: %s", exc)
        return 1
    finally:
        stack.close()


if __name__ == "__main__":
    sys.exit(main())
