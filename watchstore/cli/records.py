from __future__ import annotations

import argparse
import json
import threading
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from watchstore.handlers import FileHandler
from watchstore.handlers.json_handler import JsonFileHandler
from watchstore.handlers.yaml_handler import YamlFileHandler
from watchstore.logging_config import get_logger
from watchstore.repositories.directory import DirectoryRepository

_HANDLERS = {
    "yaml": YamlFileHandler,
    "json": JsonFileHandler,
}


def _summary(record: Any) -> str:
    return json.dumps(record, ensure_ascii=False, sort_keys=True, default=str)


def _format_rows(rows: Iterable[Tuple[str, Any]]) -> str:
    out_lines: List[str] = []
    for identity, record in sorted(rows, key=lambda row: row[0]):
        out_lines.append(f"{identity}: {_summary(record)}")
    return "\n".join(out_lines)


def _format_change(identity: str, old: Any, new: Any) -> str:
    if old is None:
        return f"+ {identity}: {_summary(new)}"
    if new is None:
        return f"- {identity}"
    return f"~ {identity}: {_summary(new)}"


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="List the records of a watched directory")
    p.add_argument("directory", type=Path, help="Directory holding one file per record")
    p.add_argument(
        "--format",
        choices=sorted(_HANDLERS),
        default="yaml",
        help="File format of the records (default: yaml)",
    )
    p.add_argument(
        "--watch", action="store_true", help="Keep running and print changes as they happen"
    )
    p.add_argument(
        "--duration",
        type=float,
        metavar="SECONDS",
        help="Stop watching after this many seconds (default: until interrupted)",
    )
    return p


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.directory.is_dir():
        print(f"Directory not found: {args.directory}")
        return 1

    get_logger()
    handler: FileHandler[Any] = _HANDLERS[args.format]()
    repo: DirectoryRepository[str, Any] = DirectoryRepository(
        args.directory, handler, watch=bool(args.watch)
    )
    repo.on_error(lambda exc: print(f"! {exc}"))

    with repo:
        repo.load_or_create()
        rows = [(identity, repo.find(identity)) for identity in repo.get_all_identifiers()]
        if not rows:
            print(f"No {args.format} records found in {repo.directory}.")
        else:
            print(_format_rows(rows))

        if args.watch:
            repo.on_entity_changed(
                lambda identity, old, new: print(_format_change(identity, old, new), flush=True)
            )
            done = threading.Event()
            try:
                done.wait(timeout=_positive(args.duration))
            except KeyboardInterrupt:
                pass
    return 0


def _positive(value: Optional[float]) -> Optional[float]:
    if value is None or value <= 0:
        return None
    return value


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
