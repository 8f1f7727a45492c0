"""
Command line entry point for the store.
Every command prints its result as JSON.
"""
from typing import Any, Callable, Dict, List, Optional
import argparse
import logging
import sys

from serde.json import to_json

from .config import load_config, save_config
from .errors import MerkleVFSError
from .filesystem import FSOperations

logger = logging.getLogger(__name__)


def _content(args: argparse.Namespace) -> str:
    if args.stdin:
        return sys.stdin.read()
    if args.content is None:
        raise MerkleVFSError("content is required unless --stdin is given")
    return args.content


def _set_ref(fs: FSOperations, args: argparse.Namespace) -> str:
    fs.set_ref(args.name, args.hash, expected=args.expected)
    return args.hash


def _put_bytes(fs: FSOperations, args: argparse.Namespace) -> str:
    with open(args.file, "rb") as f:
        return fs.put_bytes(f.read())


COMMANDS: Dict[str, Callable[[FSOperations, argparse.Namespace], Any]] = {
    "init": lambda fs, a: fs.list_refs(),
    "refs": lambda fs, a: fs.list_refs(a.prefix),
    "get-ref": lambda fs, a: fs.get_ref(a.name),
    "set-ref": _set_ref,
    "delete-ref": lambda fs, a: fs.delete_ref(a.name),
    "open": lambda fs, a: fs.open_at_path(a.root, a.path),
    "read": lambda fs, a: fs.read_at_path(a.root, a.path, a.start, a.end),
    "read-hash": lambda fs, a: fs.read_range(a.hash, a.start, a.end),
    "write": lambda fs, a: fs.write_at_path(a.root, a.path, _content(a), expected=a.expected),
    "delete": lambda fs, a: fs.delete_at_path(a.root, a.path, expected=a.expected),
    "edit": lambda fs, a: fs.edit_range(a.root, a.path, a.start, a.end, a.replacement, expected=a.expected),
    "glob": lambda fs, a: fs.glob(a.root, a.pattern),
    "grep": lambda fs, a: fs.grep(a.root, a.pattern, a.glob, a.max_results, a.context),
    "put-text": lambda fs, a: fs.put_text(_content(a)),
    "put-bytes": _put_bytes,
    "put-symlink": lambda fs, a: fs.put_symlink(a.target),
    "stats": lambda fs, a: fs.stats(),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="merkle-vfs", description="Content-addressed virtual filesystem")
    parser.add_argument("--config", help="JSON config file")
    parser.add_argument("--db", help="database directory, overrides the config")
    parser.add_argument("--log-level", default="WARNING", help="logging level (default WARNING)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="create the database (and write --config if given)")
    sub.add_parser("stats", help="object and ref counts")

    p = sub.add_parser("refs", help="list refs, most recently updated first")
    p.add_argument("prefix", nargs="?")
    p = sub.add_parser("get-ref")
    p.add_argument("name")
    p = sub.add_parser("set-ref")
    p.add_argument("name")
    p.add_argument("hash")
    p.add_argument("--expected", help="fail unless the ref currently has this hash")
    p = sub.add_parser("delete-ref")
    p.add_argument("name")

    for name in ("open", "read"):
        p = sub.add_parser(name)
        p.add_argument("root")
        p.add_argument("path")
        if name == "read":
            p.add_argument("--start", type=int)
            p.add_argument("--end", type=int)
    p = sub.add_parser("read-hash")
    p.add_argument("hash")
    p.add_argument("--start", type=int)
    p.add_argument("--end", type=int)

    p = sub.add_parser("write", help="write text (or sha256:<hash>) at a path")
    p.add_argument("root")
    p.add_argument("path")
    p.add_argument("content", nargs="?")
    p.add_argument("--stdin", action="store_true", help="read content from stdin")
    p.add_argument("--expected")
    p = sub.add_parser("delete")
    p.add_argument("root")
    p.add_argument("path")
    p.add_argument("--expected")
    p = sub.add_parser("edit", help="replace lines [start, end) of a text file")
    p.add_argument("root")
    p.add_argument("path")
    p.add_argument("start", type=int)
    p.add_argument("end", type=int)
    p.add_argument("replacement")
    p.add_argument("--expected")

    p = sub.add_parser("glob")
    p.add_argument("root")
    p.add_argument("pattern")
    p = sub.add_parser("grep")
    p.add_argument("root")
    p.add_argument("pattern")
    p.add_argument("--glob")
    p.add_argument("--max-results", type=int)
    p.add_argument("--context", type=int, default=0)

    p = sub.add_parser("put-text")
    p.add_argument("content", nargs="?")
    p.add_argument("--stdin", action="store_true")
    p = sub.add_parser("put-bytes")
    p.add_argument("file")
    p = sub.add_parser("put-symlink")
    p.add_argument("target")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    try:
        config = load_config(args.config)
        if args.db:
            config.db_path = args.db
        if args.command == "init" and args.config:
            save_config(config, args.config)
        fs = FSOperations.from_config(config)
        result = COMMANDS[args.command](fs, args)
    except (MerkleVFSError, OSError) as e:
        logger.debug("Command failed", exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1
    print(to_json(result))
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
