"""
Line-oriented command shell for the transactional key-value store.

Reads one command per line, validates it strictly (exact token count, exact
casing, single spaces, no surrounding whitespace), dispatches it to a
TransactionalStore and prints "> <result>" for every non-empty result.

    SET <key> <value>   GET <key>   UNSET <key>   NUMEQUALTO <value>
    BEGIN   ROLLBACK   COMMIT   END

END is accepted silently and reading continues; input stops only at end of
stream. Lines that are not valid UTF-8 are rejected like any other malformed
line. Command lines are not echoed unless ECHO is enabled in the config file
or --echo is given, so by default only results are printed.
"""

from __future__ import annotations

import argparse
import configparser
import io
import logging
import re
import sys
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, TextIO

from txn_store import KeyValueStore, NoTransactionError, TransactionalStore


logger = logging.getLogger(__name__)

NULL = "NULL"
NO_TRANSACTION = "NO TRANSACTION"
ERROR_INPUT = "ERROR INPUT"
END = "END"

DEFAULT_CONFIG = "txn_store.ini"
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

_TOKEN = r"(\S+)"
_PATTERNS: Dict[str, re.Pattern] = {
    "SET": re.compile(rf"SET {_TOKEN} {_TOKEN}"),
    "GET": re.compile(rf"GET {_TOKEN}"),
    "UNSET": re.compile(rf"UNSET {_TOKEN}"),
    "NUMEQUALTO": re.compile(rf"NUMEQUALTO {_TOKEN}"),
    "BEGIN": re.compile("BEGIN"),
    "ROLLBACK": re.compile("ROLLBACK"),
    "COMMIT": re.compile("COMMIT"),
}


@dataclass
class ShellConfig:
    log_level: str = "WARNING"
    log_file: Optional[str] = None  # None means stderr
    echo: bool = False


def load_config(path: str = DEFAULT_CONFIG) -> ShellConfig:
    """Read [DEFAULT] settings from an INI file; a missing file yields the defaults."""
    parser = configparser.ConfigParser()
    parser.read(path)
    return ShellConfig(
        log_level=parser.get("DEFAULT", "LOG_LEVEL", fallback="WARNING").upper(),
        log_file=parser.get("DEFAULT", "LOG_FILE", fallback=None) or None,
        echo=parser.getboolean("DEFAULT", "ECHO", fallback=False),
    )


def configure_logging(config: ShellConfig) -> None:
    level = logging.getLevelName(config.log_level)
    if not isinstance(level, int):
        # unknown names come back as "Level <name>"
        level = logging.WARNING
    logging.basicConfig(
        filename=config.log_file,
        level=level,
        format=LOG_FORMAT,
    )


# ---- command handlers ----
# Each handler gets the store and the captured tokens and returns the text
# to print ("" for nothing).

def handle_set(store: KeyValueStore, key: str, value: str) -> str:
    store.set(key, value)
    return ""


def handle_get(store: KeyValueStore, key: str) -> str:
    value = store.get(key)
    return NULL if value is None else value


def handle_unset(store: KeyValueStore, key: str) -> str:
    store.unset(key)
    return ""


def handle_numequalto(store: KeyValueStore, value: str) -> str:
    return str(store.count_equal_to(value))


def handle_begin(store: KeyValueStore) -> str:
    store.begin()
    return ""


def handle_rollback(store: KeyValueStore) -> str:
    try:
        store.rollback()
    except NoTransactionError:
        return NO_TRANSACTION
    return ""


def handle_commit(store: KeyValueStore) -> str:
    try:
        store.commit()
    except NoTransactionError:
        return NO_TRANSACTION
    return ""


COMMANDS: Dict[str, Callable[..., str]] = {
    "SET": handle_set,
    "GET": handle_get,
    "UNSET": handle_unset,
    "NUMEQUALTO": handle_numequalto,
    "BEGIN": handle_begin,
    "ROLLBACK": handle_rollback,
    "COMMIT": handle_commit,
}


def _is_text(line: str) -> bool:
    """False if the line carries bytes that were not valid UTF-8"""
    try:
        line.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def _printable(line: str) -> str:
    """Line with undecodable input bytes shown as \\xNN escapes"""
    try:
        return line.encode("utf-8", "surrogateescape").decode("utf-8", "backslashreplace")
    except UnicodeEncodeError:
        return line.encode("utf-8", "backslashreplace").decode("utf-8")


def execute(store: KeyValueStore, line: str) -> str:
    """
    Run a single command line against the store.

    Returns the result text ("" when there is nothing to print, including
    for END) or ERROR_INPUT for a malformed line.
    """
    if line == END:
        return ""
    if not _is_text(line):
        logger.debug("Rejected undecodable input line %r", line)
        return ERROR_INPUT

    name = line.split(" ", 1)[0]
    pattern = _PATTERNS.get(name)
    match = pattern.fullmatch(line) if pattern else None
    if match is None:
        logger.debug("Rejected input line %r", line)
        return ERROR_INPUT
    return COMMANDS[name](store, *match.groups())


def run(store: KeyValueStore, lines: Iterable[str], out: TextIO, echo: bool = False) -> None:
    """Execute lines until end of input, writing results to out."""
    for raw in lines:
        line = raw[:-1] if raw.endswith("\n") else raw
        if echo:
            print(_printable(line), file=out)
        result = execute(store, line)
        if result:
            print(f"> {result}", file=out)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="In-memory key-value store with nested transactions")
    parser.add_argument("--input", type=str, default=None, help="Read commands from FILE instead of stdin")
    parser.add_argument("--config", type=str, default=DEFAULT_CONFIG, help="INI file with logging/echo settings")
    parser.add_argument("--echo", action="store_true", help="Echo every command line before its result")
    args = parser.parse_args(argv)

    config = load_config(args.config)
    configure_logging(config)
    echo = args.echo or config.echo

    store = TransactionalStore()
    if args.input is None:
        if isinstance(sys.stdin, io.TextIOWrapper):
            sys.stdin.reconfigure(errors="surrogateescape")
        run(store, sys.stdin, sys.stdout, echo=echo)
        return 0

    try:
        with open(args.input, encoding="utf-8", errors="surrogateescape") as handle:
            run(store, handle, sys.stdout, echo=echo)
    except OSError as e:
        print(f"Error: cannot read {args.input}: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
