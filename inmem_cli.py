"""
Line-oriented command interpreter for the transactional store.

Reads one command per line (SET, GET, UNSET, NUMEQUALTO, BEGIN, ROLLBACK,
COMMIT, END), writes results to an output stream and diagnostics for
malformed commands to an error stream.
"""

import argparse
import io
import logging
import sys
from typing import Iterable, List, Optional, TextIO

from inmem_store import Store, TransactionalStore


logger = logging.getLogger(__name__)

NULL = "NULL"
NO_TRANSACTION = "NO TRANSACTION"

# keyword -> (number of arguments, usage shown in diagnostics)
COMMANDS = {
    "set": (2, "two arguments: SET variable value"),
    "get": (1, "an argument: GET variable"),
    "unset": (1, "an argument: UNSET variable"),
    "numequalto": (1, "an argument: NUMEQUALTO value"),
    "begin": (0, "no arguments: BEGIN"),
    "rollback": (0, "no arguments: ROLLBACK"),
    "commit": (0, "no arguments: COMMIT"),
    "end": (0, "no arguments: END"),
}


class CommandInterpreter:
    """Dispatches protocol commands to a Store"""

    def __init__(self, store: Store, out: TextIO = sys.stdout, err: TextIO = sys.stderr):
        self.store = store
        self.out = out
        self.err = err

    def _write(self, text: str) -> None:
        self.out.write(text + "\n")
        self.out.flush()

    def _diagnose(self, message: str) -> None:
        logger.debug("Rejected command: %s", message)
        print(message, file=self.err)

    def execute(self, line: str) -> bool:
        """
        Execute a single command line.

        Returns False once END has been executed, True otherwise (including
        for blank and malformed lines).
        """
        tokens = line.split()
        if not tokens:
            return True

        command, args = tokens[0].lower(), tokens[1:]
        if command not in COMMANDS:
            self._diagnose(f"Unrecognized command: {tokens[0]}")
            return True

        arity, usage = COMMANDS[command]
        if len(args) != arity:
            self._diagnose(f"{command.upper()} requires {usage}")
            return True

        logger.debug("Executing %s %s", command.upper(), " ".join(args))

        if command == "set":
            self.store.set(args[0], args[1])
        elif command == "get":
            value = self.store.get(args[0])
            self._write(NULL if value is None else value)
        elif command == "unset":
            self.store.unset(args[0])
        elif command == "numequalto":
            self._write(str(self.store.number_of_values_equal_to(args[0])))
        elif command == "begin":
            self.store.begin_transaction()
        elif command == "rollback":
            if not self.store.rollback_transaction():
                self._write(NO_TRANSACTION)
        elif command == "commit":
            if not self.store.commit_all_open_transactions():
                self._write(NO_TRANSACTION)
        elif command == "end":
            return False
        return True

    def run(self, lines: Iterable[str]) -> bool:
        """
        Execute lines until END.

        Returns True if the session was ended with END, False if input ran
        out first.
        """
        for line in lines:
            if not self.execute(line):
                return True
        self._diagnose("End-of-file reached before 'END' command.")
        return False


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="inmem-db",
        description="In-memory key-value store with nested transactions",
    )
    parser.add_argument(
        "--input", "-i", metavar="PATH",
        help="read commands from PATH instead of standard input",
    )
    parser.add_argument(
        "--log-level", default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="logging level for diagnostics on stderr (default: WARNING)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Console entry point; returns the process exit status"""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    interpreter = CommandInterpreter(TransactionalStore(), sys.stdout, sys.stderr)
    try:
        if args.input:
            with open(args.input, encoding="utf-8", errors="replace") as source:
                ended = interpreter.run(source)
        else:
            # undecodable bytes become U+FFFD instead of ending the session
            if isinstance(sys.stdin, io.TextIOWrapper):
                sys.stdin.reconfigure(errors="replace")
            ended = interpreter.run(sys.stdin)
    except OSError:
        logger.exception("IO error - stopping database")
        return 2
    return 0 if ended else 1


if __name__ == "__main__":
    sys.exit(main())
