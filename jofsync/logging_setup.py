"""Logging configuration for the CLI."""

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

_NOISY = ("httpx", "httpcore")


def setup_logging(*, verbose: bool = False, log_file: Path | None = None) -> None:
    """Configure the root logger once, before the first log call.

    Console output goes through rich on stderr; log_file, when given, gets
    everything at DEBUG.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    for h in list(root.handlers):
        root.removeHandler(h)

    console = RichHandler(
        console=Console(stderr=True),
        level=logging.DEBUG if verbose else logging.INFO,
        show_path=False,
        rich_tracebacks=True,
    )
    console.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    root.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root.addHandler(fh)

    for name in _NOISY:
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else logging.WARNING)

    logging.captureWarnings(True)
