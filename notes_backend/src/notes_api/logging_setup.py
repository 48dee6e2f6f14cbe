from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional, Union

_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


# PUBLIC_INTERFACE
def setup_logging(level: Union[int, str] = logging.INFO, log_file: Optional[Union[str, Path]] = None) -> None:
    """
    Configure the package logger with a stderr handler and, optionally, a file handler.

    Safe to call more than once (e.g. one app per test): handlers installed by a
    previous call are replaced rather than duplicated.
    """
    package = __name__.rsplit(".", 1)[0]
    pkg_logger = logging.getLogger(package)
    pkg_logger.setLevel(level)

    for h in list(pkg_logger.handlers):
        if getattr(h, "_notes_api_handler", False):
            pkg_logger.removeHandler(h)
            h.close()

    fmt = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)

    ch = logging.StreamHandler(sys.stderr)
    ch.setFormatter(fmt)
    ch._notes_api_handler = True  # type: ignore[attr-defined]
    pkg_logger.addHandler(ch)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(path), encoding="utf-8")
        fh.setFormatter(fmt)
        fh._notes_api_handler = True  # type: ignore[attr-defined]
        pkg_logger.addHandler(fh)

    logging.captureWarnings(True)
