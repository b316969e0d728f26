"""Console and file logging setup."""

import logging
from typing import Optional

from rich.logging import RichHandler


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    levelno = getattr(logging, level.upper(), logging.INFO)
    handlers: list = [RichHandler(rich_tracebacks=True, show_path=False)]
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        )
        handlers.append(file_handler)
    logging.basicConfig(level=levelno, format="%(message)s", handlers=handlers, force=True)
    # scapy is noisy at INFO
    logging.getLogger("scapy.runtime").setLevel(logging.ERROR)
