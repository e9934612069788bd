from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from rich.logging import RichHandler


def setup_logging(
    log_dir: str | Path = "logs",
    level: int | str = logging.INFO,
    suppress_libs: tuple[str, ...] = ("LiteLLM", "litellm", "httpx", "httpcore", "urllib3"),
    quiet: bool = False,
    log_file: Path | None = None,
) -> Path:
    """
    Configure root logger:

    • Console handler (Rich-coloured), skipped when ``quiet``
    • File handler  logs/YYYY-mm-dd_HHMMSS.log (or ``log_file``)
    • Downgrade chatty 3rd-party libraries to WARNING
    """
    if log_file:
        file_path = Path(log_file)
        file_path.parent.mkdir(exist_ok=True, parents=True)
    else:
        log_dir = Path(log_dir)
        log_dir.mkdir(exist_ok=True, parents=True)
        ts = datetime.now().strftime("%Y-%m-%d_%H%M%S")
        file_path = log_dir / f"{ts}.log"

    handlers: list[logging.Handler] = []

    if not quiet:
        handlers.append(
            RichHandler(
                markup=False,
                rich_tracebacks=True,
                show_path=False,
                level=level,
                log_time_format="%H:%M:%S",
            )
        )

    file_h = logging.FileHandler(file_path, encoding="utf-8")
    file_h.setFormatter(
        logging.Formatter(
            "%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    handlers.append(file_h)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.getLogger().info("Logging to %s", file_path)

    for lib in suppress_libs:
        logging.getLogger(lib).setLevel(logging.WARNING)
    return file_path
