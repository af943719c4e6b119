import logging
import os
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(
    name: str, log_file: str | None = None, level: int | None = None
) -> logging.Logger:
    """
    Configures the root logger once and returns the logger for `name`.

    The level comes from `level`, then from the LOG_LEVEL environment variable, then INFO.
    """
    if level is None:
        level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
        if not isinstance(level, int):
            level = logging.INFO

    formatter = logging.Formatter(LOG_FORMAT)

    # Handlers live on the root logger so module loggers created with __name__ reach them.
    root = logging.getLogger()
    if not root.handlers:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(formatter)
        root.addHandler(stream_handler)

        if log_file is not None:
            file_handler = logging.FileHandler(log_file, mode="a")
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

    root.setLevel(level)

    return logging.getLogger(name)
