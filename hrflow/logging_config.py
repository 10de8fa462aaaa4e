"""Process-wide logging setup shared by the API and the scheduler entry points."""

import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s — %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "info") -> None:
    """Configure the root logger once; later calls only adjust the level."""
    numeric = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=numeric, format=LOG_FORMAT, datefmt=DATE_FORMAT)
    root.setLevel(numeric)
    # SQL echo is noisy at debug level; keep it opt-in
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
