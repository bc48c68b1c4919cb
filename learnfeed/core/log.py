import logging


def get_logger(name: str, tag: str) -> logging.Logger:
    """Logger that writes `LEVEL: [TAG] message` lines to stderr."""
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(logging.INFO)
        handler.setFormatter(logging.Formatter(f"%(levelname)s: [{tag}] %(message)s"))
        logger.addHandler(handler)
    return logger
