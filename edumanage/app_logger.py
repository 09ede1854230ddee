import logging, os

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DEFAULT_LEVEL = os.getenv("EDUMANAGE_LOG_LEVEL", "INFO").upper()
_BASE_NAME = "edumanage"


def setup_logging(level: str | None = None) -> logging.Logger:
    resolved = getattr(logging, (level or _DEFAULT_LEVEL).upper(), logging.INFO)

    logger = logging.getLogger(_BASE_NAME)
    logger.setLevel(resolved)

    # Avoid duplicate console handlers on repeated setup
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(ch)
    for handler in logger.handlers:
        handler.setLevel(resolved)

    logger.propagate = False
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    base = logging.getLogger(_BASE_NAME)
    return base.getChild(name) if name else base
