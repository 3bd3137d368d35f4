import logging


PACKAGE = "relaycat"


def _package_logger() -> logging.Logger:
    logger = logging.getLogger(PACKAGE)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        logger.addHandler(handler)
        logger.setLevel(logging.WARN)
    return logger


def get_logger(name: str) -> logging.Logger:
    _package_logger()
    return logging.getLogger(name)


def set_verbosity(verbose: bool):
    _package_logger().setLevel(logging.INFO if verbose else logging.WARN)
