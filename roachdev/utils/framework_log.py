import functools
import logging
import pathlib as pl
import time

INVOCATION_LOG = "orchestrator.log"


@functools.cache
def invocation_logger(log_dir: pl.Path) -> logging.Logger:
    """Get logger for the `orchestrator.log` file of an invocation.

    The file stays in the invocation log directory after the orchestrator exits, so it can be
    used to find out how the cluster nodes were started.
    """

    class UTCFormatter(logging.Formatter):
        converter = time.gmtime  # type: ignore[assignment]

    formatter = UTCFormatter("%(asctime)s %(levelname)s %(message)s")
    handler = logging.FileHandler(log_dir / INVOCATION_LOG)
    handler.setFormatter(formatter)

    logger = logging.getLogger(f"invocation.{log_dir.parent.name}")
    logger.setLevel(logging.INFO)
    logger.propagate = False
    logger.addHandler(handler)

    return logger
