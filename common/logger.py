"""Unified logger with refresh-cycle tracing."""
import logging
import uuid
from contextvars import ContextVar

from config.settings import LOG_LEVEL

cycle_id_var: ContextVar[str] = ContextVar("cycle_id", default="")

_factory_installed = False


def _install_record_factory() -> None:
    global _factory_installed
    if _factory_installed:
        return
    old_factory = logging.getLogRecordFactory()

    def record_factory(*args, **kwargs):
        record = old_factory(*args, **kwargs)
        record.cycle_id = cycle_id_var.get() or "-"
        return record

    logging.setLogRecordFactory(record_factory)
    _factory_installed = True


def get_logger(name: str) -> logging.Logger:
    _install_record_factory()
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        fmt = logging.Formatter(
            "[%(asctime)s] [%(cycle_id)s] %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
        handler.setFormatter(fmt)
        logger.addHandler(handler)
        logger.setLevel(getattr(logging, LOG_LEVEL.upper(), logging.INFO))
    return logger


def new_cycle_id() -> str:
    cid = str(uuid.uuid4())[:8]
    cycle_id_var.set(cid)
    return cid
