"""
Logging Configuration
loguru sinks for the console, the application log, errors and the audit trail.

Every record carries an ``expense_id`` extra ("-" when unrelated to an
expense); bind it with ``expense_logger(expense_id)``.
"""

from loguru import logger
import sys
from pathlib import Path

from expense_approvals.config.settings import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "expense={extra[expense_id]} - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | expense={extra[expense_id]} - {message}"
AUDIT_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | expense={extra[expense_id]} | {message}"

_configured = False


def _file_sink(path, level: str, retention: str, fmt: str = FILE_FORMAT, **kwargs):
    logger.add(
        path,
        format=fmt,
        level=level,
        rotation="10 MB",
        retention=retention,
        compression="zip",
        **kwargs
    )


def setup_logger():
    """
    Configure the application logger

    Sinks are installed on the first call only; later calls return the
    already configured logger.

    Returns:
        logger: Configured logger instance
    """
    global _configured
    if _configured:
        return logger

    logger.remove()
    logger.configure(extra={"expense_id": "-"})

    log_dir = Path(settings.LOG_DIRECTORY)
    log_dir.mkdir(parents=True, exist_ok=True)

    logger.add(sys.stdout, format=CONSOLE_FORMAT, level=settings.LOG_LEVEL, colorize=True)

    _file_sink(settings.LOG_FILE, settings.LOG_LEVEL, "30 days")
    _file_sink(log_dir / "error.log", "ERROR", "90 days")
    _file_sink(
        log_dir / "audit.log",
        "INFO",
        "365 days",
        fmt=AUDIT_FORMAT,
        filter=lambda record: "AUDIT" in record["extra"]
    )

    _configured = True
    return logger


def expense_logger(expense_id):
    """Logger whose records are tagged with one expense"""
    return logger.bind(expense_id=expense_id)


def log_audit(user_id, action: str, details: str, expense_id=None):
    """
    Write an audit trail entry

    Args:
        user_id: Acting user (None for decisions taken by the workflow itself)
        action: Action performed
        details: Free-form details
        expense_id: Expense the action concerns, if any
    """
    logger.bind(AUDIT=True, expense_id=expense_id if expense_id is not None else "-").info(
        f"USER_ID={user_id} | ACTION={action} | DETAILS={details}"
    )
