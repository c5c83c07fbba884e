import logging
import os
import sys


_STATUS_LEVELS = {
    "BLOCKED": logging.INFO,
    "ALLOWED": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def setup_logging():
    """Configures logging for PlayShield."""
    logger = logging.getLogger("PlayShield")
    if logger.handlers:
        return logger
    logger.setLevel(logging.INFO)

    formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')

    # Console Handler
    ch = logging.StreamHandler(sys.stdout)
    ch.setFormatter(formatter)
    logger.addHandler(ch)

    # File Handler, only when PLAYSHIELD_AUDIT_LOG is set
    audit_path = str(os.environ.get("PLAYSHIELD_AUDIT_LOG", "")).strip()
    if audit_path:
        fh = logging.FileHandler(audit_path)
        fh.setFormatter(formatter)
        logger.addHandler(fh)

    return logger

logger = setup_logging()

def audit(action, details, status="INFO"):
    """Logs an action to the audit log."""
    level = _STATUS_LEVELS.get(str(status).split(" ", 1)[0].upper(), logging.INFO)
    logger.log(level, f"[{status}] {action}: {details}")
