"""
Logging setup for cms_auth

LOG_FORMAT=json emits one JSON object per line (for log shipping),
LOG_FORMAT=text emits the usual human-readable lines.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from cms_auth.core.config import Settings
from cms_auth.utils.security import mask_email


_STANDARD_ATTRS = frozenset(
    logging.LogRecord(
        name="", level=0, pathname="", lineno=0, msg="", args=(), exc_info=None
    ).__dict__.keys()
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """Formats log records as JSON, carrying `extra=` fields along"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                entry[key] = value if isinstance(value, (str, int, float, bool)) or value is None else str(value)

        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(entry)


def configure_logging(settings: Settings) -> None:
    """Install a single stdout handler on the root logger"""
    handler = logging.StreamHandler(sys.stdout)
    if settings.LOG_FORMAT == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.LOG_LEVEL)


class SecurityLogger:
    """
    Security event log

    Every event goes to the `cms_auth.security` logger with an `event`
    field so it can be filtered out of the general stream.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("cms_auth.security")

    def log_failed_login(self, email: str, ip: Optional[str] = None, user_agent: Optional[str] = None) -> None:
        self.logger.warning(
            "Failed login attempt",
            extra={"event": "FAILED_LOGIN", "email": mask_email(email), "ip": ip, "user_agent": user_agent},
        )

    def log_successful_login(self, user_id: str, email: str, mfa_verified: bool = False) -> None:
        self.logger.info(
            "Successful login",
            extra={"event": "SUCCESSFUL_LOGIN", "user_id": user_id, "email": mask_email(email), "mfa_verified": mfa_verified},
        )

    def log_two_factor_required(self, user_id: str) -> None:
        self.logger.info("2FA verification required", extra={"event": "2FA_REQUIRED", "user_id": user_id})

    def log_two_factor_failed(self, user_id: str, method: str) -> None:
        self.logger.warning(
            "Failed 2FA verification",
            extra={"event": "2FA_FAILED", "user_id": user_id, "method": method},
        )

    def log_backup_code_used(self, user_id: str, remaining: int) -> None:
        self.logger.warning(
            "Backup code consumed",
            extra={"event": "BACKUP_CODE_USED", "user_id": user_id, "remaining": remaining},
        )

    def log_two_factor_changed(self, user_id: str, action: str) -> None:
        self.logger.warning("2FA settings changed", extra={"event": "2FA_CHANGED", "user_id": user_id, "action": action})

    def log_refresh_reuse(self, user_id: str, jti: str) -> None:
        self.logger.error(
            "Revoked refresh token presented",
            extra={"event": "REFRESH_TOKEN_REUSE", "user_id": user_id, "jti": jti},
        )

    def log_password_changed(self, user_id: str) -> None:
        self.logger.info("Password changed", extra={"event": "PASSWORD_CHANGED", "user_id": user_id})

    def log_role_changed(self, user_id: str, old_role: str, new_role: str) -> None:
        self.logger.warning(
            "User role changed",
            extra={"event": "ROLE_CHANGED", "user_id": user_id, "old_role": old_role, "new_role": new_role},
        )

    def log_user_deleted(self, user_id: str) -> None:
        self.logger.warning("User deleted", extra={"event": "USER_DELETED", "user_id": user_id})

    def log_access_denied(self, user_id: Optional[str], path: str, reason: str) -> None:
        self.logger.warning(
            "Access denied",
            extra={"event": "ACCESS_DENIED", "user_id": user_id, "path": path, "reason": reason},
        )
