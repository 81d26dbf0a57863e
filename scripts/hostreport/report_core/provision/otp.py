"""Reset a Guacamole user's TOTP enrollment so they re-enroll on next login."""

from __future__ import annotations

import logging
import shlex

from report_core.collectors import Runner, run_command
from report_core.errors import UsageError
from report_core.provision import run_checked

logger = logging.getLogger(__name__)

DEFAULT_DATABASE = "guacamole"
DEFAULT_MYSQL_COMMAND = "mysql"

TOTP_ATTRIBUTE = "guac-totp-key-confirmed"


def sql_quote(value: str) -> str:
    """Quote ``value`` as a MySQL string literal."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'").replace("\0", "\\0")
    return f"'{escaped}'"


def reset_statement(username: str) -> str:
    return (
        "update\n"
        "    guacamole_user_attribute AS gua,\n"
        "    guacamole_entity AS ge,\n"
        "    guacamole_user AS gu\n"
        "set\n"
        "    gua.attribute_value = 'false'\n"
        "where\n"
        "    ge.type = 'USER'\n"
        f"    AND ge.name = {sql_quote(username)}\n"
        "    AND ge.entity_id = gu.entity_id\n"
        "    AND gu.user_id = gua.user_id\n"
        f"    AND gua.attribute_name = {sql_quote(TOTP_ATTRIBUTE)};\n"
    )


def mysql_command(mysql_command: str, database: str) -> list[str]:
    # Credentials are expected in ~/.my.cnf; extra flags may ride along in the command string.
    parts = shlex.split(mysql_command)
    if not parts:
        raise UsageError("mysql command must not be empty")
    return parts + [database]


def reset_otp(
    username: str,
    database: str = DEFAULT_DATABASE,
    mysql: str = DEFAULT_MYSQL_COMMAND,
    runner: Runner = run_command,
) -> list[str]:
    if not username.strip():
        raise UsageError("username must not be empty")
    logger.debug("resetting %s in database %s", TOTP_ATTRIBUTE, database)
    run_checked(runner, mysql_command(mysql, database), input_text=reset_statement(username))
    return [f"Resetting OTP for user [{username}]", "\t(user will need to re-enroll)"]
