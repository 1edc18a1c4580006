# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from logging import Logger

import typing
from typing import Any, Optional, Callable, Union
import mysql.connector
from mysql.connector import errorcode
import kopf
import time


# MariaDB connection errors that are not supposed to happen while connecting
# to a cluster member. If these happen there's either a bug or someone/thing
# broke the cluster. There's no point in retrying after these.
FATAL_CONNECT_ERRORS = set([
    # Authentication errors aren't supposed to happen because we
    # only use the root account from the referenced secret
    errorcode.ER_ACCESS_DENIED_ERROR,
    errorcode.ER_ACCOUNT_HAS_BEEN_LOCKED
])

# Same as above, but for errors that happen while executing SQL.
FATAL_SQL_ERRORS = set([
    errorcode.ER_MUST_CHANGE_PASSWORD,
    errorcode.ER_NO_DB_ERROR,
    errorcode.ER_NO_SUCH_TABLE,
    errorcode.ER_UNKNOWN_SYSTEM_VARIABLE,
    errorcode.ER_SPECIFIC_ACCESS_DENIED_ERROR,
    errorcode.ER_TABLEACCESS_DENIED_ERROR,
    errorcode.ER_COLUMNACCESS_DENIED_ERROR
])

FATAL_MYSQL_ERRORS = FATAL_CONNECT_ERRORS.union(FATAL_SQL_ERRORS)


def check_fatal_connect(err, where, logger) -> bool:
    if err.errno in FATAL_MYSQL_ERRORS:
        logger.error(
            f"Unexpected error connecting to MariaDB. This error is not expected and may indicate a bug or corrupted cluster deployment: error={err} target={where}")
        return True
    return False


def check_fatal(err, where, context, logger) -> bool:
    if err.errno in FATAL_SQL_ERRORS:
        logger.error(
            f"Unexpected MariaDB error. This error is not expected and may indicate a bug or corrupted cluster deployment: error={err} target={where}{' context=%s' % context if context else ''}")
        return True
    return False


class GiveUp(Exception):
    def __init__(self, real_exc=None):
        self.real_exc = real_exc


T = typing.TypeVar("T")


class RetryLoop:
    def __init__(self, logger: Logger, timeout: int = 60,
                 max_tries: Optional[int] = None,
                 is_retriable: Optional[Callable] = None,
                 backoff: Callable[[int], int] = lambda i: i+1):
        self.logger = logger
        self.timeout = timeout
        self.max_tries = max_tries
        self.backoff = backoff
        self.is_retriable = is_retriable

    def call(self, f: Callable[..., T], *args, **kwargs) -> T:
        delay = 1
        tries = 0
        total_wait = 0
        while True:
            try:
                tries += 1
                return f(*args, **kwargs)
            except (kopf.PermanentError, kopf.TemporaryError):
                # Don't retry kopf errors
                raise
            except GiveUp as err:
                self.logger.error(
                    f"Error executing {f.__qualname__}, giving up: {err.real_exc}")
                if err.real_exc:
                    raise err.real_exc
                else:
                    return None
            except mysql.connector.Error as err:
                if self.is_retriable and not self.is_retriable(err):
                    raise

                if total_wait < self.timeout and (self.max_tries is None or tries < self.max_tries):
                    self.logger.info(
                        f"Error executing {f.__qualname__}, retrying after {delay}s: {err}")
                    time.sleep(delay)
                    total_wait += delay
                    delay = self.backoff(delay)
                else:
                    self.logger.error(
                        f"Error executing {f.__qualname__}, giving up: {err}")
                    raise


class SessionWrap:
    """
    Thin wrapper over a mysql.connector connection that returns rows as dicts
    and closes the connection when used as a context manager.
    """

    def __init__(self, session: Union['mysql.connector.MySQLConnection', dict]) -> None:
        if isinstance(session, dict):
            try:
                self.session = mysql.connector.connect(**session)
            except mysql.connector.Error as e:
                where = f"{session.get('host')}:{session.get('port')}"
                raise mysql.connector.Error(
                    msg=f"Error connecting to {where}: {e.msg}", errno=e.errno)
        else:
            self.session = session

    def __enter__(self) -> 'SessionWrap':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.session.close()

    def __getattr__(self, name) -> Any:
        return getattr(self.session, name)

    def run_sql(self, sql: str, args: Optional[tuple] = None) -> list[dict]:
        cursor = self.session.cursor(dictionary=True)
        try:
            cursor.execute(sql, args)
            if cursor.with_rows:
                return cursor.fetchall()
            return []
        finally:
            cursor.close()

    def query_one(self, sql: str, args: Optional[tuple] = None) -> Optional[dict]:
        rows = self.run_sql(sql, args)
        return rows[0] if rows else None


def connect_to_member(host: str, port: int, user: str, password: str,
                      logger: Logger, connect_timeout: int = 10, tls: bool = False,
                      **kwargs) -> SessionWrap:
    def connect(target):
        session = SessionWrap(target)
        # make sure there's no global ansi_quotes or anything like that
        session.run_sql("SET SESSION sql_mode=''")
        return session

    target = {
        "host": host,
        "port": port,
        "user": user,
        "password": password,
        "connection_timeout": connect_timeout,
        "autocommit": True
    }
    if not tls:
        target["ssl_disabled"] = True

    def is_retriable(err) -> bool:
        return not check_fatal_connect(err, f"{host}:{port}", logger)

    return RetryLoop(logger, is_retriable=is_retriable, **kwargs).call(connect, target)
