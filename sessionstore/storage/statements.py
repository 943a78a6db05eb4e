"""
Session Statements: Parameterized SQL Built Once Per Table

The table name is trusted configuration and is the only value ever
interpolated into statement text. Session identifiers and contents are
always bound as parameters. Statements are rendered once, at
construction, in the executor's placeholder style; operations never
rebuild them.
"""

from __future__ import annotations

from dataclasses import dataclass

from sessionstore.core.config import validate_table_name
from sessionstore.core.errors import ConfigurationError
from sessionstore.core.types import Result, Ok
from sessionstore.storage.protocols import ParamStyle


@dataclass(frozen=True, slots=True)
class SessionStatements:
    """The seven statement shapes issued against a session table."""

    table_name: str
    paramstyle: ParamStyle
    get_by_session_id: str
    count_sessions: str
    update_by_session_id: str
    delete_by_session_id: str
    delete_expired_sessions: str
    insert: str
    regenerate: str

    @classmethod
    def build(
        cls,
        table_name: str,
        paramstyle: ParamStyle = ParamStyle.NUMERIC,
    ) -> Result[SessionStatements, ConfigurationError]:
        """
        Validate the table name and render every statement.

        Returns:
            Ok(SessionStatements): Ready-to-use statement set
            Err(ConfigurationError): Table name is not a SQL identifier
        """
        checked = validate_table_name(table_name)
        if checked.is_err():
            return checked

        p1, p2, p3, p4 = (paramstyle.placeholder(i) for i in range(1, 5))
        t = table_name

        return Ok(cls(
            table_name=t,
            paramstyle=paramstyle,
            get_by_session_id=(
                f"SELECT session_id,contents,last_active,expiration "
                f"FROM {t} WHERE session_id={p1}"
            ),
            count_sessions=f"SELECT count(*) AS total FROM {t}",
            update_by_session_id=(
                f"UPDATE {t} SET contents={p1},last_active={p2},expiration={p3} "
                f"WHERE session_id={p4}"
            ),
            delete_by_session_id=f"DELETE FROM {t} WHERE session_id={p1}",
            delete_expired_sessions=(
                f"DELETE FROM {t} WHERE last_active+expiration<={p1} "
                f"AND expiration<>0"
            ),
            insert=(
                f"INSERT INTO {t} (session_id, contents, last_active, expiration) "
                f"VALUES ({p1},{p2},{p3},{p4})"
            ),
            regenerate=(
                f"UPDATE {t} SET session_id={p1},last_active={p2},expiration={p3} "
                f"WHERE session_id={p4}"
            ),
        ))

    def all(self) -> tuple[str, ...]:
        """Every statement, in a stable order."""
        return (
            self.get_by_session_id,
            self.count_sessions,
            self.update_by_session_id,
            self.delete_by_session_id,
            self.delete_expired_sessions,
            self.insert,
            self.regenerate,
        )
