"""
CommandExecutor -- transactional boundary for kernel commands.

Responsibility:
    Runs one command (a callable over a Session) inside ``session_scope``:
    commit on success, rollback on any error.  Domain errors are converted
    into REJECTED CommandResults instead of propagating.

Architecture position:
    Kernel > Services -- the outermost shell an application layer talks to.

Invariants enforced:
    - A REJECTED result means the transaction was rolled back; nothing the
      command flushed is visible afterwards.
    - Log records emitted while a command runs carry ``command``, and the
      caller's ``actor_id`` / ``business_id`` / ``correlation_id``.
    - No automatic retry, except ``execute_with_refresh``: one refresh and
      one replay after SessionExpiredError.  A failed refresh is FATAL.

Failure modes:
    - Non-domain exceptions (database errors, bugs) are rolled back and
      re-raised unchanged.
"""

from __future__ import annotations

from typing import Any, Callable, TypeVar

from sqlalchemy.orm import Session, sessionmaker

from backoffice_kernel.db.engine import session_scope
from backoffice_kernel.domain.commands import CommandResult, CommandStatus
from backoffice_kernel.domain.session import SessionContext
from backoffice_kernel.exceptions import BackofficeKernelError, SessionExpiredError
from backoffice_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.command_executor")

T = TypeVar("T")


class CommandExecutor:
    """
    Executes commands in their own transaction.

    Contract:
        ``fn`` receives a fresh Session and must not commit it.  The
        session is closed when ``execute`` returns.
    """

    def __init__(self, session_factory: sessionmaker[Session] | None = None):
        self._factory = session_factory

    def execute(
        self,
        command: str,
        fn: Callable[[Session], T],
        ctx: SessionContext | None = None,
    ) -> CommandResult[T]:
        fields = ctx.log_fields() if ctx is not None else {}
        with LogContext.bind(command=command, **fields):
            try:
                with session_scope(self._factory) as session:
                    value = fn(session)
            except BackofficeKernelError as exc:
                logger.warning(
                    "command_rejected",
                    extra={"error_code": exc.code, "error_category": exc.category},
                )
                return CommandResult.from_error(command, exc)

            logger.info("command_succeeded")
            return CommandResult.succeeded(command, value)

    def execute_with_refresh(
        self,
        command: str,
        fn: Callable[[Session, SessionContext], T],
        ctx: SessionContext,
        refresh: Callable[[], SessionContext],
    ) -> CommandResult[T]:
        """
        Execute ``fn``; on an expired session refresh once and replay.

        Args:
            command: Command name for logs and the result.
            fn: Callable taking (session, ctx).
            ctx: Caller's current session.
            refresh: Returns a new SessionContext, or raises a domain error
                (typically InvalidTokenError) when the refresh token is no
                longer usable.  The callback owns storing the new tokens.

        Returns:
            The replayed command's result, or a FATAL result when the
            refresh fails or the refreshed session is still expired.
        """
        first = self._attempt(command, fn, ctx)
        if first.error_code != SessionExpiredError.code:
            return first

        logger.info("session_refresh_attempted", extra={"command_name": command})
        try:
            refreshed = refresh()
        except BackofficeKernelError as exc:
            logger.error(
                "session_refresh_failed",
                extra={"command_name": command, "error_code": exc.code},
            )
            return CommandResult.from_error(command, exc, fatal=True)

        second = self._attempt(command, fn, refreshed)
        if second.error_code == SessionExpiredError.code:
            return _as_fatal(second)
        return second

    def _attempt(
        self,
        command: str,
        fn: Callable[[Session, SessionContext], T],
        ctx: SessionContext,
    ) -> CommandResult[T]:
        return self.execute(command, lambda session: fn(session, ctx), ctx)


def _as_fatal(result: CommandResult[Any]) -> CommandResult[Any]:
    return CommandResult(
        status=CommandStatus.FATAL,
        command=result.command,
        error_code=result.error_code,
        error_category=result.error_category,
        message=result.message,
        details=result.details,
    )
