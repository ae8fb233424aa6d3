"""
prodigyhub.services.xp_service — XP Ledger
===========================================

The only writer of ``users.total_xp`` and ``users.level``.

Every award is a single SQL increment (``total_xp = total_xp + :amount``)
so concurrent awards to the same user never lose updates; the level is
then re-derived from the returned total inside the same transaction.  Each
award leaves an ``xp_awarded`` audit row, plus one ``level_up`` row when
the award crossed at least one level.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import Engine, select, update
from sqlalchemy.orm import Session

from prodigyhub.database.models import ActivityKind, User
from prodigyhub.engine.leveling import LevelProgress, level_of, level_progress
from prodigyhub.errors import InvalidAmount, UserNotFound
from prodigyhub.services.activity_service import append_activity

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AwardResult:
    """Outcome of one XP award."""

    user_id: int
    amount: int
    old_level: int
    new_level: int
    total_xp: int

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level

    def to_dict(self) -> dict[str, int]:
        return {
            "old_level": self.old_level,
            "new_level": self.new_level,
            "total_xp": self.total_xp,
        }


def _validate_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount(
            f"XP amount must be a positive integer, got {amount!r}",
            {"amount": repr(amount)},
        )


class XPLedger:
    """Atomic XP accrual and level derivation.

    Parameters
    ----------
    engine:
        SQLAlchemy engine; each :meth:`award` runs in its own transaction.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------
    def award(
        self,
        user_id: int,
        amount: int,
        reason: str,
        *,
        project_id: int | None = None,
    ) -> AwardResult:
        """Add *amount* XP to *user_id* and recompute their level.

        Raises
        ------
        InvalidAmount
            If *amount* is not a positive ``int``.  Nothing is written.
        UserNotFound
            If the user does not exist.  Nothing is written.
        """
        _validate_amount(amount)
        with Session(self.engine) as session:
            result = self.apply(session, user_id, amount, reason, project_id=project_id)
            session.commit()

        if result.leveled_up:
            logger.info(
                "User %s levelled up %d → %d (+%d XP, %s)",
                user_id, result.old_level, result.new_level, amount, reason,
            )
        return result

    def apply(
        self,
        session: Session,
        user_id: int,
        amount: int,
        reason: str,
        *,
        project_id: int | None = None,
    ) -> AwardResult:
        """Stage an award inside the caller's transaction."""
        _validate_amount(amount)
        total_xp = session.execute(
            update(User)
            .where(User.id == user_id)
            .values(total_xp=User.total_xp + amount)
            .returning(User.total_xp)
            .execution_options(synchronize_session=False)
        ).scalar_one_or_none()
        if total_xp is None:
            raise UserNotFound(f"User {user_id} not found", {"user_id": user_id})

        old_level = level_of(total_xp - amount)
        new_level = level_of(total_xp)
        session.execute(
            update(User)
            .where(User.id == user_id)
            .values(level=new_level)
            .execution_options(synchronize_session=False)
        )

        append_activity(
            session,
            kind=ActivityKind.XP_AWARDED,
            description=f"Earned {amount} XP: {reason}",
            user_id=user_id,
            project_id=project_id,
            payload={"amount": amount, "reason": reason, "total_xp": total_xp},
        )
        if new_level > old_level:
            append_activity(
                session,
                kind=ActivityKind.LEVEL_UP,
                description=f"Reached level {new_level}",
                user_id=user_id,
                project_id=project_id,
                payload={"old_level": old_level, "new_level": new_level},
            )

        return AwardResult(
            user_id=user_id,
            amount=amount,
            old_level=old_level,
            new_level=new_level,
            total_xp=total_xp,
        )

    def recompute_levels(self) -> int:
        """Re-derive ``level`` from ``total_xp`` for every user.

        Returns the number of rows that were corrected.  A row whose
        ``total_xp`` moved since it was read is left alone; the award that
        moved it already wrote the matching level.
        """
        corrected = 0
        with Session(self.engine) as session:
            rows = session.execute(select(User.id, User.total_xp, User.level)).all()
            for user_id, total_xp, level in rows:
                expected = level_of(total_xp)
                if expected == level:
                    continue
                result = session.execute(
                    update(User)
                    .where(User.id == user_id, User.total_xp == total_xp)
                    .values(level=expected)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    continue
                logger.info("Corrected level for user %s: %d → %d", user_id, level, expected)
                corrected += 1
            session.commit()
        return corrected

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------
    def progress(self, user_id: int) -> tuple[User, LevelProgress]:
        """Return the user row and where they sit inside their level."""
        with Session(self.engine, expire_on_commit=False) as session:
            user = session.get(User, user_id)
            if user is None:
                raise UserNotFound(f"User {user_id} not found", {"user_id": user_id})
            session.expunge(user)
        return user, level_progress(user.total_xp)
