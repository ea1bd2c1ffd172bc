import hashlib
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from .....db.models import OTPCode
from .....application.ports.otp_repo import OtpRepository, OtpRecord
from .....exceptions import PersistenceFailure


def _advisory_lock_key(phone: str) -> int:
    # Stable across processes, unlike hash()
    return int.from_bytes(hashlib.sha256(phone.encode()).digest()[:8], "big", signed=True)


class SqlOtpRepository(OtpRepository):
    def __init__(self, session: Session):
        self.session = session

    def _to_record(self, row: OTPCode) -> OtpRecord:
        return OtpRecord(
            id=row.id,
            phone=row.phone,
            code=row.code,
            created_at=row.created_at,
            expires_at=row.expires_at,
            is_used=row.is_used,
        )

    def latest_issued_at(self, phone: str) -> Optional[datetime]:
        return self.session.exec(
            select(func.max(OTPCode.created_at)).where(OTPCode.phone == phone)
        ).first()

    def _lock_phone(self, phone: str) -> None:
        """Hold a per-phone lock until the current transaction ends.

        Postgres gets a transaction-scoped advisory lock. SQLite needs nothing extra:
        the supersede UPDATE below takes its database-wide write lock first.
        """
        if self.session.get_bind().dialect.name == "postgresql":
            self.session.connection().execute(
                text("SELECT pg_advisory_xact_lock(:key)"), {"key": _advisory_lock_key(phone)}
            )

    def supersede_and_create(
        self,
        phone: str,
        code: str,
        created_at: datetime,
        expires_at: datetime,
        cooldown_cutoff: Optional[datetime] = None,
    ) -> Optional[OtpRecord]:
        try:
            self._lock_phone(phone)
            self.session.exec(
                update(OTPCode)
                .where(
                    OTPCode.phone == phone,
                    OTPCode.is_used == False,  # noqa: E712
                    OTPCode.expires_at > created_at,
                )
                .values(is_used=True)
            )
            if cooldown_cutoff is not None:
                # Re-checked under the lock: a concurrent issue may have committed since the caller looked
                latest = self.latest_issued_at(phone)
                if latest is not None and latest > cooldown_cutoff:
                    self.session.rollback()
                    return None
            row = OTPCode(phone=phone, code=code, created_at=created_at, expires_at=expires_at, is_used=False)
            self.session.add(row)
            self.session.commit()
            self.session.refresh(row)
            return self._to_record(row)
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceFailure(f"could not store OTP: {e}") from e

    def consume(self, phone: str, code: str, now: datetime) -> bool:
        candidates = self.session.exec(
            select(OTPCode.id)
            .where(
                OTPCode.phone == phone,
                OTPCode.code == code,
                OTPCode.is_used == False,  # noqa: E712
                OTPCode.expires_at > now,
            )
            .order_by(OTPCode.created_at.desc())
        ).all()
        try:
            for otp_id in candidates:
                # Conditional update: only one concurrent caller sees rowcount == 1
                result = self.session.exec(
                    update(OTPCode)
                    .where(OTPCode.id == otp_id, OTPCode.is_used == False)  # noqa: E712
                    .values(is_used=True)
                )
                if result.rowcount == 1:
                    self.session.commit()
                    return True
            self.session.rollback()
            return False
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceFailure(f"could not consume OTP: {e}") from e

    def history(self, phone: str) -> List[OtpRecord]:
        rows = self.session.exec(
            select(OTPCode).where(OTPCode.phone == phone).order_by(OTPCode.created_at)
        ).all()
        return [self._to_record(row) for row in rows]
