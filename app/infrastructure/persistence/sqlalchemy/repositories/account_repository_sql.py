import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from .....db.models import User
from .....application.ports.account_repo import AccountRepository, AccountDto, NewAccount
from .....exceptions import PersistenceFailure

logger = logging.getLogger(__name__)


class SqlAccountRepository(AccountRepository):
    def __init__(self, session: Session):
        self.session = session

    def _to_dto(self, user: User) -> AccountDto:
        return AccountDto(
            id=user.id,
            nid_number=user.nid_number,
            birth_certificate_number=user.birth_certificate_number,
            full_name_bn=user.full_name_bn,
            full_name_en=user.full_name_en,
            date_of_birth=user.date_of_birth,
            phone=user.phone,
            role=user.role,
            has_password=bool(user.password_hash),
            verification_status=user.verification_status,
            completion_percentage=user.completion_percentage,
            last_login=user.last_login,
            created_at=user.created_at,
        )

    def _external_id_clause(self, external_id: str):
        return or_(User.nid_number == external_id, User.birth_certificate_number == external_id)

    def get_by_id(self, account_id: str) -> Optional[AccountDto]:
        user = self.session.exec(select(User).where(User.id == account_id)).first()
        return self._to_dto(user) if user else None

    def get_by_external_id(self, external_id: str) -> Optional[AccountDto]:
        user = self.session.exec(select(User).where(self._external_id_clause(external_id))).first()
        return self._to_dto(user) if user else None

    def get_by_external_id_and_phone(self, external_id: str, phone: str) -> Optional[AccountDto]:
        user = self.session.exec(
            select(User)
            .where(self._external_id_clause(external_id))
            .where(User.phone == phone)
        ).first()
        return self._to_dto(user) if user else None

    def get_by_phone(self, phone: str) -> Optional[AccountDto]:
        user = self.session.exec(
            select(User).where(User.phone == phone).order_by(User.created_at)
        ).first()
        return self._to_dto(user) if user else None

    def create_or_get(self, account: NewAccount) -> AccountDto:
        user = User(
            nid_number=account.nid_number,
            birth_certificate_number=account.birth_certificate_number,
            full_name_bn=account.full_name_bn,
            full_name_en=account.full_name_en,
            father_name_bn=account.father_name_bn,
            mother_name_bn=account.mother_name_bn,
            date_of_birth=account.date_of_birth,
            gender=account.gender,
            phone=account.phone,
            email=account.email,
            permanent_address=account.permanent_address,
            password_hash=account.password_hash,
            role=account.role,
            is_verified=False,
            verification_status="Pending",
            completion_percentage=account.completion_percentage,
            last_login=account.created_at,
            created_at=account.created_at,
            updated_at=account.created_at,
        )
        try:
            self.session.add(user)
            self.session.commit()
            self.session.refresh(user)
            return self._to_dto(user)
        except IntegrityError:
            # Another request registered the same identity first
            self.session.rollback()
            existing = None
            for external_id in (account.nid_number, account.birth_certificate_number):
                if external_id:
                    existing = self.get_by_external_id(external_id)
                if existing:
                    break
            if existing is None:
                raise PersistenceFailure("account insert conflicted but no existing row was found")
            logger.info(f"Account for identity already exists, returning {existing.id}")
            return existing
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceFailure(f"could not create account: {e}") from e

    def record_login(self, account_id: str, at: datetime) -> None:
        user = self.session.exec(select(User).where(User.id == account_id)).first()
        if not user:
            return
        user.last_login = at
        user.updated_at = at
        try:
            self.session.add(user)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceFailure(f"could not record login: {e}") from e
