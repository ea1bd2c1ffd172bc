from datetime import timedelta

from app.db.models import OTPCode, User
from app.infrastructure.persistence.sqlalchemy.repositories.otp_repository_sql import SqlOtpRepository


PHONE = "01712345678"


def test_latest_issued_at_is_none_without_history(session):
    repo = SqlOtpRepository(session)
    assert repo.latest_issued_at(PHONE) is None


def test_supersede_marks_previous_live_code_used(session, clock):
    repo = SqlOtpRepository(session)
    now = clock()
    repo.supersede_and_create(PHONE, "111111", now, now + timedelta(minutes=5))
    repo.supersede_and_create(PHONE, "222222", now + timedelta(seconds=61), now + timedelta(minutes=6))

    history = repo.history(PHONE)
    assert [r.code for r in history] == ["111111", "222222"]
    assert history[0].is_used is True
    assert history[1].is_used is False
    assert repo.latest_issued_at(PHONE) == now + timedelta(seconds=61)


def test_supersede_leaves_other_phones_alone(session, clock):
    repo = SqlOtpRepository(session)
    now = clock()
    repo.supersede_and_create("01812345678", "333333", now, now + timedelta(minutes=5))
    repo.supersede_and_create(PHONE, "444444", now, now + timedelta(minutes=5))
    assert repo.history("01812345678")[0].is_used is False


def test_consume_is_single_use(session, clock):
    repo = SqlOtpRepository(session)
    now = clock()
    repo.supersede_and_create(PHONE, "482913", now, now + timedelta(minutes=5))

    assert repo.consume(PHONE, "482913", now + timedelta(seconds=10)) is True
    assert repo.consume(PHONE, "482913", now + timedelta(seconds=11)) is False


def test_consume_rejects_expired_and_wrong_codes(session, clock):
    repo = SqlOtpRepository(session)
    now = clock()
    repo.supersede_and_create(PHONE, "482913", now, now + timedelta(minutes=5))

    assert repo.consume(PHONE, "000000", now) is False
    assert repo.consume("01812345678", "482913", now) is False
    assert repo.consume(PHONE, "482913", now + timedelta(minutes=5)) is False
    # a failed attempt leaves the record untouched
    assert repo.history(PHONE)[0].is_used is False


def test_consume_rejects_superseded_code(session, clock):
    repo = SqlOtpRepository(session)
    now = clock()
    repo.supersede_and_create(PHONE, "111111", now, now + timedelta(minutes=5))
    repo.supersede_and_create(PHONE, "222222", now + timedelta(seconds=60), now + timedelta(minutes=6))

    assert repo.consume(PHONE, "111111", now + timedelta(seconds=61)) is False
    assert repo.consume(PHONE, "222222", now + timedelta(seconds=61)) is True


def test_datetime_columns_store_naive_utc():
    columns = [
        OTPCode.__table__.c.created_at,
        OTPCode.__table__.c.expires_at,
        User.__table__.c.created_at,
        User.__table__.c.updated_at,
        User.__table__.c.last_login,
    ]
    assert all(column.type.timezone is False for column in columns)


def test_naive_timestamps_round_trip(session, clock):
    repo = SqlOtpRepository(session)
    now = clock()
    assert now.tzinfo is None
    record = repo.supersede_and_create(PHONE, "482913", now, now + timedelta(minutes=5))

    assert record.created_at == now
    assert record.expires_at == now + timedelta(minutes=5)
    assert repo.latest_issued_at(PHONE) == now


def test_supersede_respects_cooldown_cutoff(session, clock):
    repo = SqlOtpRepository(session)
    now = clock()
    repo.supersede_and_create(PHONE, "111111", now, now + timedelta(minutes=5))

    later = now + timedelta(seconds=30)
    blocked = repo.supersede_and_create(
        PHONE, "222222", later, later + timedelta(minutes=5), cooldown_cutoff=later - timedelta(seconds=60)
    )
    assert blocked is None
    history = repo.history(PHONE)
    assert [r.code for r in history] == ["111111"]
    assert history[0].is_used is False

    later = now + timedelta(seconds=60)
    record = repo.supersede_and_create(
        PHONE, "222222", later, later + timedelta(minutes=5), cooldown_cutoff=later - timedelta(seconds=60)
    )
    assert record is not None and record.code == "222222"
    assert repo.history(PHONE)[0].is_used is True
