import threading
from datetime import timedelta
from typing import List, Optional

import pytest
from sqlmodel import Session

from app.application.ports.otp_repo import OtpRecord
from app.application.services.otp_service import OTPService
from app.exceptions import RateLimited
from app.infrastructure.persistence.sqlalchemy.repositories.otp_repository_sql import SqlOtpRepository
from app.infrastructure.rate_limit.memory_rate_limiter import InMemoryRateLimiter

PHONE = "01712345678"


class FakeSms:
    def __init__(self, result=True, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.sent: List[tuple] = []

    def send(self, phone: str, code: str) -> bool:
        self.sent.append((phone, code))
        if self.error:
            raise self.error
        return self.result


def make_service(session, clock, sms=None, codes=("482913",), **kwargs):
    code_iter = iter(codes)
    return OTPService(
        otp_repo=SqlOtpRepository(session),
        sms_sender=sms or FakeSms(),
        clock=clock,
        code_factory=lambda: next(code_iter),
        **kwargs,
    )


def test_issue_stores_and_dispatches_code(session, clock):
    sms = FakeSms()
    svc = make_service(session, clock, sms=sms)

    issued = svc.issue(PHONE)

    assert issued.code == "482913"
    assert issued.expires_at == clock() + timedelta(minutes=5)
    assert issued.dispatched is True
    assert sms.sent == [(PHONE, "482913")]


def test_issue_within_cooldown_is_rate_limited(session, clock):
    svc = make_service(session, clock, codes=("111111", "222222"))
    svc.issue(PHONE)

    clock.advance(seconds=20)
    with pytest.raises(RateLimited) as exc:
        svc.issue(PHONE)
    assert exc.value.retry_after == 40

    clock.advance(seconds=40)
    assert svc.issue(PHONE).code == "222222"


def test_cooldown_blocks_until_the_full_window_has_passed(session, clock):
    svc = make_service(session, clock, codes=("111111", "222222"))
    svc.issue(PHONE)

    clock.advance(seconds=59.5)
    assert svc.resend_wait_seconds(PHONE) == 1
    with pytest.raises(RateLimited) as exc:
        svc.issue(PHONE)
    assert exc.value.retry_after == 1

    clock.advance(seconds=0.5)
    assert svc.resend_wait_seconds(PHONE) == 0
    assert svc.issue(PHONE).code == "222222"


def test_resend_wait_counts_down(session, clock):
    svc = make_service(session, clock)
    assert svc.resend_wait_seconds(PHONE) == 0
    svc.issue(PHONE)
    clock.advance(seconds=15)
    assert svc.resend_wait_seconds(PHONE) == 45
    clock.advance(seconds=120)
    assert svc.resend_wait_seconds(PHONE) == 0


def test_verify_is_single_use(session, clock):
    svc = make_service(session, clock)
    svc.issue(PHONE)

    assert svc.verify(PHONE, "482913") is True
    assert svc.verify(PHONE, "482913") is False


def test_new_code_supersedes_previous(session, clock):
    svc = make_service(session, clock, codes=("111111", "222222"))
    svc.issue(PHONE)
    clock.advance(seconds=61)
    svc.issue(PHONE)

    assert svc.verify(PHONE, "111111") is False
    assert svc.verify(PHONE, "222222") is True


def test_verify_after_expiry_fails(session, clock):
    svc = make_service(session, clock)
    svc.issue(PHONE)
    clock.advance(minutes=5, seconds=1)

    assert svc.verify(PHONE, "482913") is False


def test_verify_rejects_malformed_code_without_lookup(session, clock):
    svc = make_service(session, clock)
    svc.issue(PHONE)

    assert svc.verify(PHONE, "48291") is False
    assert svc.verify(PHONE, "abcdef") is False
    assert svc.verify(PHONE, "482913") is True


@pytest.mark.parametrize("sms", [FakeSms(result=False), FakeSms(error=RuntimeError("gateway down"))])
def test_dispatch_failure_keeps_code_valid(session, clock, sms):
    svc = make_service(session, clock, sms=sms)

    issued = svc.issue(PHONE)

    assert issued.dispatched is False
    assert svc.verify(PHONE, "482913") is True


def test_attempt_cap_is_off_by_default(session, clock):
    svc = make_service(session, clock, attempt_limiter=InMemoryRateLimiter())
    svc.issue(PHONE)
    for _ in range(10):
        assert svc.verify(PHONE, "000000") is False
    assert svc.verify(PHONE, "482913") is True


def test_attempt_cap_blocks_after_limit(session, clock):
    svc = make_service(session, clock, max_verify_attempts=3, attempt_limiter=InMemoryRateLimiter())
    svc.issue(PHONE)
    for _ in range(3):
        assert svc.verify(PHONE, "000000") is False
    with pytest.raises(RateLimited):
        svc.verify(PHONE, "482913")


def test_generated_codes_are_six_digits(session, clock):
    svc = OTPService(otp_repo=SqlOtpRepository(session), sms_sender=FakeSms(), clock=clock)
    code = svc.issue(PHONE).code
    assert len(code) == 6 and code.isdigit()


class RecordingRepo:
    def __init__(self):
        self.records: List[OtpRecord] = []

    def latest_issued_at(self, phone):
        times = [r.created_at for r in self.records if r.phone == phone]
        return max(times) if times else None

    def supersede_and_create(self, phone, code, created_at, expires_at, cooldown_cutoff=None):
        latest = self.latest_issued_at(phone)
        if cooldown_cutoff is not None and latest is not None and latest > cooldown_cutoff:
            return None
        record = OtpRecord(id=str(len(self.records)), phone=phone, code=code, created_at=created_at, expires_at=expires_at, is_used=False)
        self.records.append(record)
        return record

    def consume(self, phone, code, now):
        return False

    def history(self, phone):
        return [r for r in self.records if r.phone == phone]


def test_issue_uses_configured_expiry(clock):
    repo = RecordingRepo()
    svc = OTPService(otp_repo=repo, sms_sender=FakeSms(), expiry_minutes=10, clock=clock, code_factory=lambda: "123456")
    svc.issue(PHONE)
    assert repo.records[0].expires_at - repo.records[0].created_at == timedelta(minutes=10)


class StaleReadRepo(SqlOtpRepository):
    """Reports no history to the up-front cooldown check, as a request that read before a concurrent commit would."""

    def __init__(self, session):
        super().__init__(session)
        self.stale = False

    def latest_issued_at(self, phone):
        if self.stale:
            self.stale = False
            return None
        return super().latest_issued_at(phone)


def test_issue_rechecks_cooldown_when_writing(session, clock):
    repo = StaleReadRepo(session)
    sms = FakeSms()
    codes = iter(["111111", "222222"])
    svc = OTPService(otp_repo=repo, sms_sender=sms, clock=clock, code_factory=lambda: next(codes))
    svc.issue(PHONE)

    clock.advance(seconds=5)
    repo.stale = True
    with pytest.raises(RateLimited) as exc:
        svc.issue(PHONE)

    assert exc.value.retry_after == 55
    assert [r.code for r in repo.history(PHONE)] == ["111111"]
    assert repo.history(PHONE)[0].is_used is False
    assert sms.sent == [(PHONE, "111111")]


def test_concurrent_issue_sends_one_code(file_engine, clock):
    barrier = threading.Barrier(2)
    sms = FakeSms()
    outcomes = []

    def attempt(code):
        with Session(file_engine) as s:
            svc = OTPService(otp_repo=SqlOtpRepository(s), sms_sender=sms, clock=clock, code_factory=lambda: code)
            barrier.wait()
            try:
                svc.issue(PHONE)
                outcomes.append("issued")
            except RateLimited:
                outcomes.append("limited")

    threads = [threading.Thread(target=attempt, args=(code,)) for code in ("111111", "222222")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["issued", "limited"]
    assert len(sms.sent) == 1
    with Session(file_engine) as s:
        live = [r for r in SqlOtpRepository(s).history(PHONE) if not r.is_used]
    assert len(live) == 1
