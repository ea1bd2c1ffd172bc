import pytest

from app.application.services.password_policy import PasswordPolicy, password_failures
from app.exceptions import WeakCredential


def test_weak_password_lists_every_broken_rule():
    assert password_failures("abcdefgh") == ["uppercase", "digit", "symbol"]
    assert password_failures("Ab1!") == ["min_length"]
    assert password_failures("Str0ng!Pass") == []


def test_prepare_rejects_weak_password():
    with pytest.raises(WeakCredential) as exc:
        PasswordPolicy().prepare("abcdefgh")
    assert "uppercase" in exc.value.failures


def test_prepare_hashes_with_bcrypt():
    policy = PasswordPolicy()
    hashed = policy.prepare("Str0ng!Pass")

    assert hashed.startswith("$2")
    assert policy.verify("Str0ng!Pass", hashed) is True
    assert policy.verify("wrong", hashed) is False


def test_password_is_optional_unless_required():
    assert PasswordPolicy().prepare(None) is None
    assert PasswordPolicy().prepare("") is None
    with pytest.raises(WeakCredential):
        PasswordPolicy(required=True).prepare(None)


def test_strength_check_can_be_disabled():
    assert PasswordPolicy(enforce_strength=False).prepare("abcdefgh") is not None


def test_otp_only_account_never_verifies_password():
    assert PasswordPolicy().verify("anything", None) is False
