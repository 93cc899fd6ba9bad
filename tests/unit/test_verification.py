from datetime import datetime, timedelta, timezone

import pytest

from utils.password_policy import check_password_policy
from utils.verification import (
    as_utc,
    generate_reset_code,
    generate_verification_token,
    get_code_expiry_time,
)


def test_generate_reset_code():
    code = generate_reset_code()
    assert len(code) == 6
    assert code.isdigit()


def test_reset_codes_are_not_repeated():
    codes = {generate_reset_code() for _ in range(50)}
    assert len(codes) > 40


def test_generate_verification_token():
    token = generate_verification_token()

    assert len(token) == 64
    int(token, 16)
    assert token != generate_verification_token()


def test_code_expiry_time():
    expiry = get_code_expiry_time(minutes=15)
    now = datetime.now(timezone.utc)
    assert expiry > now
    assert expiry < now + timedelta(minutes=16)


def test_as_utc_attaches_timezone_to_naive():
    naive = datetime(2024, 1, 1, 12, 0)
    assert as_utc(naive).tzinfo == timezone.utc
    assert as_utc(naive).hour == 12

    aware = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    assert as_utc(aware) is aware


@pytest.mark.parametrize("password, message", [
    ("short1", "at least 8"),
    ("onlyletters", "digit"),
    ("1234567890", "letter"),
])
def test_password_policy_rejects(password, message):
    with pytest.raises(ValueError) as exc_info:
        check_password_policy(password)

    assert message in str(exc_info.value)


def test_password_policy_accepts():
    assert check_password_policy("TestPassword123!") == "TestPassword123!"
