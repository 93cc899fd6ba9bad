import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select, update, func

from core.errors import InvalidOrExpiredToken, InvalidRefreshToken, InvalidResetCode, RateLimited, ValidationError
from models.email_verifications import EmailVerification
from models.password_resets import PasswordReset
from models.verification_attempts import ATTEMPT_SEND, ATTEMPT_VERIFY, VerificationAttempt
from services.attempt_limiter import AttemptLimiter
from services.credential_store import CredentialStore
from services.security_codes import SecurityCodeManager
from services.token_service import TokenService
from utils.hashing import hash_token, verify_password
from utils.verification import utcnow

NEW_PASSWORD = "BrandNewPass456"


async def count_codes(session, user_id):
    return (await session.execute(
        select(func.count(PasswordReset.id)).where(PasswordReset.user_id == user_id)
    )).scalar_one()


async def count_attempts(session, user_id, attempt_type):
    return (await session.execute(
        select(func.count(VerificationAttempt.id)).where(
            VerificationAttempt.user_id == user_id,
            VerificationAttempt.attempt_type == attempt_type,
        )
    )).scalar_one()


def code_manager(db):
    """A SecurityCodeManager on its own session, like a separate request."""
    store = CredentialStore(db)
    return SecurityCodeManager(store, TokenService(store), AttemptLimiter(store))


# password reset

async def test_reset_code_stored_hashed(security_codes, session, verified_user):
    code = await security_codes.issue_reset_code(verified_user)

    record = (await session.execute(select(PasswordReset))).scalar_one()
    assert record.code_hash != code
    assert verify_password(code, record.code_hash)
    assert record.used is False


async def test_new_code_invalidates_old(security_codes, session, verified_user):
    old_code = await security_codes.issue_reset_code(verified_user)
    new_code = await security_codes.issue_reset_code(verified_user)

    unused = (await session.execute(
        select(PasswordReset).where(PasswordReset.used.is_(False))
    )).scalars().all()
    assert len(unused) == 1
    assert verify_password(new_code, unused[0].code_hash)

    if old_code != new_code:
        with pytest.raises(InvalidResetCode):
            await security_codes.redeem_reset_code(verified_user.email, old_code, NEW_PASSWORD)

    await security_codes.redeem_reset_code(verified_user.email, new_code, NEW_PASSWORD)


async def test_reset_changes_password(security_codes, session, verified_user):
    code = await security_codes.issue_reset_code(verified_user)

    await security_codes.redeem_reset_code(verified_user.email, code, NEW_PASSWORD)

    await session.refresh(verified_user)
    assert verify_password(NEW_PASSWORD, verified_user.hashed_password)


async def test_reset_revokes_every_refresh_token(security_codes, token_service, verified_user):
    tokens = [
        await token_service.issue_refresh(verified_user),
        await token_service.issue_refresh(verified_user, persistent=True),
        await token_service.issue_refresh(verified_user),
    ]
    code = await security_codes.issue_reset_code(verified_user)

    await security_codes.redeem_reset_code(verified_user.email, code, NEW_PASSWORD)

    for issued in tokens:
        with pytest.raises(InvalidRefreshToken):
            await token_service.verify_refresh(issued.token)


async def test_code_is_single_use(security_codes, verified_user):
    code = await security_codes.issue_reset_code(verified_user)
    await security_codes.redeem_reset_code(verified_user.email, code, NEW_PASSWORD)

    with pytest.raises(InvalidResetCode):
        await security_codes.redeem_reset_code(verified_user.email, code, "AnotherPass789")


async def test_wrong_code_does_not_burn_the_real_one(security_codes, verified_user):
    code = await security_codes.issue_reset_code(verified_user)
    wrong = "000000" if code != "000000" else "111111"

    with pytest.raises(InvalidResetCode):
        await security_codes.redeem_reset_code(verified_user.email, wrong, NEW_PASSWORD)

    await security_codes.redeem_reset_code(verified_user.email, code, NEW_PASSWORD)


async def test_expired_code_rejected(security_codes, session, verified_user):
    code = await security_codes.issue_reset_code(verified_user)
    await session.execute(update(PasswordReset).values(expires_at=utcnow() - timedelta(minutes=1)))
    await session.commit()

    with pytest.raises(InvalidResetCode):
        await security_codes.redeem_reset_code(verified_user.email, code, NEW_PASSWORD)


async def test_unknown_email_gets_same_error(security_codes, verified_user):
    code = await security_codes.issue_reset_code(verified_user)

    with pytest.raises(InvalidResetCode) as unknown:
        await security_codes.redeem_reset_code("nobody@example.com", code, NEW_PASSWORD)
    with pytest.raises(InvalidResetCode) as wrong:
        await security_codes.redeem_reset_code(verified_user.email, "999999" if code != "999999" else "888888",
                                               NEW_PASSWORD)

    assert unknown.value.message == wrong.value.message


async def test_new_password_equal_to_code_rejected(security_codes, verified_user):
    code = await security_codes.issue_reset_code(verified_user)

    with pytest.raises(ValidationError):
        await security_codes.redeem_reset_code(verified_user.email, code, code)


async def test_weak_new_password_rejected(security_codes, verified_user):
    code = await security_codes.issue_reset_code(verified_user)

    with pytest.raises(ValidationError):
        await security_codes.redeem_reset_code(verified_user.email, code, "short")

    # the code survives a rejected attempt
    await security_codes.redeem_reset_code(verified_user.email, code, NEW_PASSWORD)


async def test_request_reset_unknown_email_returns_none(security_codes, session):
    assert await security_codes.request_password_reset("nobody@example.com") is None


async def test_request_reset_hashes_for_unknown_email_too(security_codes, verified_user, monkeypatch):
    """Known and unknown emails cost one bcrypt hash each."""
    import services.security_codes as security_codes_module

    hashed = []
    real_hash = security_codes_module.get_password_hash
    monkeypatch.setattr(security_codes_module, "get_password_hash",
                        lambda value: hashed.append(value) or real_hash(value))

    await security_codes.request_password_reset("nobody@example.com")
    assert len(hashed) == 1

    await security_codes.request_password_reset(verified_user.email)
    assert len(hashed) == 2


async def test_request_reset_normalizes_email(security_codes, verified_user):
    reset = await security_codes.request_password_reset("  Verified@Example.com ")

    assert reset.user.id == verified_user.id
    assert len(reset.code) == 6


async def test_fourth_reset_request_rate_limited(security_codes, session, verified_user):
    user_id, user_email = verified_user.id, verified_user.email
    for _ in range(3):
        assert await security_codes.request_password_reset(user_email) is not None

    assert await count_codes(session, user_id) == 3

    with pytest.raises(RateLimited) as exc_info:
        await security_codes.request_password_reset(user_email)

    assert 0 < exc_info.value.retry_after <= 300
    # no new code was issued
    assert await count_codes(session, user_id) == 3


async def test_concurrent_reset_requests_respect_limit(session_factory, session, verified_user):
    user_id, user_email = verified_user.id, verified_user.email

    async def request_reset():
        async with session_factory() as db:
            try:
                await code_manager(db).request_password_reset(user_email)
            except RateLimited:
                return "limited"
            return "issued"

    results = await asyncio.gather(*[request_reset() for _ in range(6)])

    assert sorted(results) == ["issued"] * 3 + ["limited"] * 3
    assert await count_codes(session, user_id) == 3


async def test_reset_window_slides(security_codes, session, verified_user):
    for _ in range(3):
        await security_codes.request_password_reset(verified_user.email)

    # age the oldest request out of the 5-minute window
    oldest = (await session.execute(
        select(PasswordReset).order_by(PasswordReset.id).limit(1)
    )).scalar_one()
    oldest.created_at = utcnow() - timedelta(minutes=6)
    await session.commit()

    assert await security_codes.request_password_reset(verified_user.email) is not None


# email verification

async def test_verification_round_trip(security_codes, session, unverified_user):
    token = await security_codes.issue_verification_token(unverified_user.id)

    identity = await security_codes.redeem_verification_token(token)

    assert identity.user_id == unverified_user.id
    assert identity.email == unverified_user.email
    assert identity.username == unverified_user.username

    await session.refresh(unverified_user)
    assert unverified_user.email_verified is True
    assert unverified_user.verified_at is not None

    with pytest.raises(InvalidOrExpiredToken):
        await security_codes.redeem_verification_token(token)


async def test_verification_token_stored_hashed(security_codes, session, unverified_user):
    token = await security_codes.issue_verification_token(unverified_user.id)

    record = (await session.execute(select(EmailVerification))).scalar_one()
    assert len(token) == 64
    assert record.token_hash == hash_token(token)
    assert record.token_hash != token


async def test_new_verification_token_replaces_old(security_codes, session, unverified_user):
    old = await security_codes.issue_verification_token(unverified_user.id)
    new = await security_codes.issue_verification_token(unverified_user.id)

    rows = (await session.execute(select(EmailVerification))).scalars().all()
    assert len(rows) == 1

    with pytest.raises(InvalidOrExpiredToken):
        await security_codes.redeem_verification_token(old)
    await security_codes.redeem_verification_token(new)


async def test_expired_verification_token_rejected(security_codes, session, unverified_user):
    token = await security_codes.issue_verification_token(unverified_user.id)
    await session.execute(update(EmailVerification).values(expires_at=utcnow() - timedelta(seconds=1)))
    await session.commit()

    with pytest.raises(InvalidOrExpiredToken):
        await security_codes.redeem_verification_token(token)


async def test_verify_records_attempt(security_codes, session, unverified_user):
    token = await security_codes.issue_verification_token(unverified_user.id)

    await security_codes.redeem_verification_token(token, ip_address="10.0.0.1")

    assert await count_attempts(session, unverified_user.id, ATTEMPT_VERIFY) == 1


async def test_issuing_token_records_send(security_codes, session, unverified_user):
    await security_codes.issue_verification_token(unverified_user.id, ip_address="10.0.0.1")

    attempt = (await session.execute(select(VerificationAttempt))).scalar_one()
    assert attempt.attempt_type == ATTEMPT_SEND
    assert attempt.ip_address == "10.0.0.1"


async def test_resend_rejected_for_verified_user(security_codes, verified_user):
    with pytest.raises(ValidationError):
        await security_codes.resend_verification(verified_user)


async def test_resend_limited_to_three_per_hour(security_codes, session, unverified_user):
    user_id = unverified_user.id
    for _ in range(3):
        await security_codes.resend_verification(unverified_user, ip_address="10.0.0.1")

    with pytest.raises(RateLimited) as exc_info:
        await security_codes.resend_verification(unverified_user, ip_address="10.0.0.1")

    assert 3500 < exc_info.value.retry_after <= 3600
    # the refused attempt left no record
    assert await count_attempts(session, user_id, ATTEMPT_SEND) == 3


async def test_first_token_counts_against_resends(security_codes, session, unverified_user):
    user_id = unverified_user.id
    await security_codes.issue_verification_token(user_id)

    for _ in range(2):
        await security_codes.resend_verification(unverified_user)

    with pytest.raises(RateLimited):
        await security_codes.resend_verification(unverified_user)
    assert await count_attempts(session, user_id, ATTEMPT_SEND) == 3


async def test_concurrent_resends_respect_limit(session_factory, session, unverified_user):
    user_id = unverified_user.id

    async def resend():
        async with session_factory() as db:
            manager = code_manager(db)
            user = await manager.store.get_user(user_id)
            try:
                await manager.resend_verification(user)
            except RateLimited:
                return "limited"
            return "sent"

    results = await asyncio.gather(*[resend() for _ in range(5)])

    assert sorted(results) == ["limited"] * 2 + ["sent"] * 3
    assert await count_attempts(session, user_id, ATTEMPT_SEND) == 3
