from models.users import User
from models.refresh_tokens import RefreshToken
from models.blacklisted_tokens import BlacklistedToken
from models.password_resets import PasswordReset
from models.email_verifications import EmailVerification
from models.verification_attempts import VerificationAttempt
from models.sessions import LoginSession

__all__ = ["User", "RefreshToken", "BlacklistedToken", "PasswordReset", "EmailVerification",
           "VerificationAttempt", "LoginSession"]
