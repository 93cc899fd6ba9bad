import re

MIN_PASSWORD_LENGTH = 8


def check_password_policy(password: str) -> str:
    """
    Password must be at least 8 characters and contain:
    - At least one letter
    - At least one digit

    Raises ValueError so it can back both pydantic validators and services.
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')

    if not re.search(r'[A-Za-z]', password):
        raise ValueError('Password must contain at least one letter')

    if not re.search(r'\d', password):
        raise ValueError('Password must contain at least one digit')

    return password
