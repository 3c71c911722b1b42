"""
auth/schemas.py -- Request bodies for the auth engine's sub-routes.

These Pydantic v2 models define the HTTP contract of /api/auth/*. Field
aliases follow the camelCase names browser clients send (newPassword,
callbackURL); populate_by_name keeps the snake_case names usable in tests
and Python callers.

Identifiers (email, name, codes) are trimmed; passwords are taken exactly as
sent. Password fields only carry a size cap here: the length policy comes
from AuthConfig and is enforced by the engine.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

# Deliberately loose: one "@", no whitespace, a dot in the domain. Delivery
# of the verification email is the real check.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# Upper bound on any password payload; bcrypt never sees more than 72 bytes.
PASSWORD_CAP = 1024

Trimmed = Annotated[str, StringConstraints(strip_whitespace=True)]


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SignUpRequest(_Body):
    email: Trimmed = Field(pattern=EMAIL_PATTERN, max_length=255)
    name: Trimmed = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=PASSWORD_CAP)
    phone_number: Optional[Trimmed] = Field(default=None, alias="phoneNumber", max_length=32)
    callback_url: Optional[Trimmed] = Field(default=None, alias="callbackURL")


class SignInRequest(_Body):
    email: Trimmed = Field(min_length=1, max_length=255)
    # No length policy on sign-in: a wrong-length password is just a wrong password.
    password: str = Field(min_length=1, max_length=PASSWORD_CAP)


class EmailRequest(_Body):
    email: Trimmed = Field(min_length=1, max_length=255)
    callback_url: Optional[Trimmed] = Field(default=None, alias="callbackURL")


class ForgotPasswordRequest(_Body):
    email: Trimmed = Field(min_length=1, max_length=255)
    redirect_to: Optional[Trimmed] = Field(default=None, alias="redirectTo")


class ResetPasswordRequest(_Body):
    token: Trimmed = Field(min_length=1)
    new_password: str = Field(alias="newPassword", min_length=1, max_length=PASSWORD_CAP)


class PasswordConfirmRequest(_Body):
    password: str = Field(min_length=1, max_length=PASSWORD_CAP)


class VerifyOtpRequest(_Body):
    code: Trimmed = Field(pattern=r"^\d{4,10}$")
