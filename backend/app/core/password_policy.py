"""
Named password complexity policy.

All rules are driven by settings so deployments can tune them without code
changes. Violations are collected and reported together.
"""

from dataclasses import dataclass

from app.core.config import Settings
from app.core.errors import ValidationError


@dataclass(frozen=True)
class PasswordPolicy:
    min_length: int = 8
    max_length: int = 128
    require_uppercase: bool = True
    require_lowercase: bool = True
    require_digit: bool = True
    require_special: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "PasswordPolicy":
        return cls(
            min_length=settings.MIN_PASSWORD_LENGTH,
            max_length=settings.MAX_PASSWORD_LENGTH,
            require_uppercase=settings.REQUIRE_UPPERCASE,
            require_lowercase=settings.REQUIRE_LOWERCASE,
            require_digit=settings.REQUIRE_DIGIT,
            require_special=settings.REQUIRE_SPECIAL_CHARS,
        )

    def violations(self, password: str) -> list[str]:
        problems = []
        if len(password) < self.min_length:
            problems.append(f"Password must be at least {self.min_length} characters long.")
        if len(password) > self.max_length:
            problems.append(f"Password must be at most {self.max_length} characters long.")
        if self.require_uppercase and not any(c.isupper() for c in password):
            problems.append("Password must include at least one uppercase letter.")
        if self.require_lowercase and not any(c.islower() for c in password):
            problems.append("Password must include at least one lowercase letter.")
        if self.require_digit and not any(c.isdigit() for c in password):
            problems.append("Password must include at least one digit.")
        if self.require_special and not any(not c.isalnum() for c in password):
            problems.append("Password must include at least one special character.")
        return problems

    def validate(self, password: str) -> None:
        """Raise ValidationError listing every rule the password breaks."""
        problems = self.violations(password)
        if problems:
            raise ValidationError(
                "Password does not meet the password policy",
                details=[{"field": "password", "message": p} for p in problems],
            )
