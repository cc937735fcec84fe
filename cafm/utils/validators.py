"""
Field validators shared by schemas and services.

Each check is a plain function so it can run from a pydantic
``field_validator`` or directly inside a service.
"""
import math
import re
import string
from collections import Counter
from typing import List, Optional

PASSWORD_MIN_LENGTH = 12
PASSWORD_MAX_LENGTH = 128
MIN_PASSWORD_ENTROPY = 3.0

COMMON_PASSWORDS = (
    "password", "password123", "password1", "password12", "password1234",
    "123456", "12345678", "123456789", "1234567890", "12345",
    "qwerty", "qwertyuiop", "qwerty123", "abc123", "admin",
    "letmein", "welcome", "welcome123", "monkey", "dragon",
    "master", "iloveyou", "trustno1", "1234567", "123123",
    "admin123", "root", "toor", "pass", "passw0rd",
    "p@ssw0rd", "p@ssword", "hello", "hello123", "1q2w3e4r",
    "1qaz2wsx", "qazwsx", "123qwe", "password!", "passw0rd!",
    "admin!", "admin1234", "football", "baseball", "superman",
    "batman", "michael", "charlie", "shadow", "jordan",
    "jennifer", "michelle", "default", "secret", "test",
    "test123", "demo", "demo123", "changeme", "changeme123",
    "guest", "guest123", "user", "user123", "oracle",
    "oracle123", "postgres", "mysql", "mongodb", "redis",
    "docker", "kubernetes", "spring", "springboot", "java",
    "python", "javascript", "angular", "react", "vuejs",
    "nodejs", "golang", "rust", "swift", "kotlin",
    "android", "iphone", "windows", "linux", "macos",
    "ubuntu", "debian", "centos", "fedora", "redhat",
    "amazon", "google", "microsoft", "apple", "facebook",
    "twitter", "instagram",
)

SPECIAL_CHARACTERS = "!@#$%^&*()_+-=[]{};':\"\\|,.<>/?"

_DIGIT_RUN = "01234567890"
_LETTER_RUN = string.ascii_lowercase
_REPEATED = re.compile(r"(.)\1{2,}")


def _windows(sequence: str, width: int = 3):
    for i in range(len(sequence) - width + 1):
        yield sequence[i:i + width]


_SEQUENTIAL_DIGITS = {w for w in _windows(_DIGIT_RUN)} | {w for w in _windows(_DIGIT_RUN[::-1])}
_SEQUENTIAL_LETTERS = {w for w in _windows(_LETTER_RUN)} | {w for w in _windows(_LETTER_RUN[::-1])}


def password_entropy(password: str) -> float:
    """Shannon entropy in bits per character"""
    if not password:
        return 0.0
    length = len(password)
    return -sum((c / length) * math.log2(c / length) for c in Counter(password).values())


def validate_strong_password(password: Optional[str]) -> List[str]:
    """Return every rule the password breaks; an empty list means it is acceptable."""
    if password is None:
        return []

    violations = []
    if len(password) < PASSWORD_MIN_LENGTH:
        violations.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    if len(password) > PASSWORD_MAX_LENGTH:
        violations.append(f"Password must not exceed {PASSWORD_MAX_LENGTH} characters")
    if not re.search(r"[A-Z]", password):
        violations.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        violations.append("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        violations.append("Password must contain at least one digit")
    if not any(ch in SPECIAL_CHARACTERS for ch in password):
        violations.append(f"Password must contain at least one special character ({SPECIAL_CHARACTERS})")
    if re.search(r"\s", password):
        violations.append("Password must not contain whitespace")

    lowered = password.lower()
    if any(w in _SEQUENTIAL_DIGITS for w in _windows(password)):
        violations.append("Password must not contain sequential numbers")
    if any(w in _SEQUENTIAL_LETTERS for w in _windows(lowered)):
        violations.append("Password must not contain sequential letters")
    if _REPEATED.search(password):
        violations.append("Password must not contain more than 2 repeated characters in a row")
    if any(common in lowered for common in COMMON_PASSWORDS):
        violations.append("Password is too common or contains common patterns")
    if password_entropy(password) < MIN_PASSWORD_ENTROPY:
        violations.append("Password is too predictable, please use more variety in characters")
    return violations


def is_strong_password(password: Optional[str]) -> bool:
    return not validate_strong_password(password)


def password_violation_message(password: Optional[str]) -> Optional[str]:
    violations = validate_strong_password(password)
    return "; ".join(violations) if violations else None


def contains_personal_info(password: str, username: Optional[str] = None, email: Optional[str] = None,
                           name: Optional[str] = None) -> bool:
    lowered = password.lower()
    if username and username.lower() in lowered:
        return True
    local_part = email.split("@")[0].lower() if email else ""
    if len(local_part) > 2 and local_part in lowered:
        return True
    if name:
        return any(len(part) > 2 and part in lowered for part in name.lower().split())
    return False


# ============ Arabic text ============

_ARABIC_RANGES = "\u0600-\u06FF\u0750-\u077F\u08A0-\u08FF"
_ARABIC_ONLY = re.compile(rf"^[{_ARABIC_RANGES}\s\d{re.escape(string.punctuation)}]+$")
_ARABIC_CHAR = re.compile(rf"[{_ARABIC_RANGES}]")


def is_valid_arabic_text(text: Optional[str], allow_empty: bool = False, allow_mixed: bool = False) -> bool:
    """Strict mode accepts only Arabic letters, digits, whitespace and punctuation.
    Mixed mode only requires at least one Arabic character."""
    if text is None or text.strip() == "":
        return allow_empty
    if allow_mixed:
        return _ARABIC_CHAR.search(text) is not None
    return _ARABIC_ONLY.match(text) is not None


# ============ Saudi plate numbers ============

_PLATE_PATTERNS = (
    re.compile(r"^\d{1,4}\s*[A-Z]{3}$"),
    re.compile(r"^[A-Z]{3}\s*\d{4}$"),
    re.compile(r"^\d{1,4}$"),
)


def normalize_plate_number(plate: Optional[str]) -> Optional[str]:
    if plate is None:
        return None
    return re.sub(r"\s+", " ", plate).strip().upper()


def is_valid_plate_number(plate: Optional[str]) -> bool:
    if plate is None or plate.strip() == "":
        return True
    normalized = normalize_plate_number(plate)
    return any(p.match(normalized) for p in _PLATE_PATTERNS)


# ============ Iqama / national id ============

_IQAMA_PATTERN = re.compile(r"^[12]\d{9}$")


def _luhn_valid(number: str) -> bool:
    total = 0
    for i, ch in enumerate(reversed(number)):
        digit = int(ch)
        if i % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def is_valid_iqama_id(value: Optional[str]) -> bool:
    """1xxxxxxxxx for citizens, 2xxxxxxxxx for residents, Luhn checked"""
    if value is None or value.strip() == "":
        return True
    value = value.strip()
    return bool(_IQAMA_PATTERN.match(value)) and _luhn_valid(value)
