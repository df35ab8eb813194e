"""
UPoF Validation and Hardening Module

Input validation, constant-time comparison and thread-safe counters shared by
every UPoF component. It addresses:

1. Input validation with sanitization (addresses, 32-byte words, amounts)
2. Cryptographic comparison and hashing utilities
3. Thread-safe id counters

Security Model:
    - All inputs are untrusted until validated
    - All digest comparisons are constant-time
    - All counters only move forward

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import hashlib
import hmac
import re
import secrets
import threading
from dataclasses import dataclass, field
from typing import Any, List, Optional, Union


# =============================================================================
# VALIDATION ERROR TYPES
# =============================================================================

class ValidationError(Exception):
    """Base exception for validation failures."""

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")


# =============================================================================
# VALIDATION RESULT
# =============================================================================

@dataclass
class ValidationResult:
    """Result of a validation operation."""
    is_valid: bool
    errors: List[ValidationError] = field(default_factory=list)
    sanitized_value: Any = None

    def unwrap(self) -> Any:
        """Return the sanitized value, raising the first error if invalid."""
        if not self.is_valid:
            raise self.errors[0]
        return self.sanitized_value

    @classmethod
    def success(cls, sanitized_value: Any = None) -> 'ValidationResult':
        return cls(is_valid=True, sanitized_value=sanitized_value)

    @classmethod
    def failure(cls, errors: List[ValidationError]) -> 'ValidationResult':
        return cls(is_valid=False, errors=errors)


# =============================================================================
# INPUT VALIDATORS
# =============================================================================

ZERO_ADDRESS = "0x" + "00" * 20
ZERO_WORD = b"\x00" * 32


class Validators:
    """Collection of input validators."""

    # Patterns
    HEX40_PATTERN = re.compile(r'^0x[a-f0-9]{40}$')
    HEX64_PATTERN = re.compile(r'^[a-f0-9]{64}$')

    # Limits
    MAX_STRING_LENGTH = 4096
    MAX_UINT256 = (1 << 256) - 1

    @classmethod
    def validate_string(
        cls,
        value: Any,
        field_name: str,
        min_length: int = 1,
        max_length: int = None,
    ) -> ValidationResult:
        """Validate a string value."""
        max_length = max_length or cls.MAX_STRING_LENGTH
        errors = []

        if not isinstance(value, str):
            errors.append(ValidationError(field_name, f"Expected string, got {type(value).__name__}", value))
            return ValidationResult.failure(errors)

        # Sanitize: strip whitespace and null bytes
        sanitized = value.strip().replace('\x00', '')

        if len(sanitized) < min_length:
            errors.append(ValidationError(field_name, f"Too short (min {min_length} chars)", value))

        if len(sanitized) > max_length:
            errors.append(ValidationError(field_name, f"Too long (max {max_length} chars)", value))

        if errors:
            return ValidationResult.failure(errors)
        return ValidationResult.success(sanitized)

    @classmethod
    def validate_address(cls, value: Any, field_name: str = "address") -> ValidationResult:
        """Validate a 20-byte account or asset address (0x + 40 hex)."""
        result = cls.validate_string(value, field_name, min_length=42, max_length=42)
        if not result.is_valid:
            return result

        lower = result.sanitized_value.lower()
        if not cls.HEX40_PATTERN.match(lower):
            return ValidationResult.failure([
                ValidationError(field_name, "Must be a valid address (0x + 40 hex)", value)
            ])

        return ValidationResult.success(lower)

    @classmethod
    def validate_word(cls, value: Any, field_name: str = "word") -> ValidationResult:
        """Validate a 32-byte word given as bytes or 64 hex chars (optional 0x)."""
        if isinstance(value, str):
            text = value.strip().lower()
            if text.startswith("0x"):
                text = text[2:]
            if not cls.HEX64_PATTERN.match(text):
                return ValidationResult.failure([
                    ValidationError(field_name, "Must be 64 hex characters", value)
                ])
            return ValidationResult.success(bytes.fromhex(text))

        if not isinstance(value, (bytes, bytearray)):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected bytes, got {type(value).__name__}", value)
            ])

        if len(value) != 32:
            return ValidationResult.failure([
                ValidationError(field_name, f"Must be exactly 32 bytes (got {len(value)})", value)
            ])

        return ValidationResult.success(bytes(value))

    @classmethod
    def validate_amount(
        cls,
        value: Any,
        field_name: str = "amount",
        min_value: int = 0,
    ) -> ValidationResult:
        """Validate an integer amount in an asset's smallest unit."""
        # bool is an int subclass; reject it explicitly
        if isinstance(value, bool) or not isinstance(value, int):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected integer, got {type(value).__name__}", value)
            ])

        errors = []
        if value < min_value:
            errors.append(ValidationError(field_name, f"Below minimum ({min_value})", value))
        if value > cls.MAX_UINT256:
            errors.append(ValidationError(field_name, "Exceeds uint256 range", value))

        if errors:
            return ValidationResult.failure(errors)
        return ValidationResult.success(value)

    @classmethod
    def validate_timestamp(
        cls,
        value: Any,
        field_name: str = "timestamp",
        allow_none: bool = True,
    ) -> ValidationResult:
        """Validate a unix timestamp in seconds (None means "no expiry")."""
        if value is None:
            if allow_none:
                return ValidationResult.success(None)
            return ValidationResult.failure([
                ValidationError(field_name, "Timestamp is required", value)
            ])
        return cls.validate_amount(value, field_name, min_value=0)


# =============================================================================
# CRYPTOGRAPHIC UTILITIES
# =============================================================================

class CryptoUtils:
    """Cryptographic utility functions with security hardening."""

    @staticmethod
    def secure_compare_str(a: str, b: str) -> bool:
        """Constant-time string comparison."""
        return hmac.compare_digest(a.encode(), b.encode())

    @staticmethod
    def random_address() -> str:
        """Generate a random 20-byte address."""
        return "0x" + secrets.token_hex(20)

    @staticmethod
    def hash_sha256(data: Union[str, bytes]) -> bytes:
        """Compute SHA256 digest."""
        if isinstance(data, str):
            data = data.encode('utf-8')
        return hashlib.sha256(data).digest()


# =============================================================================
# THREAD SAFETY
# =============================================================================

class AtomicCounter:
    """Thread-safe counter."""

    def __init__(self, initial: int = 0):
        self._value = initial
        self._lock = threading.Lock()

    def get_and_increment(self, delta: int = 1) -> int:
        """Atomically increment and return the value before the increment."""
        with self._lock:
            old = self._value
            self._value += delta
            return old

    def get(self) -> int:
        """Get current value."""
        with self._lock:
            return self._value


def normalize_address(value: Any, field_name: str = "address") -> str:
    """Validate and lowercase an address, raising ValidationError on failure."""
    return Validators.validate_address(value, field_name).unwrap()


def normalize_optional_address(value: Optional[Any], field_name: str = "address") -> Optional[str]:
    """Like normalize_address, but passes None through."""
    if value is None:
        return None
    return normalize_address(value, field_name)
