"""Offline syntax check for vendor keys (``pk_<id>.sk_<secret>``).

This never touches the network. Whether the server accepts the key is a
separate question answered by a live health check in
:mod:`maascli.auth.login`.
"""

from __future__ import annotations

import re

from maascli.exceptions import VendorKeyFormatError

VENDOR_KEY_PATTERN = re.compile(r"^pk_[A-Za-z0-9]{8,}\.sk_[A-Za-z0-9]{16,}$")

PUBLIC_PREFIX = "pk_"
SECRET_PREFIX = "sk_"
MIN_PUBLIC_LENGTH = 8
MIN_SECRET_LENGTH = 16

_EXPECTED = "Expected format: pk_xxx.sk_xxx"
_ALNUM = re.compile(r"^[A-Za-z0-9]*$")


def validate_vendor_key(raw: str) -> str:
    """Check *raw* against the vendor-key format.

    Surrounding whitespace is ignored. The first violated constraint is
    reported, so the message tells the user exactly what to fix.

    Args:
        raw: The key as typed or pasted by the user.

    Returns:
        The stripped key.

    Raises:
        VendorKeyFormatError: If the key is malformed.
    """
    key = (raw or "").strip()
    if not key:
        raise VendorKeyFormatError("Vendor key is required")

    if "." not in key:
        raise VendorKeyFormatError(
            f"Invalid format: vendor key must contain a dot (.) separator. {_EXPECTED}"
        )
    parts = key.split(".")
    if len(parts) != 2:
        raise VendorKeyFormatError(
            f"Invalid format: vendor key must have exactly two parts separated by a dot. {_EXPECTED}"
        )
    public_part, secret_part = parts

    if not public_part.startswith(PUBLIC_PREFIX):
        raise VendorKeyFormatError(f'Invalid format: first part must start with "pk_". {_EXPECTED}')
    public_body = public_part[len(PUBLIC_PREFIX):]
    if not _ALNUM.match(public_body):
        raise VendorKeyFormatError(
            'Invalid format: public key part contains invalid characters; '
            'only letters and numbers are allowed after "pk_"'
        )

    if not secret_part.startswith(SECRET_PREFIX):
        raise VendorKeyFormatError(f'Invalid format: second part must start with "sk_". {_EXPECTED}')
    secret_body = secret_part[len(SECRET_PREFIX):]
    if not _ALNUM.match(secret_body):
        raise VendorKeyFormatError(
            'Invalid format: secret key part contains invalid characters; '
            'only letters and numbers are allowed after "sk_"'
        )

    if len(public_body) < MIN_PUBLIC_LENGTH:
        raise VendorKeyFormatError(
            f'Invalid format: public key part is too short '
            f'(minimum {MIN_PUBLIC_LENGTH} characters after "pk_")'
        )
    if len(secret_body) < MIN_SECRET_LENGTH:
        raise VendorKeyFormatError(
            f'Invalid format: secret key part is too short '
            f'(minimum {MIN_SECRET_LENGTH} characters after "sk_")'
        )

    return key


def is_valid_vendor_key(raw: str) -> bool:
    try:
        validate_vendor_key(raw)
    except VendorKeyFormatError:
        return False
    return True


def mask_vendor_key(key: str) -> str:
    """Return *key* with the secret part hidden, for display."""
    public_part, _, secret_part = key.partition(".")
    if not secret_part:
        return key[:6] + "..." if len(key) > 6 else key
    return f"{public_part}.sk_{'*' * 8}"
