"""Generators for the opaque public identifiers (user_..., staff_..., log_...)."""
import re
import secrets
from datetime import datetime, timezone

BASE36_ALPHABET = '0123456789abcdefghijklmnopqrstuvwxyz'


def to_base36(number):
    """Encode a non-negative integer in base 36."""
    if number == 0:
        return '0'
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return ''.join(reversed(digits))


def timestamp36():
    """Current time in milliseconds, base-36 encoded."""
    return to_base36(int(datetime.now(timezone.utc).timestamp() * 1000))


def generate_public_id(prefix):
    """Opaque identifier: <prefix>_<base36 ms timestamp>_<7 random chars>."""
    suffix = ''.join(secrets.choice(BASE36_ALPHABET) for _ in range(7))
    return f"{prefix}_{timestamp36()}_{suffix}"


def generate_tenant_id(name):
    """
    Tenant identifier derived from the shop name and the creation time.

    Format: tenant_<first 3 alphanumerics of name, upper case>_<BASE36 ms><4 hex>.
    The random tail keeps ids unique when two shops with the same prefix
    are created within the same millisecond.
    """
    prefix = re.sub(r'[^A-Za-z0-9]', '', name or '')[:3].upper() or 'XXX'
    return f"tenant_{prefix}_{timestamp36().upper()}{secrets.token_hex(2).upper()}"
