"""
Synthetic token data generation
"""

import random
import string
from dataclasses import dataclass, astuple
from datetime import datetime, timedelta
from typing import Dict, Any, Iterator, List, Optional, Tuple

TOKEN_ALPHABET = string.ascii_letters + string.digits

# Column order used by the loader's INSERT statement
INSERT_COLUMNS = (
    'user_id',
    'client_id',
    'access_token',
    'token_type',
    'refresh_token',
    'issued_at',
    'revoked_at',
    'expires_at',
    'refresh_token_expires_at',
)


@dataclass
class TokenRecord:
    """One synthetic row of the token table (the id is assigned by the store)"""
    user_id: int
    client_id: int
    access_token: str
    token_type: str
    refresh_token: str
    issued_at: datetime
    revoked_at: Optional[datetime]
    expires_at: datetime
    refresh_token_expires_at: datetime

    def as_row(self) -> Tuple:
        """Values in INSERT_COLUMNS order"""
        return astuple(self)


def _range(value, name: str, minimum: int) -> Tuple[int, int]:
    low, high = int(value[0]), int(value[1])
    if low < minimum or high < low:
        raise ValueError(f"{name} must be a [min, max] range with {minimum} <= min <= max, got {value}")
    return low, high


class TokenGenerator:
    """
    Produces pseudo-random token records bounded by the generator config.

    Tokens are random alphanumeric strings and are not guaranteed to be
    unique. Every call to generate() starts a fresh random sequence; nothing
    is kept between calls.
    """

    def __init__(self, config: Dict[str, Any], rng: random.Random = None, clock=None):
        self.users_count = int(config.get('users_count', 180))
        self.clients_count = int(config.get('clients_count', 18))
        if self.users_count < 1 or self.clients_count < 1:
            raise ValueError("users_count and clients_count must be at least 1")

        self.token_types: List[str] = list(config.get('token_types', ['Bearer', 'Refresh']))
        if not self.token_types:
            raise ValueError("token_types must not be empty")

        self.access_token_length = _range(config.get('access_token_length', [40, 80]), 'access_token_length', 1)
        self.refresh_token_length = _range(config.get('refresh_token_length', [32, 64]), 'refresh_token_length', 1)
        self.access_lifetime_hours = _range(config.get('access_lifetime_hours', [1, 8760]), 'access_lifetime_hours', 1)
        self.refresh_lifetime_hours = _range(config.get('refresh_lifetime_hours', [1, 61320]), 'refresh_lifetime_hours', 1)

        self.revoked_fraction = float(config.get('revoked_fraction', 0.5))
        if not 0.0 <= self.revoked_fraction <= 1.0:
            raise ValueError("revoked_fraction must be between 0 and 1")

        self.revoke_delay_days = int(config.get('revoke_delay_days', 30))
        if self.revoke_delay_days < 1:
            raise ValueError("revoke_delay_days must be at least 1")

        self.rng = rng or random.Random()
        self.clock = clock or datetime.now

    def _random_string(self, length_range: Tuple[int, int]) -> str:
        length = self.rng.randint(*length_range)
        return ''.join(self.rng.choices(TOKEN_ALPHABET, k=length))

    def make_record(self) -> TokenRecord:
        issued_at = self.clock().replace(microsecond=0)
        expires_at = issued_at + timedelta(hours=self.rng.randint(*self.access_lifetime_hours))
        refresh_expires_at = issued_at + timedelta(hours=self.rng.randint(*self.refresh_lifetime_hours))

        revoked_at = None
        if self.rng.random() < self.revoked_fraction:
            revoked_at = expires_at + timedelta(days=self.revoke_delay_days)

        return TokenRecord(
            user_id=self.rng.randint(1, self.users_count),
            client_id=self.rng.randint(1, self.clients_count),
            access_token=self._random_string(self.access_token_length),
            token_type=self.rng.choice(self.token_types),
            refresh_token=self._random_string(self.refresh_token_length),
            issued_at=issued_at,
            revoked_at=revoked_at,
            expires_at=expires_at,
            refresh_token_expires_at=refresh_expires_at,
        )

    def generate(self, count: int) -> Iterator[TokenRecord]:
        """Lazily yield `count` records"""
        for _ in range(max(count, 0)):
            yield self.make_record()
