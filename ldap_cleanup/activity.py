"""
Activity evaluation for directory search results.

A user whose name matches no directory entry is a removal candidate. When
entries are found, their logon and expiry timestamps are decoded and logged,
but presence in the directory alone keeps the user.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from ldap_cleanup.filetime import FileTimeParseError, filetime_to_datetime, is_never_expires
from ldap_cleanup.ldap_client import DirectoryEntry


@dataclass
class AccountActivity:
    """Decoded activity attributes of one directory entry."""

    dn: str
    cn: Optional[str] = None
    sam_account_name: Optional[str] = None
    last_logon: Optional[datetime] = None
    last_logon_timestamp: Optional[datetime] = None
    account_expires: Optional[datetime] = None


def days_since(value: Optional[datetime], now: datetime) -> Optional[int]:
    """Whole days between value and now, negative for future times."""
    if value is None:
        return None
    return int((now - value).total_seconds() // 86400)


class ActivityEvaluator:
    """Decides whether the entries returned for a user make it removable."""

    def __init__(self, logger: Optional[logging.Logger] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def evaluate(self, entries: List[DirectoryEntry]) -> bool:
        """
        Compute the removal verdict for one user.

        Args:
            entries: Directory entries matching the user name

        Returns:
            True if the user is eligible for removal
        """
        if not entries:
            self.logger.debug("User not found in LDAP, can be removed")
            return True

        self.logger.debug(f"User found in LDAP ({len(entries)} entries), checking user attributes")
        now = self.clock()
        for entry in entries:
            activity = self.describe(entry)
            self.logger.debug(
                f"Attributes DN={activity.dn} CN={activity.cn} "
                f"sAMAccountName={activity.sam_account_name} "
                f"lastLogon={self._format(activity.last_logon)} "
                f"lastLogonAgo={self._format_days(activity.last_logon, now)} "
                f"lastLogonTimestamp={self._format(activity.last_logon_timestamp)} "
                f"lastLogonTimestampAgo={self._format_days(activity.last_logon_timestamp, now)} "
                f"accountExpires={self._format(activity.account_expires)} "
                f"accountExpiresAgo={self._format_days(activity.account_expires, now)}"
            )

        # No inactivity threshold is applied: an existing account is kept
        return False

    def describe(self, entry: DirectoryEntry) -> AccountActivity:
        """Decode the activity attributes of a single entry."""
        account_expires = None
        raw_expires = entry.get('accountExpires')
        if raw_expires is not None and is_never_expires(raw_expires):
            self.logger.debug(f"Account {entry.dn} never expires")
        else:
            account_expires = self._decode(entry, 'accountExpires')

        return AccountActivity(
            dn=entry.dn,
            cn=entry.get('cn'),
            sam_account_name=entry.get('sAMAccountName'),
            last_logon=self._decode(entry, 'lastLogon'),
            last_logon_timestamp=self._decode(entry, 'lastLogonTimestamp'),
            account_expires=account_expires,
        )

    def _decode(self, entry: DirectoryEntry, attribute: str) -> Optional[datetime]:
        """Decode a FileTime attribute, telling absent values apart from broken ones."""
        raw = entry.get(attribute)
        if raw is None:
            self.logger.debug(f"Attribute {attribute} not set on {entry.dn}")
            return None
        try:
            return filetime_to_datetime(raw)
        except FileTimeParseError as e:
            self.logger.error(f"Cannot convert FileTime for {attribute} attribute on {entry.dn}: {e}")
            return None

    @staticmethod
    def _format(value: Optional[datetime]) -> str:
        return value.isoformat() if value else 'unset'

    @staticmethod
    def _format_days(value: Optional[datetime], now: datetime) -> str:
        days = days_since(value, now)
        return f"{days} days" if days is not None else 'unknown'
