"""
Reconciliation of local users against the directory.

For every user bound to exactly one identity of the configured provider, the
directory is searched for the user name. Users without a directory account
are removed in two steps: the identity first, then the user, and only when
the identity delete succeeded. Without confirmation nothing is deleted.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from ldap_cleanup.activity import ActivityEvaluator
from ldap_cleanup.identity_store import IdentityStore, IdentityStoreError, User
from ldap_cleanup.ldap_client import LDAPClient


class Outcome(Enum):
    """What happened to a single user during a run."""

    SKIPPED_IDENTITY_COUNT = 'skipped_identity_count'
    SKIPPED_PREFIX = 'skipped_prefix'
    ACTIVE = 'active'
    WOULD_REMOVE = 'would_remove'
    REMOVED = 'removed'
    IDENTITY_DELETE_FAILED = 'identity_delete_failed'
    USER_DELETE_FAILED = 'user_delete_failed'


FAILED_OUTCOMES = (Outcome.IDENTITY_DELETE_FAILED, Outcome.USER_DELETE_FAILED)


@dataclass
class UserResult:
    """Per-user outcome, with the error message when a delete failed."""

    user: str
    outcome: Outcome
    identity: Optional[str] = None
    error: Optional[str] = None


@dataclass
class RunStats:
    """Counts of outcomes across a run."""

    users_total: int = 0
    outcomes: Dict[Outcome, int] = field(default_factory=lambda: {outcome: 0 for outcome in Outcome})

    def record(self, result: UserResult):
        self.users_total += 1
        self.outcomes[result.outcome] += 1

    @property
    def errors(self) -> int:
        return sum(self.outcomes[outcome] for outcome in FAILED_OUTCOMES)

    @classmethod
    def from_results(cls, results: List[UserResult]) -> 'RunStats':
        stats = cls()
        for result in results:
            stats.record(result)
        return stats


class Reconciler:
    """
    Drives the per-user decision and the two-step delete.

    Directory search errors are not caught here: they abort the run so that
    an unreachable directory never looks like a directory without users.
    """

    def __init__(self, store: IdentityStore, directory: LDAPClient, evaluator: ActivityEvaluator,
                 identity_prefix: str, confirm: bool = False, logger: Optional[logging.Logger] = None):
        self.store = store
        self.directory = directory
        self.evaluator = evaluator
        self.identity_prefix = identity_prefix
        self.confirm = confirm
        self.logger = logger or logging.getLogger(__name__)

    def run(self, users: List[User]) -> List[UserResult]:
        """
        Process users in order.

        Args:
            users: Snapshot of local users

        Returns:
            One result per user

        Raises:
            LDAPQueryError: If a directory search fails
        """
        return [self.process_user(user) for user in users]

    def process_user(self, user: User) -> UserResult:
        """Apply the identity policy, check the directory and delete if needed."""
        if len(user.identities) != 1:
            self.logger.debug(f"Skipping user {user.name} due to identity count mismatch: "
                              f"expected 1, got {len(user.identities)}")
            return UserResult(user.name, Outcome.SKIPPED_IDENTITY_COUNT)

        identity = user.identities[0]
        if not identity.startswith(self.identity_prefix):
            self.logger.debug(f"User identity prefix is wrong, skipping user {user.name}: "
                              f"identity prefix {identity.split(':')[0]!r}, "
                              f"expected prefix {self.identity_prefix!r}")
            return UserResult(user.name, Outcome.SKIPPED_PREFIX, identity=identity)

        self.logger.debug(f"Found user {user.name} with correct prefix, searching in LDAP")
        entries = self.directory.search_user(user.name)
        if not self.evaluator.evaluate(entries):
            return UserResult(user.name, Outcome.ACTIVE, identity=identity)

        self.logger.info(f"Remove user {user.name} and identity {identity} (confirm={self.confirm})")
        if not self.confirm:
            return UserResult(user.name, Outcome.WOULD_REMOVE, identity=identity)

        return self._remove(user, identity)

    def _remove(self, user: User, identity: str) -> UserResult:
        """Delete the identity and then, only if that worked, the user."""
        self.logger.debug(f"Deleting identity {identity}")
        try:
            self.store.delete_identity(identity)
        except IdentityStoreError as e:
            self.logger.error(f"Unable to delete identity {identity}: {e}")
            return UserResult(user.name, Outcome.IDENTITY_DELETE_FAILED, identity=identity, error=str(e))
        self.logger.info(f"Successfully deleted identity {identity}")

        self.logger.debug(f"Deleting user {user.name}")
        try:
            self.store.delete_user(user.name)
        except IdentityStoreError as e:
            self.logger.error(f"Unable to delete user {user.name}: {e}")
            return UserResult(user.name, Outcome.USER_DELETE_FAILED, identity=identity, error=str(e))
        self.logger.info(f"Successfully deleted user {user.name}")

        return UserResult(user.name, Outcome.REMOVED, identity=identity)
