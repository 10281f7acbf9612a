"""
Main orchestrator for LDAP User Cleanup.

This module wires configuration, logging, the OpenShift user API and the LDAP
directory together and runs one cleanup pass.
"""

import sys
import json
import logging
import argparse
from datetime import datetime
from typing import Dict, Any, List, Optional

from ldap_cleanup.activity import ActivityEvaluator
from ldap_cleanup.config import ConfigurationError, Settings, SyncConfig, load_settings, load_sync_config
from ldap_cleanup.identity_store import IdentityStore, IdentityStoreError, User
from ldap_cleanup.ldap_client import LDAPClient, LDAPConnectionError, LDAPQueryError
from ldap_cleanup.logging_setup import setup_logging
from ldap_cleanup.reconcile import FAILED_OUTCOMES, Outcome, Reconciler, RunStats, UserResult

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_CONFIGURATION = 2
EXIT_LDAP_CONNECTION = 3
EXIT_LDAP_QUERY = 4
EXIT_IDENTITY_STORE = 5


class CleanupOrchestrator:
    """
    Runs a single cleanup pass.

    Startup problems abort before any user is touched. Failures deleting an
    individual user are logged and do not change the exit code.
    """

    def __init__(self, settings: Optional[Settings] = None):
        """
        Initialize cleanup orchestrator.

        Args:
            settings: Runtime settings, loaded from the environment if None
        """
        self.settings = settings
        self.sync_config: Optional[SyncConfig] = None
        self.store: Optional[IdentityStore] = None
        self.ldap_client: Optional[LDAPClient] = None
        self.logger = logger

        self.stats = RunStats()
        self.results: List[UserResult] = []
        self.start_time = None
        self.runtime_seconds = 0.0

    def run(self) -> int:
        """
        Run the complete cleanup process.

        Returns:
            Exit code (0 for success, non-zero for startup or directory failures)
        """
        self.start_time = datetime.now()
        try:
            self._load_settings()
            self._setup_logging()
            self.logger.info(f"OSLUC confirm flag: confirm={self.settings.confirm}")

            self._load_sync_config()
            bind_password = self.sync_config.read_bind_password()

            self._create_store()
            users = self._list_users()

            with LDAPClient(self.sync_config, bind_password, logger=self.logger) as ldap_client:
                self.ldap_client = ldap_client
                reconciler = Reconciler(
                    store=self.store,
                    directory=ldap_client,
                    evaluator=ActivityEvaluator(logger=self.logger),
                    identity_prefix=self.settings.identity_prefix,
                    confirm=self.settings.confirm,
                    logger=self.logger,
                )
                self.results = reconciler.run(users)

            self.stats = RunStats.from_results(self.results)
            self.runtime_seconds = (datetime.now() - self.start_time).total_seconds()
            self._log_summary()
            return EXIT_OK

        except ConfigurationError as e:
            self.logger.error(f"Configuration error: {e}")
            return EXIT_CONFIGURATION
        except LDAPConnectionError as e:
            self.logger.error(f"LDAP connection error: {e}")
            return EXIT_LDAP_CONNECTION
        except LDAPQueryError as e:
            self.logger.error(f"LDAP search failed, aborting run: {e}")
            return EXIT_LDAP_QUERY
        except IdentityStoreError as e:
            self.logger.error(f"OpenShift user API error: {e}")
            return EXIT_IDENTITY_STORE
        except Exception as e:
            self.logger.error(f"Unexpected error: {e}", exc_info=True)
            return EXIT_UNEXPECTED

    def _load_settings(self):
        if self.settings is None:
            self.settings = load_settings()

    def _setup_logging(self):
        """Configure logging once, before any component is built."""
        self.logger = setup_logging(self.settings.log_level, self.settings.log_format)

    def _load_sync_config(self):
        self.sync_config = load_sync_config(self.settings.sync_config_path)

    def _create_store(self):
        self.store = IdentityStore.from_kubeconfig(self.settings.kubeconfig, logger=self.logger)

    def _list_users(self) -> List[User]:
        """Fetch the user snapshot once for the whole run."""
        users = self.store.list_users()
        self.logger.info(f"Found users: total={len(users)}")
        return users

    def _log_summary(self):
        """Log final cleanup statistics."""
        stats = self.stats
        outcomes = stats.outcomes

        self.logger.info("=== Cleanup Summary ===")
        self.logger.info(f"Total runtime: {self.runtime_seconds:.2f} seconds")
        self.logger.info(f"Users processed: {stats.users_total}")
        self.logger.info(f"Skipped (identity count): {outcomes[Outcome.SKIPPED_IDENTITY_COUNT]}")
        self.logger.info(f"Skipped (identity prefix): {outcomes[Outcome.SKIPPED_PREFIX]}")
        self.logger.info(f"Found in LDAP: {outcomes[Outcome.ACTIVE]}")
        self.logger.info(f"Would remove (dry run): {outcomes[Outcome.WOULD_REMOVE]}")
        self.logger.info(f"Removed: {outcomes[Outcome.REMOVED]}")
        self.logger.info(f"Errors: {stats.errors}")

        for result in self.results:
            if result.outcome in FAILED_OUTCOMES:
                self.logger.warning(f"  {result.user}: {result.outcome.value} - {result.error}")

    def health_check(self) -> Dict[str, Any]:
        """
        Check configuration, LDAP bind and user listing without deleting anything.

        Returns:
            Dictionary containing health status and details
        """
        health_status = {
            'status': 'healthy',
            'timestamp': datetime.now().isoformat(),
            'checks': {}
        }

        def fail(check: str, message: str):
            health_status['checks'][check] = {'status': 'fail', 'message': message}
            health_status['status'] = 'unhealthy'

        try:
            self._load_settings()
            self._setup_logging()
            self._load_sync_config()
            bind_password = self.sync_config.read_bind_password()
            health_status['checks']['configuration'] = {
                'status': 'pass',
                'message': 'Configuration loaded successfully'
            }
        except ConfigurationError as e:
            fail('configuration', f'Configuration error: {e}')
            return health_status

        test_client = LDAPClient(self.sync_config, bind_password, logger=self.logger)
        try:
            test_client.connect()
            health_status['checks']['ldap'] = {
                'status': 'pass',
                'message': 'LDAP bind successful',
                'details': test_client.get_connection_stats()
            }
        except LDAPConnectionError as e:
            fail('ldap', f'LDAP connection failed: {e}')
        finally:
            test_client.disconnect()

        try:
            self._create_store()
            users = self.store.list_users()
            health_status['checks']['openshift'] = {
                'status': 'pass',
                'message': f'Listed {len(users)} users'
            }
        except IdentityStoreError as e:
            fail('openshift', f'OpenShift user API failed: {e}')

        return health_status


def main(argv: Optional[List[str]] = None):
    """Main entry point for the application."""
    parser = argparse.ArgumentParser(
        description='Remove OpenShift users and identities that no longer exist in LDAP'
    )
    parser.add_argument('--sync-config', '-c',
                        help='Path to LDAPSyncConfig file (overrides OSLUC_LDAP_SYNC_CONFIG_PATH)')
    parser.add_argument('--confirm', action='store_true',
                        help='Actually delete users and identities (overrides OSLUC_CONFIRM)')
    parser.add_argument('--health-check', action='store_true',
                        help='Check configuration, LDAP and OpenShift access, then exit')

    args = parser.parse_args(argv)

    try:
        settings = load_settings()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(EXIT_CONFIGURATION)

    if args.sync_config:
        settings.sync_config_path = args.sync_config
    if args.confirm:
        settings.confirm = True

    orchestrator = CleanupOrchestrator(settings=settings)

    if args.health_check:
        health_status = orchestrator.health_check()
        print(json.dumps(health_status, indent=2, default=str))
        sys.exit(0 if health_status['status'] == 'healthy' else 1)

    sys.exit(orchestrator.run())


if __name__ == "__main__":
    main()
