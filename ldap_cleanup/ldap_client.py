"""
LDAP client for looking up users in the authoritative directory.

This module builds the per-user search filter from the sync configuration,
binds a single connection for the whole run and returns matching entries
with string-typed attributes.
"""

import logging
import ssl
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional
from ldap3 import Server, Connection, Tls, SUBTREE, ALL, DEREF_ALWAYS, DEREF_NEVER
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars

from ldap_cleanup.config import SyncConfig

logger = logging.getLogger(__name__)

USER_ATTRIBUTES = ['dn', 'cn', 'lastLogon', 'accountExpires', 'sAMAccountName', 'lastLogonTimestamp']

RESULT_SUCCESS = 0


class LDAPConnectionError(Exception):
    """Raised when LDAP connection or bind fails."""
    pass


class LDAPQueryError(Exception):
    """Raised when an LDAP search fails. Always fatal for the run."""
    pass


@dataclass
class DirectoryEntry:
    """A search result: distinguished name plus string attribute values."""

    dn: str
    attributes: Dict[str, str] = field(default_factory=dict)

    def get(self, name: str) -> Optional[str]:
        """Case-insensitive attribute lookup, None when absent."""
        wanted = name.lower()
        for key, value in self.attributes.items():
            if key.lower() == wanted:
                return value
        return None


def build_user_filter(attributes: List[str], username: str, base_filter: str = '') -> str:
    """
    Build the search filter matching a username against any of the attributes.

    Args:
        attributes: Attribute names that may hold the username
        username: Local user name
        base_filter: Optional filter that must also match

    Returns:
        (|(a1=u)(a2=u)...) or (&base_filter(|...)) when base_filter is set
    """
    value = escape_filter_chars(username)
    clauses = ''.join(f"({attribute}={value})" for attribute in attributes)
    search_filter = f"(|{clauses})"
    if base_filter:
        search_filter = f"(&{base_filter}{search_filter})"
    return search_filter


def resolve_deref_aliases(value: Optional[str]) -> str:
    """Only the literal 'always' dereferences aliases, everything else never does."""
    if value == 'always':
        return DEREF_ALWAYS
    return DEREF_NEVER


def _decode(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')
    return str(value)


class LDAPClient:
    """
    LDAP client bound once for the duration of a cleanup run.

    Connection problems and search failures raise instead of returning an
    empty result, so an unreachable directory is never mistaken for absent
    users.
    """

    def __init__(self, config: SyncConfig, bind_password: str,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize LDAP client with configuration.

        Args:
            config: Validated sync configuration
            bind_password: Resolved password for the bind DN
            logger: Logger to use, defaults to the module logger
        """
        self.config = config
        self.server_url = config.url
        self.bind_dn = config.bind_dn
        self.bind_password = bind_password
        self.ca_cert_file = config.ca
        self.use_ssl = self.server_url.lower().startswith('ldaps://')
        self.logger = logger or logging.getLogger(__name__)

        self.server = None
        self.connection = None
        self._connected = False

    def connect(self) -> bool:
        """
        Dial the server and bind with the service account.

        Returns:
            True if connection successful

        Raises:
            LDAPConnectionError: If the server cannot be reached or the bind fails
        """
        try:
            self.server = Server(
                self.server_url,
                use_ssl=self.use_ssl,
                tls=self._create_tls_config(),
                get_info=ALL
            )
            self.logger.debug(f"Created LDAP server object for {self.server_url} (SSL: {self.use_ssl})")
        except LDAPException as e:
            raise LDAPConnectionError(f"Failed to create LDAP server: {e}")

        try:
            self.connection = Connection(
                self.server,
                user=self.bind_dn,
                password=self.bind_password,
                auto_bind=False
            )
            self.connection.open()
            if not self.connection.bind():
                raise LDAPConnectionError(f"Failed to bind to LDAP: {self.connection.result}")
        except LDAPException as e:
            self._discard_connection()
            raise LDAPConnectionError(f"Failed to connect to LDAP: {e}")
        except LDAPConnectionError:
            self._discard_connection()
            raise

        self._connected = True
        self.logger.debug(f"Successfully bound to LDAP server {self.server_url}")
        return True

    def _create_tls_config(self) -> Optional[Tls]:
        """
        Create TLS configuration for ldaps:// connections.

        Returns:
            Tls configuration object or None for plain connections
        """
        if not self.use_ssl:
            return None

        tls_config = {'validate': ssl.CERT_REQUIRED}
        if self.ca_cert_file:
            tls_config['ca_certs_file'] = self.ca_cert_file
            self.logger.debug(f"Using CA certificate file: {self.ca_cert_file}")

        try:
            return Tls(**tls_config)
        except LDAPException as e:
            raise LDAPConnectionError(f"Failed to create TLS configuration: {e}")

    def _discard_connection(self):
        if self.connection is not None:
            try:
                self.connection.unbind()
            except LDAPException as e:
                self.logger.debug(f"Error discarding failed LDAP connection: {e}")
            self.connection = None

    def disconnect(self):
        """Close LDAP connection."""
        if self.connection and self._connected:
            try:
                self.connection.unbind()
                self.logger.debug("LDAP connection closed")
            except LDAPException as e:
                self.logger.warning(f"Error closing LDAP connection: {e}")
            finally:
                self._connected = False
                self.connection = None

    def search_user(self, username: str) -> List[DirectoryEntry]:
        """
        Search the directory for a local user name.

        Args:
            username: Name of the local user

        Returns:
            Zero or more matching entries

        Raises:
            LDAPQueryError: If not connected, the search errors or the server
                returns a non-success result code
        """
        if not self._connected:
            raise LDAPQueryError("Not connected to LDAP server")

        query = self.config.users_query
        search_filter = build_user_filter(self.config.user_name_attributes, username, query.filter)
        self.logger.debug(f"Using LDAP filter {search_filter} in base {query.base_dn}")

        try:
            self.connection.search(
                search_base=query.base_dn,
                search_filter=search_filter,
                search_scope=SUBTREE,
                dereference_aliases=resolve_deref_aliases(query.deref_aliases),
                attributes=USER_ATTRIBUTES,
                size_limit=0,
                time_limit=0,
                types_only=False
            )
        except LDAPException as e:
            raise LDAPQueryError(f"LDAP search failed: {e}")

        result = self.connection.result or {}
        if result.get('result', RESULT_SUCCESS) != RESULT_SUCCESS:
            raise LDAPQueryError(f"LDAP search failed: {result.get('description')} {result.get('message', '')}".rstrip())

        return self._process_search_results()

    def _process_search_results(self) -> List[DirectoryEntry]:
        """Convert the raw search response into directory entries."""
        entries = []
        for item in self.connection.response or []:
            if item.get('type') != 'searchResEntry':
                continue
            attributes = {}
            for name, values in (item.get('raw_attributes') or {}).items():
                if isinstance(values, (list, tuple)):
                    if not values:
                        continue
                    values = values[0]
                attributes[name] = _decode(values)
            entries.append(DirectoryEntry(dn=item.get('dn', ''), attributes=attributes))
        return entries

    def get_connection_stats(self) -> Dict[str, Any]:
        """
        Get connection statistics and status.

        Returns:
            Dictionary with connection information
        """
        stats = {
            'connected': self._connected,
            'server_url': self.server_url,
            'use_ssl': self.use_ssl,
            'bind_dn': self.bind_dn,
            'base_dn': self.config.users_query.base_dn,
        }

        if self.connection:
            stats.update({
                'server_host': getattr(self.connection.server, 'host', None),
                'server_port': getattr(self.connection.server, 'port', None),
                'bound': getattr(self.connection, 'bound', False),
            })

        return stats

    def __enter__(self):
        """Context manager entry, binds if not yet connected."""
        if not self._connected:
            self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.disconnect()
