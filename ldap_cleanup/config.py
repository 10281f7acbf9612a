"""
Configuration loading and management for LDAP User Cleanup.

Runtime settings come from environment variables. The LDAP connection and
user query are read from an OpenShift LDAPSyncConfig YAML file, validated
once at load time and exposed as typed dataclasses.
"""

import os
import yaml
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, List, Mapping, Optional

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing required fields."""
    pass


TRUE_VALUES = ('1', 't', 'true')
FALSE_VALUES = ('0', 'f', 'false')

LOG_FORMATS = ('json', 'text')


@dataclass
class Settings:
    """Runtime settings sourced from the environment."""

    log_level: str = 'INFO'
    log_format: str = 'json'
    identity_prefix: str = 'notset'
    kubeconfig: str = ''
    sync_config_path: str = 'sync.yaml'
    confirm: bool = False


def parse_bool(value: str) -> bool:
    """Parse a boolean environment value."""
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    raise ValueError(f"invalid boolean value: {value!r}")


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build settings from environment variables.

    Args:
        environ: Mapping to read from, defaults to os.environ

    Returns:
        Settings instance

    Raises:
        ConfigurationError: If a variable holds a value that cannot be parsed
    """
    env = os.environ if environ is None else environ
    errors = []

    confirm = False
    confirm_raw = env.get('OSLUC_CONFIRM', '')
    if confirm_raw:
        try:
            confirm = parse_bool(confirm_raw)
        except ValueError as e:
            errors.append(f"OSLUC_CONFIRM: {e}")

    log_format = env.get('OSLUC_LOG_FORMAT', 'json').lower()
    if log_format not in LOG_FORMATS:
        errors.append(f"OSLUC_LOG_FORMAT: expected one of {', '.join(LOG_FORMATS)}, got {log_format!r}")

    if errors:
        raise ConfigurationError("Environment validation failed:\n" + "\n".join(f"  - {error}" for error in errors))

    return Settings(
        log_level=env.get('OSLUC_LOG_LEVEL', 'INFO'),
        log_format=log_format,
        identity_prefix=env.get('OSLUC_IDENTITY_PREFIX', 'notset'),
        kubeconfig=env.get('KUBECONFIG', ''),
        sync_config_path=env.get('OSLUC_LDAP_SYNC_CONFIG_PATH', 'sync.yaml'),
        confirm=confirm,
    )


@dataclass
class PasswordSource:
    """Where the bind password comes from: a file, an env var or a literal."""

    file: Optional[str] = None
    env: Optional[str] = None
    value: Optional[str] = None

    def read(self) -> str:
        """
        Resolve the password.

        Raises:
            ConfigurationError: If the file or variable cannot be read
        """
        if self.file is not None:
            path = os.path.normpath(self.file)
            try:
                with open(path, 'r') as f:
                    return f.read().rstrip('\r\n')
            except OSError as e:
                raise ConfigurationError(f"Unable to read password file {path}: {e}")
        if self.env is not None:
            value = os.getenv(self.env)
            if value is None:
                raise ConfigurationError(f"Bind password environment variable {self.env} is not set")
            return value
        return self.value or ''


@dataclass
class UsersQuery:
    """Search parameters for locating a user in the directory."""

    base_dn: str
    filter: str = ''
    deref_aliases: Optional[str] = None


@dataclass
class SyncConfig:
    """Validated LDAPSyncConfig content used by the cleanup."""

    url: str
    bind_dn: str
    bind_password: PasswordSource
    users_query: UsersQuery
    user_name_attributes: List[str] = field(default_factory=list)
    ca: Optional[str] = None

    def read_bind_password(self) -> str:
        return self.bind_password.read()


class SyncConfigLoader:
    """Handles loading and validation of the LDAPSyncConfig file."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize sync config loader.

        Args:
            config_path: Path to the sync config. If None, uses
                OSLUC_LDAP_SYNC_CONFIG_PATH or 'sync.yaml'
        """
        self.config_path = config_path or os.getenv('OSLUC_LDAP_SYNC_CONFIG_PATH', 'sync.yaml')

    def load(self) -> SyncConfig:
        """
        Load, validate and convert the sync configuration.

        Returns:
            Typed sync configuration

        Raises:
            ConfigurationError: If the file is missing, unparsable or invalid
        """
        try:
            with open(self.config_path, 'r') as f:
                raw = yaml.safe_load(f)
        except FileNotFoundError:
            raise ConfigurationError(f"Sync configuration file not found: {self.config_path}")
        except OSError as e:
            raise ConfigurationError(f"Unable to read sync configuration file {self.config_path}: {e}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in sync configuration file: {e}")

        if not isinstance(raw, dict):
            raise ConfigurationError(f"Sync configuration must be a mapping: {self.config_path}")

        config = self._build(raw)
        logger.info(f"Sync configuration loaded successfully from {self.config_path}")
        return config

    def _build(self, raw: Dict[str, Any]) -> SyncConfig:
        """Validate every field and build the config, reporting all errors together."""
        errors = []

        url = self._require_str(raw, 'url', 'url', errors)
        bind_dn = self._require_str(raw, 'bindDN', 'bindDN', errors)
        bind_password = self._password_source(raw.get('bindPassword'), errors)

        ca = raw.get('ca')
        if ca is not None and not isinstance(ca, str):
            errors.append("Field ca must be a string")
            ca = None

        aad = raw.get('augmentedActiveDirectory')
        if not isinstance(aad, dict):
            if 'activeDirectory' in raw or 'rfc2307' in raw:
                errors.append("Missing required section: augmentedActiveDirectory (other schemas are not supported)")
            else:
                errors.append("Missing required section: augmentedActiveDirectory")
            aad = {}

        users_query = aad.get('usersQuery')
        if not isinstance(users_query, dict):
            errors.append("Missing required section: augmentedActiveDirectory.usersQuery")
            users_query = {}

        prefix = 'augmentedActiveDirectory.usersQuery'
        base_dn = self._require_str(users_query, 'baseDN', f'{prefix}.baseDN', errors)
        search_filter = self._optional_str(users_query, 'filter', f'{prefix}.filter', errors)
        deref_aliases = self._optional_str(users_query, 'derefAliases', f'{prefix}.derefAliases', errors)

        attributes = aad.get('userNameAttributes')
        if not isinstance(attributes, list) or not attributes:
            errors.append("Missing required field: augmentedActiveDirectory.userNameAttributes "
                          "(non-empty list of attribute names)")
            attributes = []
        else:
            for i, attribute in enumerate(attributes):
                if not isinstance(attribute, str) or not attribute:
                    errors.append(f"Invalid attribute name augmentedActiveDirectory.userNameAttributes[{i}]: "
                                  f"{attribute!r}")

        if errors:
            raise ConfigurationError("Sync configuration validation failed:\n" +
                                     "\n".join(f"  - {error}" for error in errors))

        return SyncConfig(
            url=url,
            bind_dn=bind_dn,
            bind_password=bind_password,
            users_query=UsersQuery(
                base_dn=base_dn,
                filter=search_filter or '',
                deref_aliases=deref_aliases,
            ),
            user_name_attributes=list(attributes),
            ca=ca,
        )

    def _require_str(self, section: Dict[str, Any], key: str, path: str, errors: List[str]) -> str:
        value = section.get(key)
        if value is None:
            errors.append(f"Missing required field: {path}")
            return ''
        if not isinstance(value, str):
            errors.append(f"Field {path} must be a string, got {type(value).__name__}")
            return ''
        return value

    def _optional_str(self, section: Dict[str, Any], key: str, path: str, errors: List[str]) -> Optional[str]:
        value = section.get(key)
        if value is not None and not isinstance(value, str):
            errors.append(f"Field {path} must be a string, got {type(value).__name__}")
            return None
        return value

    def _password_source(self, value: Any, errors: List[str]) -> PasswordSource:
        """Accept bindPassword as a file/env/value mapping or a plain string."""
        if isinstance(value, str):
            return PasswordSource(value=value)
        if not isinstance(value, dict):
            errors.append("Missing required field: bindPassword")
            return PasswordSource()

        sources = {key: value[key] for key in ('file', 'env', 'value') if key in value}
        if len(sources) != 1:
            errors.append("Field bindPassword must set exactly one of file, env or value")
            return PasswordSource()

        key, source = next(iter(sources.items()))
        if not isinstance(source, str) or (not source and key != 'value'):
            errors.append(f"Field bindPassword.{key} must be a non-empty string")
            return PasswordSource()
        return PasswordSource(**{key: source})


def load_sync_config(config_path: Optional[str] = None) -> SyncConfig:
    """
    Convenience function to load the sync configuration.

    Args:
        config_path: Path to the LDAPSyncConfig file

    Returns:
        Validated sync configuration
    """
    loader = SyncConfigLoader(config_path)
    return loader.load()
