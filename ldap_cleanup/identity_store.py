"""
Client for the OpenShift user and identity API.

Users and identities are cluster-scoped ``user.openshift.io/v1`` resources,
accessed through the Kubernetes custom objects API.
"""

import logging
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Callable, Dict, List, Optional, TypeVar, cast

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

logger = logging.getLogger(__name__)

USER_GROUP = 'user.openshift.io'
USER_VERSION = 'v1'
USERS_PLURAL = 'users'
IDENTITIES_PLURAL = 'identities'

DEFAULT_PAGE_SIZE = 500

F = TypeVar('F', bound=Callable[..., Any])


class IdentityStoreError(Exception):
    """Raised when the user/identity API cannot be reached or rejects a call."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


def _convert_exception(f: F) -> F:
    """Convert API and transport errors to IdentityStoreError."""

    @wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return f(*args, **kwargs)
        except ApiException as e:
            raise IdentityStoreError(f"{f.__name__} failed: ({e.status}) {e.reason}", status=e.status) from e
        except (HTTPError, OSError) as e:
            raise IdentityStoreError(f"{f.__name__} failed: {e}") from e

    return cast(F, wrapper)


@dataclass
class User:
    """A local user and the identity references bound to it."""

    name: str
    identities: List[str] = field(default_factory=list)

    @classmethod
    def from_resource(cls, resource: Dict[str, Any]) -> 'User':
        metadata = resource.get('metadata') or {}
        return cls(
            name=metadata.get('name', ''),
            identities=list(resource.get('identities') or []),
        )


class IdentityStore:
    """
    Lists users and deletes users and identities.

    Each method is an independent remote call. Nothing is retried and there
    is no transaction spanning an identity delete and the matching user
    delete.
    """

    def __init__(self, api: client.CustomObjectsApi, page_size: int = DEFAULT_PAGE_SIZE,
                 logger: Optional[logging.Logger] = None):
        self._api = api
        self.page_size = page_size
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_kubeconfig(cls, kubeconfig: str = '', logger: Optional[logging.Logger] = None) -> 'IdentityStore':
        """
        Build a store from a kubeconfig file or in-cluster credentials.

        Args:
            kubeconfig: Path to a kubeconfig file, empty for in-cluster config

        Raises:
            IdentityStoreError: If no usable client configuration can be loaded
        """
        configuration = client.Configuration()
        try:
            if kubeconfig:
                config.load_kube_config(config_file=kubeconfig, client_configuration=configuration)
            else:
                config.load_incluster_config(client_configuration=configuration)
        except (config.ConfigException, OSError) as e:
            source = f"kubeconfig from {kubeconfig}" if kubeconfig else "in-cluster config"
            raise IdentityStoreError(f"Unable to load {source}: {e}")

        api = client.CustomObjectsApi(client.ApiClient(configuration))
        return cls(api, logger=logger)

    @_convert_exception
    def list_users(self) -> List[User]:
        """
        Fetch every user, following continue tokens across pages.

        Returns:
            Users in list-response order
        """
        users = []
        continue_token = None
        while True:
            kwargs = {'limit': self.page_size}
            if continue_token:
                kwargs['_continue'] = continue_token
            response = self._api.list_cluster_custom_object(
                USER_GROUP, USER_VERSION, USERS_PLURAL, **kwargs
            )
            items = response.get('items') or []
            users.extend(User.from_resource(item) for item in items)

            continue_token = (response.get('metadata') or {}).get('continue')
            if not continue_token:
                break
            self.logger.debug(f"Fetched {len(users)} users so far, requesting next page")
        return users

    @_convert_exception
    def delete_identity(self, name: str) -> None:
        """Delete an identity by its ``provider:external-id`` name."""
        self._api.delete_cluster_custom_object(USER_GROUP, USER_VERSION, IDENTITIES_PLURAL, name)

    @_convert_exception
    def delete_user(self, name: str) -> None:
        """Delete a user by name."""
        self._api.delete_cluster_custom_object(USER_GROUP, USER_VERSION, USERS_PLURAL, name)
