#!/usr/bin/env python3
"""
Unit tests for the OpenShift user/identity client.
"""

import os
import sys
import unittest
from unittest.mock import Mock, patch

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kubernetes.client.rest import ApiException
from kubernetes.config import ConfigException
from urllib3.exceptions import MaxRetryError

from ldap_cleanup.identity_store import IdentityStore, IdentityStoreError, User


def user_resource(name, identities=None):
    resource = {
        'apiVersion': 'user.openshift.io/v1',
        'kind': 'User',
        'metadata': {'name': name},
    }
    if identities is not None:
        resource['identities'] = identities
    return resource


class TestUser(unittest.TestCase):
    """Test cases for User conversion."""

    def test_from_resource(self):
        user = User.from_resource(user_resource('alice', ['ldap_provider:alice']))
        self.assertEqual(user.name, 'alice')
        self.assertEqual(user.identities, ['ldap_provider:alice'])

    def test_missing_identities(self):
        self.assertEqual(User.from_resource(user_resource('bob')).identities, [])
        self.assertEqual(User.from_resource(user_resource('carol', None)).identities, [])


class TestIdentityStore(unittest.TestCase):
    """Test cases for IdentityStore with a mocked custom objects API."""

    def setUp(self):
        self.api = Mock()
        self.store = IdentityStore(self.api, page_size=2)

    def test_list_users_single_page(self):
        self.api.list_cluster_custom_object.return_value = {
            'items': [user_resource('alice', ['ldap:alice']), user_resource('bob', [])],
            'metadata': {},
        }

        users = self.store.list_users()

        self.assertEqual([u.name for u in users], ['alice', 'bob'])
        self.api.list_cluster_custom_object.assert_called_once_with(
            'user.openshift.io', 'v1', 'users', limit=2
        )

    def test_list_users_follows_continue_token(self):
        self.api.list_cluster_custom_object.side_effect = [
            {'items': [user_resource('alice'), user_resource('bob')], 'metadata': {'continue': 'tok1'}},
            {'items': [user_resource('carol')], 'metadata': {'continue': ''}},
        ]

        users = self.store.list_users()

        self.assertEqual([u.name for u in users], ['alice', 'bob', 'carol'])
        second_call = self.api.list_cluster_custom_object.call_args_list[1]
        self.assertEqual(second_call.kwargs['_continue'], 'tok1')

    def test_list_users_api_error(self):
        self.api.list_cluster_custom_object.side_effect = ApiException(status=403, reason='Forbidden')

        with self.assertRaises(IdentityStoreError) as ctx:
            self.store.list_users()
        self.assertEqual(ctx.exception.status, 403)
        self.assertIn('Forbidden', str(ctx.exception))

    def test_delete_identity(self):
        self.store.delete_identity('ldap_provider:alice')
        self.api.delete_cluster_custom_object.assert_called_once_with(
            'user.openshift.io', 'v1', 'identities', 'ldap_provider:alice'
        )

    def test_delete_user(self):
        self.store.delete_user('alice')
        self.api.delete_cluster_custom_object.assert_called_once_with(
            'user.openshift.io', 'v1', 'users', 'alice'
        )

    def test_delete_not_found(self):
        self.api.delete_cluster_custom_object.side_effect = ApiException(status=404, reason='Not Found')
        with self.assertRaises(IdentityStoreError) as ctx:
            self.store.delete_user('ghost')
        self.assertEqual(ctx.exception.status, 404)

    def test_transport_error_converted(self):
        self.api.delete_cluster_custom_object.side_effect = MaxRetryError(None, '/apis')
        with self.assertRaises(IdentityStoreError) as ctx:
            self.store.delete_identity('ldap_provider:alice')
        self.assertIsNone(ctx.exception.status)
        self.assertIn('delete_identity failed', str(ctx.exception))

    def test_socket_error_converted(self):
        self.api.list_cluster_custom_object.side_effect = ConnectionResetError('reset by peer')
        with self.assertRaises(IdentityStoreError):
            self.store.list_users()


class TestFromKubeconfig(unittest.TestCase):
    """Test cases for client construction."""

    @patch('ldap_cleanup.identity_store.client')
    @patch('ldap_cleanup.identity_store.config')
    def test_uses_kubeconfig_path(self, mock_config, mock_client):
        mock_config.ConfigException = ConfigException

        store = IdentityStore.from_kubeconfig('/tmp/kubeconfig')

        mock_config.load_kube_config.assert_called_once()
        self.assertEqual(mock_config.load_kube_config.call_args.kwargs['config_file'], '/tmp/kubeconfig')
        mock_config.load_incluster_config.assert_not_called()
        self.assertIs(store._api, mock_client.CustomObjectsApi.return_value)

    @patch('ldap_cleanup.identity_store.client')
    @patch('ldap_cleanup.identity_store.config')
    def test_in_cluster_when_empty(self, mock_config, mock_client):
        mock_config.ConfigException = ConfigException

        IdentityStore.from_kubeconfig('')

        mock_config.load_incluster_config.assert_called_once()
        mock_config.load_kube_config.assert_not_called()

    @patch('ldap_cleanup.identity_store.client')
    @patch('ldap_cleanup.identity_store.config')
    def test_config_error(self, mock_config, mock_client):
        mock_config.ConfigException = ConfigException
        mock_config.load_incluster_config.side_effect = ConfigException('Service host/port is not set.')

        with self.assertRaises(IdentityStoreError) as ctx:
            IdentityStore.from_kubeconfig('')
        self.assertIn('in-cluster', str(ctx.exception))


if __name__ == '__main__':
    unittest.main()
