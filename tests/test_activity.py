#!/usr/bin/env python3
"""
Unit tests for the activity evaluator.
"""

import os
import sys
import logging
import unittest
from datetime import datetime, timezone

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ldap_cleanup.activity import ActivityEvaluator, days_since
from ldap_cleanup.ldap_client import DirectoryEntry

NOW = datetime(2024, 12, 6, 13, 12, 43, tzinfo=timezone.utc)


class TestActivityEvaluator(unittest.TestCase):
    """Test cases for ActivityEvaluator."""

    def setUp(self):
        self.logger = logging.getLogger('test_activity')
        self.evaluator = ActivityEvaluator(logger=self.logger, clock=lambda: NOW)
        self.entry = DirectoryEntry('CN=Alice,OU=Users,DC=example,DC=com', {
            'cn': 'Alice',
            'sAMAccountName': 'alice',
            'lastLogon': '133753723630000000',
            'lastLogonTimestamp': '133753723630000000',
            'accountExpires': '9223372036854775807',
        })

    def test_no_entries_is_eligible(self):
        self.assertTrue(self.evaluator.evaluate([]))

    def test_present_entry_is_not_eligible(self):
        self.assertFalse(self.evaluator.evaluate([self.entry]))

    def test_stale_logon_still_not_eligible(self):
        """An old lastLogon does not make an existing account removable."""
        self.entry.attributes['lastLogon'] = '116444736000000000'
        self.entry.attributes['lastLogonTimestamp'] = '116444736000000000'
        self.assertFalse(self.evaluator.evaluate([self.entry]))

    def test_entry_without_timestamps_is_not_eligible(self):
        entry = DirectoryEntry('CN=Bob,OU=Users,DC=example,DC=com', {'sAMAccountName': 'bob'})
        self.assertFalse(self.evaluator.evaluate([entry]))

    def test_multiple_entries(self):
        other = DirectoryEntry('CN=Alice2,OU=Users,DC=example,DC=com', {'cn': 'Alice'})
        self.assertFalse(self.evaluator.evaluate([self.entry, other]))

    def test_describe_decodes_timestamps(self):
        activity = self.evaluator.describe(self.entry)
        expected = datetime(2024, 11, 6, 13, 12, 43, tzinfo=timezone.utc)
        self.assertEqual(activity.dn, 'CN=Alice,OU=Users,DC=example,DC=com')
        self.assertEqual(activity.cn, 'Alice')
        self.assertEqual(activity.sam_account_name, 'alice')
        self.assertEqual(activity.last_logon, expected)
        self.assertEqual(activity.last_logon_timestamp, expected)
        self.assertIsNone(activity.account_expires)

    def test_describe_account_expiry(self):
        self.entry.attributes['accountExpires'] = '133753723630000000'
        activity = self.evaluator.describe(self.entry)
        self.assertEqual(activity.account_expires, datetime(2024, 11, 6, 13, 12, 43, tzinfo=timezone.utc))

    def test_absent_attribute_logged_at_debug(self):
        del self.entry.attributes['lastLogon']
        with self.assertLogs(self.logger, level='DEBUG') as logs:
            activity = self.evaluator.describe(self.entry)
        self.assertIsNone(activity.last_logon)
        self.assertTrue(any('lastLogon not set' in line for line in logs.output))
        self.assertFalse(any(line.startswith('ERROR') for line in logs.output))

    def test_unparsable_attribute_logged_as_error(self):
        self.entry.attributes['lastLogonTimestamp'] = 'garbage'
        with self.assertLogs(self.logger, level='ERROR') as logs:
            activity = self.evaluator.describe(self.entry)
        self.assertIsNone(activity.last_logon_timestamp)
        self.assertIn('lastLogonTimestamp', logs.output[0])

    def test_unparsable_attribute_does_not_change_verdict(self):
        self.entry.attributes['lastLogon'] = ''
        with self.assertLogs(self.logger, level='ERROR'):
            self.assertFalse(self.evaluator.evaluate([self.entry]))


class TestDaysSince(unittest.TestCase):
    """Test cases for days_since."""

    def test_past(self):
        value = datetime(2024, 11, 6, 13, 12, 43, tzinfo=timezone.utc)
        self.assertEqual(days_since(value, NOW), 30)

    def test_future(self):
        value = datetime(2024, 12, 8, 13, 12, 43, tzinfo=timezone.utc)
        self.assertEqual(days_since(value, NOW), -2)

    def test_none(self):
        self.assertIsNone(days_since(None, NOW))


if __name__ == '__main__':
    unittest.main()
