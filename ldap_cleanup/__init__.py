"""
LDAP User Cleanup - Remove OpenShift users and identities that no longer exist in LDAP.

This package compares the users of an OpenShift cluster that log in through an
LDAP identity provider against the directory, and prunes the ones whose
directory account is gone.
"""

__version__ = "1.0.0"
