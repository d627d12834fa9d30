"""
Test support utilities for logsync tests.

Fakes for the HTTP collaborators live in :mod:`tests._support.fakes`.
"""
