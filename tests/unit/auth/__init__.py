"""
Unit tests for the authcycle auth package.

This package contains tests for:
- Credential and session ticket model
- Validity rules and the ticket skew window
- Local credential cache
- Login providers
- Reauthentication coordinator
- Session facade and startup sequence
"""
