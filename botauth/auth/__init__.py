"""
Identity sources used by command authorization.

- LDAP group membership (optional, bound once at startup).
- SSO login handshake backed by per-user credential records in the bot brain.
"""
