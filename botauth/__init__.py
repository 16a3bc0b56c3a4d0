"""Chat-bot command authorization: static rosters, LDAP groups and SSO fallback."""
