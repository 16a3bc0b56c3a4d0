"""Authorization / policy layer (env/ConfigMap driven).

Admins control:
- which users are readers or power users (static rosters)
- which LDAP groups grant each tier
- whether authorization is enforced at all
"""
