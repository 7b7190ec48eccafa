"""
Store resources live under this package.

Each module owns its models/service/routes and reuses the platform pieces
(auth, RBAC, activity log, storage, DB session) from `app.store`.
"""
