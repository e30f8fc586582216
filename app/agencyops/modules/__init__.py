"""
Feature modules live under this package.

Keep module boundaries clean: each module owns its models/service/routes,
while reusing platform primitives (auth, RBAC, audit, DB session, CSV helpers).
"""
