"""
Permissions module.

Scope:
- Pages and the role/page permission matrix (view/edit/delete per role)
- Idempotent seeding of the default pages and matrix
- Self-service permission check for the current user
"""
