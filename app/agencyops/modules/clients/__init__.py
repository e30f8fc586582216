"""
Clients module.

Scope:
- Clients CRUD under /api/clients
- CSV export/import (upsert by Client ID)
"""
