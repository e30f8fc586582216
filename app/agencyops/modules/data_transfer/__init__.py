"""
Data transfer module.

Scope:
- Full JSON export of every business table (also served as backups)
- JSON import with dependency-ordered upsert and per-record error reporting
- Per-table JSON/CSV backup downloads
"""
