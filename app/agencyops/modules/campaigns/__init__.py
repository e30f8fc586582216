"""
Campaigns module.

Scope:
- Campaigns CRUD, comment log, per-ad-account analytics
- Ad copy sets (exactly one active set per campaign)
- Daily spend calendar; campaign.spend is the sum of its daily rows
- CSV export/import
"""
