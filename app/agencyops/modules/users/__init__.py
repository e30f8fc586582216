"""User accounts and per-user sidebar menu permissions."""
