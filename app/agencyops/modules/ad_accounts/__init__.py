"""Ad accounts (per-platform advertising accounts, optionally owned by a client)."""
