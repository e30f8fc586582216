"""Telegram notifications: bot token, destination chat ids, and a test-message sender."""
