"""Notification dashboard (Flask JSON API)."""
