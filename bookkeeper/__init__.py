"""Bookkeeper: reading notes with AI-assisted answers."""
