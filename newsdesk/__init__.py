"""Newsdesk: multi-site content backend."""
