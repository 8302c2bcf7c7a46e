"""Persistence for the concierge: message log, profiles, knowledge, catalog."""
