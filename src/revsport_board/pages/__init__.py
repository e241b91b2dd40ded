"""Parsers for the RevSport pages the service scrapes."""
