"""Ispecia CRM API package."""
