"""Collaborator adapters (Shopify Admin API, email)."""
