"""HTTP surface: inbound webhooks and account endpoints."""
