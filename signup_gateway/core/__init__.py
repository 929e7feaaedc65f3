"""Core services: CoreAPI client, provisioning pipeline, accounts and identity."""
