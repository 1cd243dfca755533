"""Panel-facing services: HTTP client, rule repository, batch parsing and orchestration."""
