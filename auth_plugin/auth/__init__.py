"""Authentication domain: tokens, credential stores, providers, routes."""
