"""Shared helpers: IDs, constants, errors, configuration and schema validation."""
