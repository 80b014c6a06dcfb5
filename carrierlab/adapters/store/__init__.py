"""Result store adapters for persisting test configs and samples.

- SQLite (zero-config, single-file)
"""
