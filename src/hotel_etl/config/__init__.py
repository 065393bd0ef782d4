"""Runtime settings and TOML run profiles."""
