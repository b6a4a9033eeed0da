"""
Configuration layer.

- `luminax.core.config.config.Config`: static settings from the environment.
- `luminax.core.config.manager.ConfigManager`: YAML tunables with dot-key reads.

Import the submodules directly; the logger depends on `Config`, and
`ConfigManager` depends on the logger.
"""
