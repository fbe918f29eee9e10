"""YAML configuration for ZoneWatch sessions."""

__all__ = ["CONFIG_DIR_ENV", "ConfigController", "default_config_dir"]


def __getattr__(name: str):
    if name in __all__:
        from config import controller

        return getattr(controller, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
