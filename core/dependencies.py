from core.settings import Settings

# Settings singleton
_settings = None


def get_settings() -> Settings:
    """Dependency that provides application settings."""
    assert (
        _settings is not None
    ), "Settings not initialized. Make sure startup() was called."
    return _settings


def init_settings(settings: Settings | None = None):
    """Initialize settings singleton, optionally with a prebuilt instance."""
    global _settings
    _settings = settings or Settings()


def get_settings_or_default() -> Settings:
    """Settings for code paths that may run outside the app (scripts, services)."""
    if _settings is None:
        init_settings()
    return _settings


def clear_settings():
    """Clear settings singleton."""
    global _settings
    _settings = None
