from cmms.core.clock import Clock, system_clock


def get_clock() -> Clock:
    """Overridden in tests through app.dependency_overrides."""
    return system_clock
