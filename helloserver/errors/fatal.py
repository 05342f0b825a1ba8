# ------------------------------------------------------------------------------
# FILE: helloserver/errors/fatal.py
# ------------------------------------------------------------------------------
class FatalError(Exception):
    def __init__(self, message, context=None):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)

class ConfigError(FatalError):
    pass

class TelemetryError(FatalError):
    pass

class ServerError(FatalError):
    pass


class AllocationLimitReached(Exception):
    """Raised when a chunk is requested after the target count was reached."""

    def __init__(self, count, target):
        self.count = count
        self.target = target
        super().__init__(f"Allocation limit reached ({count}/{target})")
