"""helloserver: demonstration HTTP service that grows its memory on a timer.

The process serves a JSON status document on every path while a background
loop allocates a fixed-size chunk per interval until a target count is
reached. Logs, traces and metrics go through the OpenTelemetry and
Prometheus stacks.
"""

__version__ = "1.0.0"

__all__ = ["allocation", "config", "errors", "main", "runtime", "server"]
