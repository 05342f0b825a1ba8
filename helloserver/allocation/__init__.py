from helloserver.allocation.loop import AllocatorLoop, LoopState, TickOutcome
from helloserver.allocation.state import AllocationSnapshot, AllocationState

__all__ = [
    "AllocationSnapshot",
    "AllocationState",
    "AllocatorLoop",
    "LoopState",
    "TickOutcome",
]
