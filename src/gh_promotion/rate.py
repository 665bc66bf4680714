from aiolimiter import AsyncLimiter


class RateGate:
    """Lets an action through at most once per ``interval`` seconds.

    Shared by every request in the process. ``try_acquire`` never waits: a
    caller that finds the window used up simply does not run the action.
    """

    def __init__(self, interval: float = 60.0):
        self.limiter = AsyncLimiter(1, interval)

    async def try_acquire(self) -> bool:
        # has_capacity and acquire run without an await point in between when
        # capacity is available, so no other task can take the same slot
        if not self.limiter.has_capacity():
            return False
        await self.limiter.acquire()
        return True
