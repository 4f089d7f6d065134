import asyncio

from utils.logger import log_info


async def wait(milliseconds: int) -> None:
    """Suspend the current task for the given number of milliseconds."""
    log_info(f"Waiting for {milliseconds} milliseconds...")
    await asyncio.sleep(max(0, milliseconds) / 1000.0)
