import asyncio
from typing import Any, Callable, Dict


async def parallel(**fetches: Callable[[], Any]) -> Dict[str, Any]:
    """Run blocking calls on worker threads and collect their results by name.

    Fails fast: the first exception propagates, the other tasks are cancelled
    and whatever they return is discarded.
    """
    names = list(fetches)
    tasks = [asyncio.ensure_future(asyncio.to_thread(fn)) for fn in fetches.values()]
    try:
        results = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        raise
    return dict(zip(names, results))
