from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def map_with_concurrency(
    items: Sequence[T],
    worker: Callable[[T, int], R],
    limit: int,
) -> List[R]:
    """
    Run `worker(item, index)` over items with at most `limit` in flight.

    Results come back in input order regardless of completion order.
    The first worker exception is re-raised once all submitted work has
    finished.
    """
    if not items:
        return []
    limit = max(1, min(int(limit), len(items)))
    with ThreadPoolExecutor(max_workers=limit) as pool:
        futures = [pool.submit(worker, item, i) for i, item in enumerate(items)]
        # preserve deterministic ordering by index
        return [f.result() for f in futures]
