"""Join-all helper for independent store calls issued on a thread pool."""

import logging
from concurrent.futures import Executor, wait
from typing import Callable, Sequence

from ..errors import RagError, StoreError

logger = logging.getLogger(__name__)


def run_all(
    executor: Executor,
    calls: Sequence[Callable[[], object]],
    timeout: float,
    stage: str,
) -> list:
    """
    Submit every call, wait for all of them and return results in call order.

    A call that does not finish within ``timeout`` seconds cancels the rest
    and fails the stage with StoreError. Any call raising fails the stage;
    engine errors propagate unchanged, others are wrapped in StoreError.
    """
    futures = [executor.submit(call) for call in calls]
    done, not_done = wait(futures, timeout=timeout)

    if not_done:
        for future in not_done:
            future.cancel()
        logger.error(f"{stage} timed out after {timeout}s ({len(not_done)}/{len(futures)} pending)")
        raise StoreError(f"{stage} timed out after {timeout}s")

    results = []
    for future in futures:
        try:
            results.append(future.result())
        except RagError:
            raise
        except Exception as e:
            logger.error(f"{stage} failed: {e}")
            raise StoreError(f"{stage} failed: {e}") from e
    return results
