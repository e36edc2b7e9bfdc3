import asyncio
from collections import deque
from typing import Optional, Tuple

import pandas as pd

from clipintel import constants
from clipintel.models import AnalysisResult


class AnalysisHistory:
    """
    Bounded, append-only record of analysis results.

    Holds at most ``capacity`` results; appending beyond that evicts the
    oldest. Writers serialize on an asyncio lock, readers get tuples.
    """

    def __init__(self, capacity: int = constants.HISTORY_CAPACITY):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._results: deque = deque(maxlen=capacity)
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._results)

    async def append(self, result: AnalysisResult) -> None:
        async with self._lock:
            self._results.append(result)

    async def clear(self) -> None:
        async with self._lock:
            self._results.clear()

    def snapshot(self) -> Tuple[AnalysisResult, ...]:
        """Results from oldest to newest."""
        return tuple(self._results)

    def latest_for(self, url: str) -> Optional[AnalysisResult]:
        for result in reversed(self.snapshot()):
            if result.url == url:
                return result
        return None

    def to_frame(self) -> pd.DataFrame:
        """
        Export the history as a DataFrame, one row per result.

        Returns:
            DataFrame ordered from oldest to newest
        """
        records = [result.to_record() for result in self.snapshot()]
        return pd.DataFrame.from_records(records)
