from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

import pandas as pd

from salesperf.dashboard import cached_dashboard
from salesperf.data import Dataset, empty_records, normalize_frame, normalize_records
from salesperf.filters import FilterState
from salesperf.periods import PeriodInfo, resolve_period


logger = logging.getLogger(__name__)

Fetcher = Callable[[str], Iterable[Mapping[str, Any]]]


class DashboardSession:
    """Current dataset + filter state, with memoized derived payloads.

    Every mutation replaces a whole value (dataset or filters). Fetches are ticketed so that the
    most recently started fetch wins; a failed fetch keeps the last good dataset.
    """

    def __init__(self, dataset: Optional[Dataset] = None, filters: Optional[FilterState] = None):
        self.dataset = dataset if dataset is not None else Dataset(empty_records())
        self.filters = filters or FilterState()
        self.loading = False
        self.error: Optional[str] = None
        self._ticket = 0

    # ----- filters -----
    @property
    def period_info(self) -> PeriodInfo:
        return resolve_period(self.filters.period)

    def set_filters(self, filters: FilterState) -> None:
        self.filters = filters

    def apply_filters(self, **changes: Any) -> FilterState:
        self.filters = self.filters.apply(**changes)
        return self.filters

    def reset_filters(self) -> None:
        self.filters = FilterState()

    def set_chart_filter(self, key: str, value: Optional[str]) -> None:
        self.filters = self.filters.with_chart_filter(key, value)

    def clear_chart_filters(self) -> None:
        self.filters = self.filters.without_chart_filters()

    # ----- data -----
    def _normalize(self, records: Any) -> pd.DataFrame:
        if isinstance(records, pd.DataFrame):
            return records if "shipment_ts" in records.columns else normalize_frame(records)
        if isinstance(records, Mapping):
            records = records.get("records")
        if records is None or isinstance(records, (str, bytes)):
            raise TypeError(f"fetch returned {type(records).__name__}, expected a list of records")
        rows = list(records)
        if rows and not any(isinstance(row, Mapping) for row in rows):
            raise ValueError("fetch returned no record rows")
        return normalize_records(rows)

    def load_records(self, records: pd.DataFrame | Iterable[Mapping[str, Any]], files: Iterable[str] = ()) -> None:
        self.dataset = Dataset(self._normalize(records), tuple(files))
        self.error = None

    def begin_fetch(self) -> int:
        self._ticket += 1
        self.loading = True
        return self._ticket

    def complete_fetch(self, ticket: int, rows: Any) -> bool:
        if ticket != self._ticket:
            logger.info("discarding superseded fetch %d (latest %d)", ticket, self._ticket)
            return False
        try:
            frame = self._normalize(rows)
        except (TypeError, ValueError) as exc:
            logger.warning("rejecting fetched payload; keeping %d cached records: %s", len(self.dataset), exc)
            self.fail_fetch(ticket, exc)
            return False
        self.load_records(frame)
        self.loading = False
        return True

    def fail_fetch(self, ticket: int, error: BaseException) -> bool:
        if ticket != self._ticket:
            return False
        self.loading = False
        self.error = str(error) or type(error).__name__
        return True

    def refresh(self, fetcher: Fetcher) -> bool:
        ticket = self.begin_fetch()
        try:
            rows = fetcher(self.filters.period)
        except Exception as exc:
            logger.exception("record fetch failed; keeping %d cached records", len(self.dataset))
            self.fail_fetch(ticket, exc)
            return False
        return self.complete_fetch(ticket, rows)

    # ----- derived -----
    def dashboard(self, *, include_charts: bool = True) -> Dict[str, Any]:
        payload = dict(cached_dashboard(self.dataset, self.filters, include_charts))
        payload["loading"] = self.loading
        payload["error"] = self.error
        return payload
