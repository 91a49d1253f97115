from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import date

from sqlalchemy.orm import Session

from app.core.config import NeedsEngineSettings
from app.schemas.capacity import SequenceFeedRow
from app.schemas.demand import DemandFeedRow
from app.schemas.needs import NeedsReport, NeedsRunParams
from app.services.feeds import DataUnavailableError, fetch_demand_feed, fetch_sequence_feed
from app.services.needs_engine import compute_needs_report, demand_fetch_window


logger = logging.getLogger(__name__)

SequenceSource = Callable[[NeedsRunParams], list[SequenceFeedRow]]
DemandSource = Callable[[NeedsRunParams, date, date], list[DemandFeedRow]]


class StaleRunError(Exception):
    """A run was superseded by a newer request before it could publish."""


class NeedsRunCoordinator:
    """Runs needs reports for overlapping requests, last request wins.

    Starting a run cancels the computation of any run still in flight; a
    superseded run raises StaleRunError instead of returning, and never
    replaces `latest_report`. Both feeds are fetched concurrently in worker
    threads.
    """

    def __init__(
        self,
        sequence_source: SequenceSource,
        demand_source: DemandSource,
        settings: NeedsEngineSettings | None = None,
    ) -> None:
        self._sequence_source = sequence_source
        self._demand_source = demand_source
        self._settings = settings
        self._generation = 0
        self._current: asyncio.Future | None = None
        self._latest: NeedsReport | None = None

    @classmethod
    def from_session_factory(
        cls,
        session_factory: Callable[[], Session],
        settings: NeedsEngineSettings | None = None,
    ) -> "NeedsRunCoordinator":
        """Feeds read through their own session each, so they can run in parallel."""

        def load_sequences(params: NeedsRunParams) -> list[SequenceFeedRow]:
            db = session_factory()
            try:
                return fetch_sequence_feed(db, tool_filter=params.tool_filter)
            finally:
                db.close()

        def load_demand(params: NeedsRunParams, start: date, end: date) -> list[DemandFeedRow]:
            db = session_factory()
            try:
                return fetch_demand_feed(
                    db,
                    period_start=start,
                    period_end=end,
                    tool_filter=params.tool_filter,
                    client_filter=params.client_filter,
                )
            finally:
                db.close()

        return cls(load_sequences, load_demand, settings=settings)

    @property
    def latest_report(self) -> NeedsReport | None:
        return self._latest

    async def run(self, params: NeedsRunParams, limit: int | None = None) -> NeedsReport:
        self._generation += 1
        generation = self._generation

        previous = self._current
        if previous is not None and not previous.done():
            previous.cancel()

        task = asyncio.ensure_future(self._compute(params, limit))
        self._current = task

        try:
            report = await task
        except asyncio.CancelledError:
            if generation != self._generation:
                logger.warning("Needs run for period_end=%s superseded", params.period_end)
                raise StaleRunError("superseded by a newer run") from None
            raise

        if generation != self._generation:
            logger.warning("Discarding stale needs report for period_end=%s", params.period_end)
            raise StaleRunError("superseded by a newer run")

        self._latest = report
        return report

    async def _compute(self, params: NeedsRunParams, limit: int | None) -> NeedsReport:
        start, end = demand_fetch_window(params)

        sequence_result, demand_result = await asyncio.gather(
            asyncio.to_thread(self._sequence_source, params),
            asyncio.to_thread(self._demand_source, params, start, end),
            return_exceptions=True,
        )

        sequence_rows = self._unwrap("sequences", sequence_result)
        demand_rows = self._unwrap("demand", demand_result)

        return compute_needs_report(
            sequence_rows,
            demand_rows,
            params,
            settings=self._settings,
            limit=limit,
        )

    @staticmethod
    def _unwrap(feed: str, result):
        if isinstance(result, DataUnavailableError):
            logger.warning("Running needs report without %s data: %s", feed, result)
            return None
        if isinstance(result, BaseException):
            raise result
        return result
