"""
Record Processor

Geocodes one row of a dataset region and writes the outcome back into the
row's output cells.

Column roles:
- address_to_position: reads column 1, writes latitude/longitude to columns 2/3
- position_to_address: reads columns 2/3, writes the address to column 1

Errors are written as marker text into the first output cell so they stay
visible in place.
"""

import logging
import random
import time
from typing import Callable, Optional

from geobatch.apps.converter.policy import AttemptLog, BackoffPolicy, Classification
from geobatch.utils.config import settings
from geobatch.utils.geocoder import Geocoder
from geobatch.utils.grid import Grid
from geobatch.utils.schemas import (
    DatasetRef,
    JobMode,
    LookupResult,
    LookupStatus,
    OutcomeKind,
    RecordOutcome,
)

logger = logging.getLogger(__name__)

SERVICE_ERROR_PREFIX = "Service error"
UNEXPECTED_ERROR_PREFIX = "Unexpected error"


def rejection_reason(result: LookupResult) -> str:
    status = result.raw_status or result.status.value
    if result.error_message:
        return f"{status} ({result.error_message})"
    return status


def error_marker(outcome: RecordOutcome) -> str:
    """Cell text for a failed row, keeping the underlying reason."""
    prefix = SERVICE_ERROR_PREFIX if outcome.kind is OutcomeKind.SERVICE_ERROR else UNEXPECTED_ERROR_PREFIX
    return f"{prefix}: {outcome.reason or 'unknown'}"


def parse_coordinates(latitude: str, longitude: str) -> Optional[tuple[float, float]]:
    try:
        lat, lng = float(latitude), float(longitude)
    except ValueError:
        return None
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        return None
    return lat, lng


class RecordProcessor:
    """Runs the lookup/retry loop for single rows."""

    def __init__(
        self,
        geocoder: Geocoder,
        policy: BackoffPolicy,
        region: str,
        sleep: Callable[[float], None] = time.sleep,
        request_pause: Optional[float] = None,
        jitter: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.geocoder = geocoder
        self.policy = policy
        self.region = region
        self.sleep = sleep
        self.request_pause = settings.REQUEST_PAUSE_SECONDS if request_pause is None else request_pause
        self.jitter = settings.REQUEST_PAUSE_JITTER if jitter is None else jitter
        self.rng = rng or random.Random()

    def pause_between_rows(self) -> None:
        """Courtesy pause, jittered within +/- jitter of the nominal value."""
        if self.request_pause <= 0:
            return
        factor = self.rng.uniform(1.0 - self.jitter, 1.0 + self.jitter)
        self.sleep(self.request_pause * factor)

    def process(self, grid: Grid, dataset: DatasetRef, row: int, mode: JobMode) -> RecordOutcome:
        """
        Process one row of the region.

        Args:
            grid: Open dataset grid
            dataset: Region the row belongs to
            row: 1-based row within the region
            mode: Transformation direction

        Returns:
            RecordOutcome describing what happened to the row
        """
        sheet_row = dataset.sheet_row(row)
        address_col, lat_col, lng_col = (dataset.column(i) for i in (1, 2, 3))

        if mode is JobMode.ADDRESS_TO_POSITION:
            address = grid.get(sheet_row, address_col).strip()
            if not address:
                return RecordOutcome(kind=OutcomeKind.SKIPPED_EMPTY)

            outcome = self._lookup_loop(lambda: self.geocoder.geocode(address, self.region), mode)
            first_output = lat_col
        elif mode is JobMode.POSITION_TO_ADDRESS:
            raw_lat = grid.get(sheet_row, lat_col).strip()
            raw_lng = grid.get(sheet_row, lng_col).strip()
            if not raw_lat or not raw_lng:
                return RecordOutcome(kind=OutcomeKind.SKIPPED_EMPTY)

            coordinates = parse_coordinates(raw_lat, raw_lng)
            if coordinates is None:
                outcome = RecordOutcome(
                    kind=OutcomeKind.SERVICE_ERROR,
                    reason=f"invalid coordinates '{raw_lat},{raw_lng}'",
                )
                grid.set(sheet_row, address_col, error_marker(outcome))
                return outcome

            lat, lng = coordinates
            outcome = self._lookup_loop(
                lambda: self.geocoder.reverse_geocode(lat, lng, self.region), mode
            )
            first_output = address_col
        else:
            raise ValueError(f"Cannot process rows in mode {mode.value}")

        if outcome.kind is OutcomeKind.SUCCESS:
            if mode is JobMode.ADDRESS_TO_POSITION:
                grid.set(sheet_row, lat_col, outcome.values[0])
                grid.set(sheet_row, lng_col, outcome.values[1])
            else:
                grid.set(sheet_row, address_col, outcome.values[0])
        else:
            grid.set(sheet_row, first_output, error_marker(outcome))

        if outcome.is_error:
            logger.info(
                "Row %d failed after %d attempt(s): %s", sheet_row, outcome.attempts, outcome.reason
            )

        return outcome

    def _lookup_loop(self, call: Callable[[], LookupResult], mode: JobMode) -> RecordOutcome:
        log = AttemptLog()

        while True:
            try:
                result = call()
            except Exception as e:
                # Anything raised by the call path counts as a transient fault
                classification = Classification.TRANSIENT_ERROR
                reason = str(e) or type(e).__name__
                logger.warning("Lookup raised %s: %s", type(e).__name__, reason)

                decision = self.policy.decide(classification, log)
                if decision.terminal:
                    return RecordOutcome(kind=OutcomeKind.TRANSIENT_FAILURE, reason=reason, attempts=log.attempts)
            else:
                classification = self._classify(result)

                decision = self.policy.decide(classification, log)
                if decision.terminal:
                    return self._outcome(classification, result, log, mode)

            logger.debug(
                "Retrying lookup",
                extra={"classification": classification.value, "delay": decision.delay, "attempt": log.attempts},
            )
            if decision.delay > 0:
                self.sleep(decision.delay)

    @staticmethod
    def _classify(result: LookupResult) -> Classification:
        if result.status is LookupStatus.OK:
            return Classification.SUCCESS
        if result.status is LookupStatus.OVER_QUERY_LIMIT:
            return Classification.RATE_LIMITED
        return Classification.PERMANENT_ERROR

    @staticmethod
    def _outcome(
        classification: Classification,
        result: LookupResult,
        log: AttemptLog,
        mode: JobMode,
    ) -> RecordOutcome:
        if classification is not Classification.SUCCESS:
            return RecordOutcome(
                kind=OutcomeKind.SERVICE_ERROR,
                reason=rejection_reason(result),
                attempts=log.attempts,
            )

        if mode is JobMode.ADDRESS_TO_POSITION:
            if result.latitude is None or result.longitude is None:
                return RecordOutcome(
                    kind=OutcomeKind.SERVICE_ERROR,
                    reason=f"{LookupStatus.ZERO_RESULTS.value} (no location)",
                    attempts=log.attempts,
                )
            values: tuple = (result.latitude, result.longitude)
        else:
            if not result.formatted_address:
                return RecordOutcome(
                    kind=OutcomeKind.SERVICE_ERROR,
                    reason=f"{LookupStatus.ZERO_RESULTS.value} (no address)",
                    attempts=log.attempts,
                )
            values = (result.formatted_address,)

        return RecordOutcome(kind=OutcomeKind.SUCCESS, values=values, attempts=log.attempts)
