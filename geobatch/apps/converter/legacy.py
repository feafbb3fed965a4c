"""
Single-pass conversion for small datasets.

Every row gets exactly one lookup; there is no checkpoint, no retry and no
continuation, so the whole region must fit in one invocation. A lookup that
raises marks its row as an error; rows converted so far are always written.
"""

import logging
import time

from geobatch.apps.converter.processor import parse_coordinates
from geobatch.utils.geocoder import Geocoder
from geobatch.utils.grid import Grid
from geobatch.utils.schemas import DatasetRef, JobMode, LookupResult

logger = logging.getLogger(__name__)


def _marker(result: LookupResult) -> str:
    return f"Error: {result.raw_status or result.status.value}"


def _failure_marker(error: Exception) -> str:
    return f"Error: {str(error) or type(error).__name__}"


def run_single_pass(
    mode: JobMode,
    dataset: DatasetRef,
    geocoder: Geocoder,
    grid: Grid,
    region: str,
) -> tuple[int, int]:
    """
    Convert every row of `dataset` in one go.

    Returns:
        (processed_rows, error_rows)
    """
    if mode is JobMode.IDLE:
        raise ValueError("Single pass needs a conversion mode")

    start_time = time.time()
    processed = 0
    errors = 0
    address_col, lat_col, lng_col = (dataset.column(i) for i in (1, 2, 3))

    try:
        for row in range(1, dataset.row_count + 1):
            sheet_row = dataset.sheet_row(row)
            processed += 1

            if mode is JobMode.ADDRESS_TO_POSITION:
                address = grid.get(sheet_row, address_col).strip()
                if not address:
                    continue
                try:
                    result = geocoder.geocode(address, region)
                except Exception as e:
                    logger.warning("Lookup for row %d raised %s: %s", sheet_row, type(e).__name__, e)
                    grid.set(sheet_row, lat_col, _failure_marker(e))
                    errors += 1
                    continue
                if result.ok and result.latitude is not None and result.longitude is not None:
                    grid.set(sheet_row, lat_col, result.latitude)
                    grid.set(sheet_row, lng_col, result.longitude)
                else:
                    grid.set(sheet_row, lat_col, _marker(result))
                    errors += 1
            else:
                raw_lat = grid.get(sheet_row, lat_col).strip()
                raw_lng = grid.get(sheet_row, lng_col).strip()
                if not raw_lat or not raw_lng:
                    continue
                coordinates = parse_coordinates(raw_lat, raw_lng)
                if coordinates is None:
                    grid.set(sheet_row, address_col, "Error: invalid coordinates")
                    errors += 1
                    continue
                try:
                    result = geocoder.reverse_geocode(coordinates[0], coordinates[1], region)
                except Exception as e:
                    logger.warning("Lookup for row %d raised %s: %s", sheet_row, type(e).__name__, e)
                    grid.set(sheet_row, address_col, _failure_marker(e))
                    errors += 1
                    continue
                if result.ok and result.formatted_address:
                    grid.set(sheet_row, address_col, result.formatted_address)
                else:
                    grid.set(sheet_row, address_col, _marker(result))
                    errors += 1

        status_row, status_col = dataset.status_cell
        grid.set(status_row, status_col, f"Finished: {processed} rows, {errors} errors")
    finally:
        grid.flush()

    logger.info(
        "Single pass complete: rows=%d, errors=%d, elapsed=%.3fs",
        processed, errors, time.time() - start_time,
    )
    return processed, errors
