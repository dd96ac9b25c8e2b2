"""
Import manager: coalesces, retries and time-bounds batch rule imports
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from ..config import settings
from ..exceptions import ErrorCode, ImportTimeoutError
from ..models.imports import ImportOptions, ImportResult, ImportState
from ..models.rule import get_current_timestamp_ms
from .import_export_service import ImportExportService, import_export_service

logger = logging.getLogger(__name__)


class ImportManager:
    """
    Tracks imports by key so that

    - concurrent imports with the same key share one in-flight task
    - a key imported successfully within the recent window is skipped
    - a key whose last import failed is refused when retry is disabled
    - each attempt is bounded by a timeout and retried with backoff
    """

    def __init__(
        self,
        service: Optional[ImportExportService] = None,
        max_retries: Optional[int] = None,
        backoff_base_ms: Optional[int] = None,
        backoff_max_ms: Optional[int] = None,
        recent_window_ms: Optional[int] = None,
        max_concurrent: Optional[int] = None,
        pressure_delay_ms: Optional[int] = None
    ):
        self.service = service or import_export_service
        self.max_retries = max_retries if max_retries is not None else settings.import_max_retries
        self.backoff_base_ms = backoff_base_ms if backoff_base_ms is not None else settings.import_backoff_base_ms
        self.backoff_max_ms = backoff_max_ms if backoff_max_ms is not None else settings.import_backoff_max_ms
        self.recent_window_ms = recent_window_ms if recent_window_ms is not None else settings.import_recent_window_ms
        self.max_concurrent = max_concurrent if max_concurrent is not None else settings.import_max_concurrent
        self.pressure_delay_ms = pressure_delay_ms if pressure_delay_ms is not None else settings.import_pressure_delay_ms

        self._states: Dict[str, ImportState] = {}
        self._in_flight: Dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    def is_importing(self, import_key: str) -> bool:
        state = self._states.get(import_key)
        return state.is_importing if state else False

    def was_recently_imported(self, import_key: str, max_age_ms: Optional[int] = None) -> bool:
        state = self._states.get(import_key)
        if not state or not state.last_succeeded:
            return False
        window = self.recent_window_ms if max_age_ms is None else max_age_ms
        return get_current_timestamp_ms() - state.last_import_time < window

    def has_failed_import(self, import_key: str) -> bool:
        state = self._states.get(import_key)
        return state.last_failed if state else False

    def get_import_stats(self, import_key: str) -> Optional[ImportState]:
        return self._states.get(import_key)

    def get_all_import_states(self) -> Dict[str, ImportState]:
        return dict(self._states)

    def has_active_imports(self) -> bool:
        return any(state.is_importing for state in self._states.values())

    def clear_import_state(self, import_key: Optional[str] = None):
        """Forget one key, or every key"""
        if import_key:
            self._states.pop(import_key, None)
            self._in_flight.pop(import_key, None)
        else:
            self._states.clear()
            self._in_flight.clear()

    async def wait_for_all_imports(self):
        """Wait for every in-flight import, ignoring their outcomes"""
        tasks = list(self._in_flight.values())
        if tasks:
            logger.info(f"Waiting for {len(tasks)} active imports to complete")
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    async def import_rules(
        self,
        import_key: str,
        rules: List[Any],
        options: Optional[ImportOptions] = None,
        force: bool = False,
        retry_on_failure: bool = True,
        max_retries: Optional[int] = None,
        timeout_ms: Optional[int] = None
    ) -> ImportResult:
        """
        Import a batch of rules under an import key

        Args:
            import_key: Key identifying this batch (e.g. a package id)
            rules: Raw rule definitions
            options: Import options
            force: Ignore in-flight, recent and failed state
            retry_on_failure: Allow a new attempt after a failed import
            max_retries: Attempts before giving up
            timeout_ms: Bound on each attempt

        Returns:
            ImportResult of the import (or of the shared in-flight import)

        Raises:
            ImportTimeoutError: If the last attempt timed out
            Exception: The last error if every attempt failed
        """
        active = sum(1 for state in self._states.values() if state.is_importing)
        if active >= self.max_concurrent:
            logger.warning(f"System under import pressure ({active} active), delaying import for {import_key}")
            await asyncio.sleep(self.pressure_delay_ms / 1000)

        existing = self._in_flight.get(import_key)
        if existing is not None and not force:
            logger.info(f"Import already in progress for {import_key}, waiting")
            return await asyncio.shield(existing)

        if self.was_recently_imported(import_key) and not force:
            logger.info(f"Import recently completed for {import_key}, skipping")
            return ImportResult(success=True, skipped=len(rules))

        if self.has_failed_import(import_key) and not retry_on_failure and not force:
            logger.info(f"Import previously failed for {import_key}, skipping")
            result = ImportResult(success=False, failed=len(rules))
            result.add_error("Previous import failed", ErrorCode.PREVIOUS_FAILURE, import_key)
            return result

        previous = self._states.get(import_key) or ImportState()
        self._states[import_key] = previous.model_copy(update={
            "is_importing": True,
            "import_count": previous.import_count + 1,
        })

        task = asyncio.create_task(self._run(import_key, rules, options, max_retries, timeout_ms))
        self._in_flight[import_key] = task
        return await asyncio.shield(task)

    async def _run(self, import_key, rules, options, max_retries, timeout_ms) -> ImportResult:
        try:
            result = await self._execute_with_retries(import_key, rules, options, max_retries, timeout_ms)
        except Exception as e:
            state = self._states.get(import_key)
            if state:
                state.is_importing = False
                state.last_failed = True
                state.last_succeeded = False
                state.last_error = str(e)
            logger.error(f"Import failed for {import_key}: {e}")
            raise
        finally:
            if self._in_flight.get(import_key) is asyncio.current_task():
                self._in_flight.pop(import_key, None)

        state = self._states.get(import_key)
        if state:
            state.is_importing = False
            state.last_import_time = get_current_timestamp_ms()
            state.last_succeeded = True
            state.last_failed = False
            state.last_error = None
        logger.info(
            f"Import completed for {import_key}: {result.imported} imported, "
            f"{result.failed} failed, {len(result.errors)} errors"
        )
        return result

    def backoff_delay_ms(self, attempt: int) -> int:
        """Exponential backoff for the given 1-based attempt, capped"""
        return min(self.backoff_base_ms * (2 ** (attempt - 1)), self.backoff_max_ms)

    async def _execute_with_retries(self, import_key, rules, options, max_retries, timeout_ms) -> ImportResult:
        attempts = max(1, max_retries if max_retries is not None else self.max_retries)
        timeout = (timeout_ms or settings.import_timeout_ms) / 1000
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                logger.debug(f"Import attempt {attempt}/{attempts} for {import_key}")
                return await asyncio.wait_for(self.service.import_rules(rules, options), timeout=timeout)
            except asyncio.TimeoutError:
                last_error = ImportTimeoutError(f"Import timeout after {int(timeout * 1000)}ms", rule_id=import_key)
            except Exception as e:
                last_error = e

            logger.warning(f"Import attempt {attempt} failed for {import_key}: {last_error}")
            if attempt < attempts:
                delay = self.backoff_delay_ms(attempt)
                logger.info(f"Waiting {delay}ms before retrying {import_key}")
                await asyncio.sleep(delay / 1000)

        raise last_error


# Global import manager instance
import_manager = ImportManager()
