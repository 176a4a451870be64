"""Run-scoped headless browser shared by every node of a run.

Playwright's sync objects belong to the thread that created them, so the
handle owns one worker thread and every browser operation is submitted to
it. Nodes therefore serialize their browser work while other work in the
run keeps going in parallel.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

from .exceptions import ResourceError
from .logging import get_logger

logger = get_logger(__name__)


class PlaywrightSession:
    """A started Playwright driver and one Chromium browser."""

    def __init__(self, headless: bool = True):
        from playwright.sync_api import sync_playwright

        self._playwright = sync_playwright().start()
        try:
            self.browser = self._playwright.chromium.launch(headless=headless)
        except Exception:
            self._playwright.stop()
            raise

    def close(self) -> None:
        try:
            self.browser.close()
        finally:
            self._playwright.stop()


SessionFactory = Callable[[], Any]


class AutomationHandle:
    """
    Lazily started browser owned by one run.

    ``run`` starts the browser on first use. ``release`` closes it and is
    safe to call any number of times; only the first call does work. Any
    use after release raises ResourceError.
    """

    def __init__(self, session_factory: Optional[SessionFactory] = None, headless: bool = True):
        self._session_factory = session_factory or (lambda: PlaywrightSession(headless=headless))
        self._session: Optional[Any] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.RLock()
        self._released = False

    @property
    def started(self) -> bool:
        return self._session is not None

    @property
    def released(self) -> bool:
        return self._released

    def run(self, operation: Callable[..., Any], *args, **kwargs) -> Any:
        """Call ``operation(browser, *args, **kwargs)`` on the browser thread and return its result."""
        with self._lock:
            if self._released:
                raise ResourceError("Automation handle used after release", resource_type="browser")
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="automation")
            executor = self._executor
        return executor.submit(self._call, operation, args, kwargs).result()

    def _call(self, operation: Callable[..., Any], args, kwargs) -> Any:
        if self._session is None:
            try:
                self._session = self._session_factory()
            except Exception as e:
                raise ResourceError(f"Failed to start browser: {str(e)}", resource_type="browser")
            logger.info("Started shared browser")
        return operation(self._session.browser, *args, **kwargs)

    def release(self) -> None:
        """Close the browser if it was started; later calls are no-ops."""
        with self._lock:
            if self._released:
                return
            self._released = True
            executor = self._executor

        if executor is None:
            return
        try:
            executor.submit(self._close_session).result()
        except Exception as e:
            logger.error(f"Failed to close shared browser: {str(e)}")
        finally:
            executor.shutdown(wait=True)

    def _close_session(self) -> None:
        if self._session is None:
            return
        session, self._session = self._session, None
        session.close()
        logger.info("Closed shared browser")
