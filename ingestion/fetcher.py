from __future__ import annotations

import asyncio
import re
import threading
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import List, Optional, Protocol

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from common.config import BrowserConfig, yaml_config
from common.errors import FetchBlockedError, FetchTimeoutError
from common.logger import get_logger

log = get_logger(__name__)

# Markers of anti-bot interstitials (Cloudflare, DDoS-Guard, generic captchas).
CHALLENGE_MARKERS = re.compile(
    r"cf-challenge|cf_chl_|challenge-platform|g-recaptcha|h-captcha|hcaptcha|"
    r"ddos-guard|are you a robot|verify you are human|checking your browser",
    re.IGNORECASE,
)
CHALLENGE_TITLES = re.compile(
    r"^(just a moment|attention required|access denied|ddos-guard|captcha)",
    re.IGNORECASE,
)


class Fetcher(Protocol):
    def fetch(self, url: str) -> str:
        """Return rendered HTML; raise FetchTimeoutError or FetchBlockedError."""
        ...


def looks_like_challenge(html: str, title: str = "") -> bool:
    if title and CHALLENGE_TITLES.match(title.strip()):
        return True
    # challenge pages are small; real articles may mention captchas in passing
    return len(html) < 50_000 and bool(CHALLENGE_MARKERS.search(html))


def check_status(url: str, status: Optional[int]) -> None:
    if status is not None and status >= 400:
        raise FetchBlockedError(f"{url}: HTTP {status}")


class BrowserPool:
    def __init__(self, config: BrowserConfig | None = None):
        """
        Process-wide headless Chromium with at most ``max_tabs`` pages open.

        Playwright runs on a private event loop thread; callers on any thread
        block in ``fetch`` and queue for a free tab when all are busy. The
        browser is launched on first use and torn down by ``close``.
        """
        self.config = config or yaml_config.browser
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._tabs: Optional[asyncio.Semaphore] = None
        self._closed = False

    @property
    def started(self) -> bool:
        return self._loop is not None

    def __enter__(self) -> "BrowserPool":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _ensure_started(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._closed:
                raise RuntimeError("BrowserPool is closed")
            if self._loop is not None:
                return self._loop

            loop = asyncio.new_event_loop()
            thread = threading.Thread(
                target=loop.run_forever, name="browser-pool", daemon=True
            )
            thread.start()
            launch = asyncio.run_coroutine_threadsafe(self._launch(), loop)
            try:
                launch.result(timeout=self.config.launch_timeout_s)
            except BaseException:
                launch.cancel()
                # the driver may be up even though Chromium is not
                self._stop_loop(loop, thread)
                raise
            self._loop, self._thread = loop, thread
            return loop

    async def _launch(self) -> None:
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.config.headless, args=list(self.config.launch_args)
        )
        self._tabs = asyncio.Semaphore(self.config.max_tabs)
        log.info(
            "Launched headless Chromium (max %d concurrent tabs)", self.config.max_tabs
        )

    def fetch(self, url: str) -> str:
        try:
            loop = self._ensure_started()
        except (PlaywrightError, FutureTimeoutError) as e:
            raise FetchBlockedError(f"{url}: browser unavailable ({e})") from e
        return asyncio.run_coroutine_threadsafe(self._fetch(url), loop).result()

    async def _fetch(self, url: str) -> str:
        async with self._tabs:
            opened: List[BrowserContext] = []
            try:
                return await asyncio.wait_for(
                    self._render(url, opened), timeout=self.config.fetch_timeout_s
                )
            except (asyncio.TimeoutError, PlaywrightTimeoutError) as e:
                raise FetchTimeoutError(
                    f"{url}: no render within {self.config.fetch_timeout_s}s"
                ) from e
            except PlaywrightError as e:
                # DNS failures, refused connections, aborted navigations
                raise FetchBlockedError(f"{url}: {e.message}") from e
            finally:
                for context in opened:
                    await self._close_context(context, url)

    async def _close_context(self, context: BrowserContext, url: str) -> None:
        try:
            await asyncio.wait_for(context.close(), timeout=self.config.fetch_timeout_s)
        except (asyncio.TimeoutError, PlaywrightError) as e:
            log.warning("Could not close browser context for %s: %s", url, e)

    async def _render(self, url: str, opened: List[BrowserContext]) -> str:
        context = await self._browser.new_context(user_agent=self.config.user_agent)
        opened.append(context)
        page = await context.new_page()

        timeout_ms = self.config.fetch_timeout_s * 1000
        response = await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        check_status(url, response.status if response else None)

        await self._settle(page)
        html = await page.content()
        if looks_like_challenge(html, await page.title()):
            raise FetchBlockedError(f"{url}: bot challenge page")
        log.info("Rendered %s (%d chars)", url, len(html))
        return html

    async def _settle(self, page: Page) -> None:
        if self.config.settle == "networkidle":
            try:
                await page.wait_for_load_state(
                    "networkidle", timeout=self.config.settle_timeout_ms
                )
            except PlaywrightTimeoutError:
                # long-polling pages never go idle; take what has rendered
                log.debug("Network never went idle on %s", page.url)
        if self.config.settle_delay_ms:
            await page.wait_for_timeout(self.config.settle_delay_ms)

    async def _shutdown(self) -> None:
        if self._browser is not None:
            await self._browser.close()
        if self._playwright is not None:
            await self._playwright.stop()
        self._browser = self._playwright = None

    def _stop_loop(self, loop: asyncio.AbstractEventLoop, thread: threading.Thread) -> None:
        try:
            asyncio.run_coroutine_threadsafe(self._shutdown(), loop).result(
                timeout=self.config.launch_timeout_s
            )
        except (PlaywrightError, FutureTimeoutError) as e:
            log.warning("Browser did not shut down cleanly: %s", e)
        finally:
            loop.call_soon_threadsafe(loop.stop)
            thread.join()
            loop.close()

    def close(self) -> None:
        with self._lock:
            self._closed = True
            loop, thread = self._loop, self._thread
            self._loop = self._thread = None
        if loop is None:
            return
        self._stop_loop(loop, thread)
        log.info("Browser pool shut down")
