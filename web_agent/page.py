"""
Page providers for Web Agent.

A page provider is the tab the agent drives: it can navigate, evaluate a
script and capture an image. ``PlaywrightPage`` backs it with a Playwright
page; tests use an in-memory fake.
"""

import logging
from typing import Any, Optional, Protocol, runtime_checkable

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .page_runtime import AGENT_RUNTIME_JS
from .types import BoundingBox


logger = logging.getLogger(__name__)


@runtime_checkable
class PageProvider(Protocol):
    """What the agent needs from a tab."""

    @property
    def url(self) -> str:
        ...

    async def navigate(self, url: str) -> None:
        ...

    async def evaluate_script(self, script: str) -> Any:
        ...

    async def capture_image(self, rect: Optional[BoundingBox] = None) -> Optional[bytes]:
        ...


class PlaywrightPage:
    """Page provider over a Playwright async page."""

    def __init__(self, page: Page, navigation_timeout_ms: int = 30000):
        """Initialize the provider.

        Args:
            page: Playwright page instance
            navigation_timeout_ms: Timeout for page loads
        """
        self.page = page
        self.navigation_timeout_ms = navigation_timeout_ms
        self._runtime_installed = False

    @property
    def url(self) -> str:
        return self.page.url

    async def install_runtime(self) -> None:
        """Register the agent runtime for every future document and the current one."""
        if not self._runtime_installed:
            await self.page.add_init_script(script=AGENT_RUNTIME_JS)
            self._runtime_installed = True
        await self.page.evaluate(AGENT_RUNTIME_JS)

    async def navigate(self, url: str) -> None:
        await self.page.goto(url, wait_until="domcontentloaded", timeout=self.navigation_timeout_ms)

    async def evaluate_script(self, script: str) -> Any:
        return await self.page.evaluate(script)

    async def capture_image(self, rect: Optional[BoundingBox] = None) -> Optional[bytes]:
        """Screenshot the viewport, optionally clipped to a rectangle.

        Returns:
            PNG bytes, or None if the capture failed
        """
        try:
            if rect is not None:
                return await self.page.screenshot(clip=rect.to_dict(), full_page=False)
            return await self.page.screenshot(full_page=False)
        except (PlaywrightTimeoutError, PlaywrightError) as e:
            logger.warning(f"Screenshot failed: {e}")
            return None
