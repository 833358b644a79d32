"""
Bot-protection detection and the guarded page fetch.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol, Tuple

from .errors import RenderError
from .models import RenderedPage

logger = logging.getLogger(__name__)


class ChallengeKind(str, Enum):
    SHIELDSQUARE = "shieldsquare"
    CLOUDFLARE = "cloudflare"
    CAPTCHA = "captcha"
    ACCESS_DENIED = "access_denied"


# Matched case-insensitively against the page title, in order
TITLE_SIGNATURES: List[Tuple[str, ChallengeKind]] = [
    ("shieldsquare", ChallengeKind.SHIELDSQUARE),
    ("just a moment", ChallengeKind.CLOUDFLARE),
    ("attention required", ChallengeKind.CLOUDFLARE),
    ("cloudflare", ChallengeKind.CLOUDFLARE),
    ("captcha", ChallengeKind.CAPTCHA),
    ("access denied", ChallengeKind.ACCESS_DENIED),
]

# Only markers that never appear on a regular results page
BODY_SIGNATURES: List[Tuple[str, ChallengeKind]] = [
    ("validate.perfdrive.com", ChallengeKind.SHIELDSQUARE),
    ("cf-browser-verification", ChallengeKind.CLOUDFLARE),
    ("cf-challenge", ChallengeKind.CLOUDFLARE),
]


@dataclass(frozen=True)
class Verdict:
    kind: Optional[ChallengeKind] = None

    @property
    def challenged(self) -> bool:
        return self.kind is not None

    def __str__(self) -> str:
        return self.kind.value if self.kind else "clean"


CLEAN = Verdict()


def check(title: Optional[str], html: Optional[str]) -> Verdict:
    """Classify a rendered page as clean or as a specific challenge."""
    t = (title or "").lower()
    for marker, kind in TITLE_SIGNATURES:
        if marker in t:
            return Verdict(kind)

    body = (html or "").lower()
    for marker, kind in BODY_SIGNATURES:
        if marker in body:
            return Verdict(kind)

    return CLEAN


class FetchState(str, Enum):
    IDLE = "idle"
    NAVIGATING = "navigating"
    RENDERED = "rendered"
    CLEAN = "clean"
    CHALLENGED = "challenged"
    EVASION_ATTEMPT = "evasion_attempt"
    BLOCKED = "blocked"
    FAILED = "failed"


TERMINAL_STATES = (FetchState.CLEAN, FetchState.BLOCKED, FetchState.FAILED)


class PageRenderer(Protocol):
    async def render(self, url: str, page_index: int) -> RenderedPage: ...
    async def settle(self) -> RenderedPage: ...
    async def evade(self) -> RenderedPage: ...
    async def probe(self, url: str, page_index: int) -> RenderedPage: ...


@dataclass
class FetchOutcome:
    state: FetchState
    page: Optional[RenderedPage] = None
    verdict: Verdict = CLEAN
    error_reason: Optional[str] = None
    evasion_attempted: bool = False

    @property
    def ok(self) -> bool:
        return self.state is FetchState.CLEAN


async def fetch_page(renderer: PageRenderer, url: str, page_index: int) -> FetchOutcome:
    """
    Render one page behind the bot guard.

    IDLE -> NAVIGATING -> RENDERED -> CLEAN | CHALLENGED
    CHALLENGED -> EVASION_ATTEMPT -> CLEAN | BLOCKED
    Any RenderError ends in FAILED. A page gets exactly one evasion attempt.
    The waits of each transition live in the renderer's Timings.
    """
    state = FetchState.IDLE
    outcome = FetchOutcome(state=state)
    page: Optional[RenderedPage] = None

    while state not in TERMINAL_STATES:
        try:
            if state is FetchState.IDLE:
                state = FetchState.NAVIGATING

            elif state is FetchState.NAVIGATING:
                page = await renderer.render(url, page_index)
                state = FetchState.RENDERED

            elif state is FetchState.RENDERED:
                outcome.verdict = check(page.title, page.html)
                if not outcome.verdict.challenged:
                    page = await renderer.settle()
                    state = FetchState.CLEAN
                elif outcome.evasion_attempted:
                    state = FetchState.BLOCKED
                else:
                    logger.warning(f">>> Bot protection detected on page {page_index} ({outcome.verdict}), trying evasion")
                    state = FetchState.CHALLENGED

            elif state is FetchState.CHALLENGED:
                state = FetchState.EVASION_ATTEMPT

            elif state is FetchState.EVASION_ATTEMPT:
                outcome.evasion_attempted = True
                page = await renderer.evade()
                state = FetchState.RENDERED

        except RenderError as e:
            logger.warning(f">>> Render failed on page {page_index}: {e}")
            outcome.error_reason = str(e)
            state = FetchState.FAILED

    outcome.state = state
    if state is FetchState.CLEAN:
        outcome.page = page
    elif state is FetchState.BLOCKED:
        outcome.error_reason = (
            f"Bot protection ({outcome.verdict}) still active on page {page_index} after evasion attempt"
        )
        logger.error(f">>> {outcome.error_reason}")
    return outcome
