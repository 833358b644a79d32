"""
Tests for bot-protection detection and the guarded fetch state machine.
"""
import asyncio

from rentscraper.guard import CLEAN, ChallengeKind, FetchState, check, fetch_page

URL = "https://www.yad2.co.il/realestate/rent?page=1"


def test_title_signatures():
    assert check("ShieldSquare Captcha", "").kind is ChallengeKind.SHIELDSQUARE
    assert check("Just a moment...", "").kind is ChallengeKind.CLOUDFLARE
    assert check("Attention Required! | Cloudflare", "").kind is ChallengeKind.CLOUDFLARE
    assert check("Please solve this CAPTCHA", "").kind is ChallengeKind.CAPTCHA
    assert check("Access Denied", "").kind is ChallengeKind.ACCESS_DENIED


def test_body_signatures():
    html = '<html><script src="https://validate.perfdrive.com/check.js"></script></html>'
    assert check("Yad2", html).kind is ChallengeKind.SHIELDSQUARE
    assert check("", '<div id="cf-challenge-running"></div>').kind is ChallengeKind.CLOUDFLARE


def test_clean_page(feed_html):
    verdict = check('נדל"ן להשכרה | יד2', feed_html([{"id": "a1", "price": "5,000 ₪"}]))
    assert verdict == CLEAN
    assert not verdict.challenged
    assert str(verdict) == "clean"
    assert check(None, None) == CLEAN


def test_fetch_clean_page(fake_renderer, feed_html):
    renderer = fake_renderer(pages={1: ("יד2", feed_html([{"id": "a1", "price": "5,000 ₪"}]))})
    outcome = asyncio.run(fetch_page(renderer, URL, 1))

    assert outcome.ok
    assert outcome.state is FetchState.CLEAN
    assert outcome.page.page_index == 1
    assert not outcome.evasion_attempted
    assert renderer.calls == [("render", 1), ("settle", 1)]


def test_fetch_recovers_after_evasion(fake_renderer, feed_html):
    renderer = fake_renderer(
        pages={1: ("ShieldSquare Captcha", feed_html([{"id": "a1", "price": "5,000 ₪"}]))},
        evasions={1: "יד2"},
    )
    outcome = asyncio.run(fetch_page(renderer, URL, 1))

    assert outcome.state is FetchState.CLEAN
    assert outcome.evasion_attempted
    assert outcome.page.title == "יד2"
    assert renderer.calls == [("render", 1), ("evade", 1), ("settle", 1)]


def test_fetch_blocked_after_single_evasion(fake_renderer):
    renderer = fake_renderer(pages={2: ("Just a moment...", "<html></html>")})
    outcome = asyncio.run(fetch_page(renderer, URL, 2))

    assert outcome.state is FetchState.BLOCKED
    assert not outcome.ok
    assert outcome.page is None
    assert renderer.count("evade") == 1
    assert renderer.count("settle") == 0
    assert outcome.error_reason == "Bot protection (cloudflare) still active on page 2 after evasion attempt"


def test_fetch_render_failure(fake_renderer):
    renderer = fake_renderer(failures=[1])
    outcome = asyncio.run(fetch_page(renderer, URL, 1))

    assert outcome.state is FetchState.FAILED
    assert outcome.page is None
    assert outcome.error_reason.startswith("network_error: Timeout 45000ms exceeded")
    assert renderer.calls == [("render", 1)]
