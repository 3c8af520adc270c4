"""
Fetch-and-select over candidate caption tracks.

Candidates are probed strictly in resolver order. The first one whose
payload parses to at least one entry wins; fetch failures and empty
payloads are both recorded as outcomes and the walk moves on. Running out
of candidates is a successful, empty result.
"""

import asyncio
import logging
from typing import List, Optional
from urllib.parse import urlparse

import httpx

from browser_engine import USER_AGENT, ACCEPT_LANGUAGE
from caption_parser import parse_payload
from error_handler import FetchError
from logging_setup import get_logger
from log_events import evt
from models import (
    CaptionTrack, CandidateOutcome, SelectionResult,
    OUTCOME_SUCCESS, OUTCOME_EMPTY, OUTCOME_FETCH_FAILED,
)
from track_resolver import filter_tracks

logger = get_logger(__name__)

DEFAULT_FETCH_TIMEOUT_MS = 10000


def _mask_url_for_logging(url: str) -> str:
    """Caption locators carry signatures; log only host and path."""
    try:
        parsed = urlparse(url)
        return f"{parsed.scheme}://{parsed.netloc}{parsed.path}"
    except ValueError:
        return url.split('?')[0]


class TranscriptSelector:
    """Probes candidate tracks over plain HTTP until one yields captions."""

    def __init__(self, timeout_ms: int = DEFAULT_FETCH_TIMEOUT_MS,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout_ms = timeout_ms
        self.transport = transport

    def _client(self, timeout_ms: int) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_ms / 1000),
            headers={"User-Agent": USER_AGENT, "Accept-Language": ACCEPT_LANGUAGE},
            follow_redirects=True,
            transport=self.transport,
        )

    async def select_transcript(self, tracks: List[CaptionTrack], lang: str,
                                timeout_ms: Optional[int] = None) -> SelectionResult:
        timeout_ms = timeout_ms or self.timeout_ms
        candidates = filter_tracks(tracks, lang)
        result = SelectionResult()

        if not candidates:
            evt("no_matching_tracks", lang=lang, tracks_count=len(tracks))
            return result

        async with self._client(timeout_ms) as client:
            for attempt, track in enumerate(candidates, start=1):
                outcome = await self._probe(client, track, timeout_ms)
                result.attempts.append(outcome)

                evt("candidate_result",
                    level=logging.INFO if outcome.status != OUTCOME_FETCH_FAILED else logging.WARNING,
                    outcome=outcome.status, attempt=attempt, lang=track.language_code,
                    url=_mask_url_for_logging(track.source_url),
                    entries=len(outcome.captions), detail=outcome.detail or None)

                if outcome.succeeded:
                    result.captions = list(outcome.captions)
                    result.chosen = track
                    return result

        evt("candidates_exhausted", level=logging.WARNING, lang=lang, attempts=len(result.attempts))
        return result

    async def _probe(self, client: httpx.AsyncClient, track: CaptionTrack,
                     timeout_ms: int) -> CandidateOutcome:
        try:
            body, content_type = await self._download(client, track, timeout_ms)
        except FetchError as e:
            return CandidateOutcome(status=OUTCOME_FETCH_FAILED, track=track, detail=str(e))

        try:
            captions = parse_payload(body, content_type, track.source_url)
        except Exception as e:
            # An unreadable payload only disqualifies this candidate
            logger.warning(f"Payload from {_mask_url_for_logging(track.source_url)} failed to parse: {type(e).__name__}")
            return CandidateOutcome(status=OUTCOME_EMPTY, track=track,
                                    detail=f"unparsable payload: {type(e).__name__}")

        if not captions:
            return CandidateOutcome(status=OUTCOME_EMPTY, track=track, detail="no caption entries")
        return CandidateOutcome(status=OUTCOME_SUCCESS, track=track, captions=tuple(captions))

    async def _download(self, client: httpx.AsyncClient, track: CaptionTrack,
                        timeout_ms: int):
        """GET the payload within timeout_ms, normalizing every failure to FetchError."""
        url = track.source_url
        try:
            resp = await asyncio.wait_for(client.get(url), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError as e:
            raise FetchError(f"timed out after {timeout_ms}ms", url=url) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FetchError(f"{type(e).__name__}: {str(e)[:120]}", url=url) from e

        if not resp.is_success:
            raise FetchError(f"status={resp.status_code}", url=url, status_code=resp.status_code)

        return resp.text, resp.headers.get("content-type", "")
