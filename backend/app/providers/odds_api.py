import logging
from typing import Any, Optional

import httpx

from app.config import settings
from app.providers.http_client import CircuitOpenError, ResilientClient
from app.utils import parse_utc

logger = logging.getLogger("courtside.odds_api")


class OddsProviderError(Exception):
    """The odds provider could not deliver a usable response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class OddsMappingError(ValueError):
    """An event lacks the spread data needed to build a game record."""


class TheOddsAPIProvider:
    """TheOddsAPI spreads client with retry/backoff and a circuit breaker."""

    def __init__(self, client: Optional[ResilientClient] = None):
        self._client = client or ResilientClient("odds_api")
        self._api_usage = {"requests_used": None, "requests_remaining": None}

    def _track_usage_headers(self, resp) -> None:
        """Extract and store API quota usage from response headers."""
        used = resp.headers.get("x-requests-used")
        remaining = resp.headers.get("x-requests-remaining")
        if used is not None:
            self._api_usage["requests_used"] = int(used)
        if remaining is not None:
            self._api_usage["requests_remaining"] = int(remaining)

    async def get_spreads(self, sport_key: Optional[str] = None) -> list[dict[str, Any]]:
        """Fetch upcoming events with point spreads for a sport.

        Raises OddsProviderError on authentication, quota or transport
        failures; callers decide how to surface it.
        """
        sport_key = sport_key or settings.ODDS_SPORT_KEY

        try:
            resp = await self._client.get(
                f"{settings.THEODDSAPI_BASE_URL}/sports/{sport_key}/odds",
                params={
                    "apiKey": settings.ODDSAPIKEY,
                    "regions": "us",
                    "markets": "spreads",
                    "oddsFormat": "american",
                },
            )
        except CircuitOpenError as exc:
            raise OddsProviderError("Odds provider circuit is open.", 503) from exc
        except httpx.HTTPError as exc:
            logger.error("TheOddsAPI transport error for %s: %s", sport_key, exc)
            raise OddsProviderError("Odds provider unreachable.", 502) from exc

        if resp.status_code == 401:
            logger.error("TheOddsAPI rejected the API key (401), check ODDSAPIKEY")
            raise OddsProviderError("Invalid odds API key.", 401)
        if resp.status_code == 429:
            logger.error("TheOddsAPI rate limit exceeded (429)")
            raise OddsProviderError("Odds API rate limit exceeded.", 429)
        if resp.status_code >= 400:
            logger.error("TheOddsAPI error %d for %s", resp.status_code, sport_key)
            raise OddsProviderError(f"Odds API error ({resp.status_code}).", resp.status_code)

        self._track_usage_headers(resp)

        events = self._parse_spreads_response(resp.json())
        logger.info(
            "Fetched %d %s events (quota used=%s remaining=%s)",
            len(events), sport_key,
            self._api_usage["requests_used"], self._api_usage["requests_remaining"],
        )
        return events

    def _parse_spreads_response(self, raw: list[dict]) -> list[dict[str, Any]]:
        events = []
        for event in raw:
            spreads: dict[str, float] = {}
            # First bookmaker that offers a complete spreads market wins
            for bookmaker in event.get("bookmakers", []):
                for market in bookmaker.get("markets", []):
                    if market.get("key") != "spreads" or len(market.get("outcomes", [])) < 2:
                        continue
                    spreads = {
                        o["name"]: o["point"]
                        for o in market["outcomes"]
                        if o.get("point") is not None
                    }
                    break
                if spreads:
                    break

            events.append({
                "external_id": event["id"],
                "home_team": event.get("home_team", ""),
                "away_team": event.get("away_team", ""),
                "commence_time": event["commence_time"],
                "spreads": spreads,
            })
        return events

    @property
    def api_usage(self) -> dict:
        return self._api_usage

    @property
    def circuit_open(self) -> bool:
        return self._client.circuit.is_open

    @property
    def circuit_state(self) -> str:
        return self._client.circuit.state


def involves_team(event: dict, team: str) -> bool:
    return team in (event.get("home_team"), event.get("away_team"))


def map_tracked_game(event: dict, tracked_team: str) -> dict[str, Any]:
    """Map a parsed provider event onto game fields, spread from the tracked team's side."""
    if not involves_team(event, tracked_team):
        raise OddsMappingError(f"{tracked_team} does not play in event {event['external_id']}.")

    spread = event.get("spreads", {}).get(tracked_team)
    if spread is None:
        raise OddsMappingError(
            f"Could not find {tracked_team} spread for event {event['external_id']}."
        )

    return {
        "external_id": event["external_id"],
        "home_team": event["home_team"],
        "away_team": event["away_team"],
        "tracked_team": tracked_team,
        "start_time": parse_utc(event["commence_time"]),
        "spread": float(spread),
    }


# Singleton provider instance
odds_provider = TheOddsAPIProvider()
