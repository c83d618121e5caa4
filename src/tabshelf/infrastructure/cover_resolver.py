"""iTunes Search API cover resolver."""

import logging
from pathlib import Path
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_COUNTRY = "US"
DEFAULT_LANGUAGE = "en_us"
_USER_AGENT = "tabshelf/0.1 (+cover lookup)"


class CoverResolverError(Exception):
    """Base exception for cover resolver errors."""

    pass


class CoverNotFoundError(CoverResolverError):
    """The search returned no usable artwork."""

    pass


class ItunesCoverResolver:
    """
    Looks up album (or single) artwork through the iTunes Search API and
    saves the upscaled image.

    A localized lookup that fails is retried once with the US store.
    """

    def __init__(
        self,
        search_url: str = "https://itunes.apple.com/search",
        artwork_size: str = "600x600bb",
        timeout: float = 10.0,
        country: str = DEFAULT_COUNTRY,
        language: str = DEFAULT_LANGUAGE,
        client: Optional[httpx.Client] = None,
    ):
        """
        Initialize the resolver.

        Args:
            search_url: iTunes search endpoint
            artwork_size: Size token replacing "100x100bb" in artwork URLs
            timeout: Request timeout in seconds
            country: Store used when a tab has no country of its own
            language: Language used when a tab has no language of its own
            client: Optional preconfigured client (tests pass a MockTransport)
        """
        self._search_url = search_url
        self._artwork_size = artwork_size
        self._country = country or DEFAULT_COUNTRY
        self._language = language or DEFAULT_LANGUAGE
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": _USER_AGENT},
        )

    @property
    def country(self) -> str:
        """Store searched when a tab has no country of its own."""
        return self._country

    @property
    def language(self) -> str:
        return self._language

    def resolve(
        self,
        artist: str,
        album: str,
        title: str,
        country: str,
        language: str,
        destination: Path,
    ) -> None:
        """
        Download cover art to destination.

        Raises:
            CoverNotFoundError: If no artwork was found
            CoverResolverError: On HTTP or file system failures
        """
        country = country or self._country
        language = language or self._language
        try:
            self._attempt(artist, album, title, country, language, Path(destination))
        except CoverResolverError as e:
            if country == DEFAULT_COUNTRY:
                raise
            logger.info(f"Cover search failed for {country}/{language}, falling back to US: {e}")
            self._attempt(
                artist, album, title, DEFAULT_COUNTRY, DEFAULT_LANGUAGE, Path(destination)
            )

    def _attempt(
        self,
        artist: str,
        album: str,
        title: str,
        country: str,
        language: str,
        destination: Path,
    ) -> None:
        if album:
            term, entity = f"{artist} {album}", "album"
        else:
            term, entity = f"{artist} {title}", "song"

        params = {
            "term": term,
            "entity": entity,
            "limit": 1,
            "country": country,
            "lang": language,
        }
        try:
            response = self._client.get(self._search_url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise CoverResolverError(
                f"iTunes search failed with status {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise CoverResolverError(f"iTunes search request failed: {e}") from e
        except ValueError as e:
            raise CoverResolverError(f"Invalid iTunes search response: {e}") from e

        results = payload.get("results") or []
        artwork_url = results[0].get("artworkUrl100") if results else None
        if not artwork_url:
            raise CoverNotFoundError(f"No artwork found for '{term}'")
        artwork_url = artwork_url.replace("100x100bb", self._artwork_size, 1)

        try:
            image = self._client.get(artwork_url)
            image.raise_for_status()
        except httpx.HTTPError as e:
            raise CoverResolverError(f"Artwork download failed: {e}") from e

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_bytes(image.content)
        except OSError as e:
            raise CoverResolverError(f"Failed to save cover to {destination}: {e}") from e

        logger.debug(f"Saved cover for '{term}' to {destination}")

    def close(self) -> None:
        """Close the HTTP client if this resolver created it."""
        if self._owns_client:
            self._client.close()
