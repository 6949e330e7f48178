"""Provider adapters that turn catalog search responses into CandidateTrack lists."""

import logging
import os
import re
from urllib.parse import quote, urlparse

import requests
from yt_dlp import YoutubeDL

from app.musicbrainz.client import MusicBrainzClient, get_musicbrainz_client
from config import settings
from metadata.types import CandidateTrack, clean_optional, clean_str
from spotify.client import SpotifyClient

ITUNES_COUNTRIES = ("US", "GB", "DE", "FR", "CA", "AU", "MX", "BR", "ES", "IT", "SE", "NL")

_ARTWORK_SIZE_RE = re.compile(r"/[0-9]+x[0-9]+bb\.(jpg|png)")
_TOPIC_SUFFIX_RE = re.compile(r"\s*-\s*topic\s*$", re.IGNORECASE)


def _is_http_url(value):
    if not value or not isinstance(value, str):
        return False
    try:
        return urlparse(value).scheme in ("http", "https")
    except ValueError:
        return False


def upgrade_artwork_url(url, size=600):
    """Swap an embedded thumbnail size token for a larger one.

    The upgraded URL is not checked against the server.
    """
    url = clean_optional(url)
    if not url:
        return None
    upgraded = _ARTWORK_SIZE_RE.sub(rf"/{size}x{size}bb.\1", url, count=1)
    return upgraded.replace("100x100", f"{size}x{size}", 1)


def market_to_itunes_country(market):
    value = str(market or "").strip().upper()
    return value if value in ITUNES_COUNTRIES else "US"


class SearchAdapter:
    source = ""
    max_limit = 50
    preview_format = None

    def __init__(self, *, timeout_sec=None):
        self.timeout_sec = settings.ADAPTER_TIMEOUT_SECONDS if timeout_sec is None else timeout_sec

    @property
    def enabled(self):
        return True

    def clamp_limit(self, limit):
        try:
            value = int(limit)
        except (TypeError, ValueError):
            value = self.max_limit
        return max(1, min(self.max_limit, value))

    def search(self, query, limit=20, market=None, **options):
        """Return candidates for ``query``; upstream failures yield ``[]``."""
        query = str(query or "").strip()
        if not query or not self.enabled:
            return []
        try:
            return self._search(query, self.clamp_limit(limit), market, **options)
        except Exception:
            logging.exception("Search failed for source=%s query=%s", self.source, query)
            return []

    def _search(self, query, limit, market, **options):
        raise NotImplementedError

    def _get_json(self, url, *, params=None, headers=None):
        response = requests.get(url, params=params, headers=headers, timeout=self.timeout_sec)
        response.raise_for_status()
        return response.json()

    def _get_json_or_none(self, url, *, params=None, headers=None):
        try:
            return self._get_json(url, params=params, headers=headers)
        except (requests.RequestException, ValueError) as exc:
            logging.warning("Upstream request failed for source=%s url=%s: %s", self.source, url, exc)
            return None


class ITunesAdapter(SearchAdapter):
    source = "itunes"
    max_limit = 200
    preview_format = "audio/aac"

    SEARCH_URL = "https://itunes.apple.com/search"
    LOOKUP_URL = "https://itunes.apple.com/lookup"
    RSS_URL = "https://itunes.apple.com/{country}/rss/topsongs/limit={limit}/genre={genre_id}/json"
    GENRES_URL = "https://itunes.apple.com/WebObjects/MZStoreServices.woa/ws/genres"
    MUSIC_GENRE_ID = "34"

    def _search(self, query, limit, market, genre_id=None):
        params = {
            "term": query,
            "media": "music",
            "entity": "song",
            "limit": str(limit),
            "country": market_to_itunes_country(market),
        }
        if genre_id:
            params["genreId"] = str(genre_id)
        payload = self._get_json(self.SEARCH_URL, params=params)
        rows = payload.get("results") if isinstance(payload, dict) else None
        return [self._to_candidate(row) for row in rows or [] if isinstance(row, dict)]

    def _to_candidate(self, row):
        track_id = row.get("trackId")
        store_url = clean_optional(row.get("trackViewUrl") or row.get("collectionViewUrl"))
        return CandidateTrack(
            title=clean_str(row.get("trackName") or row.get("collectionName")),
            artist=clean_str(row.get("artistName")),
            album=clean_str(row.get("collectionName")),
            source=self.source,
            source_id=clean_str(track_id),
            album_art_url=upgrade_artwork_url(row.get("artworkUrl100") or row.get("artworkUrl60")),
            preview_url=clean_optional(row.get("previewUrl")),
            store_url=store_url,
            ids={self.source: str(track_id)} if track_id else {},
            links={self.source: store_url} if store_url else {},
        )

    def lookup(self, track_id):
        """Resolve one iTunes track id; ``None`` when missing or unreachable."""
        track_id = clean_str(track_id)
        if not track_id:
            return None
        payload = self._get_json_or_none(self.LOOKUP_URL, params={"id": track_id, "entity": "song"})
        rows = payload.get("results") if isinstance(payload, dict) else None
        rows = [row for row in rows or [] if isinstance(row, dict)]
        if not rows:
            return None
        match = next((row for row in rows if str(row.get("trackId")) == track_id), rows[0])
        return self._to_candidate(match)

    def top_songs(self, genre_id, limit=20, country=None):
        """Top songs for a genre from the iTunes RSS feed."""
        if not genre_id:
            return []
        url = self.RSS_URL.format(
            country=market_to_itunes_country(country).lower(),
            limit=quote(str(max(20, int(limit or 20))), safe=""),
            genre_id=quote(str(genre_id), safe=""),
        )
        payload = self._get_json_or_none(url)
        feed = payload.get("feed") if isinstance(payload, dict) else None
        entries = (feed or {}).get("entry") or []
        if isinstance(entries, dict):
            entries = [entries]
        return [self._rss_to_candidate(entry) for entry in entries if isinstance(entry, dict)]

    def _rss_to_candidate(self, entry):
        def label(value):
            return value.get("label") if isinstance(value, dict) else None

        title = clean_str(label(entry.get("im:name")))
        collection = entry.get("im:collection") or {}
        album = clean_str(label(collection.get("im:name")) or label(entry.get("title")))
        images = entry.get("im:image")
        art = label(images[-1]) if isinstance(images, list) and images else None

        links = entry.get("link")
        preview_url = None
        store_url = None
        if isinstance(links, dict):
            links = [links]
        if isinstance(links, list):
            for link in links:
                attributes = (link or {}).get("attributes") or {}
                if "audio" in str(attributes.get("type") or "") and not preview_url:
                    preview_url = attributes.get("href")
            if not preview_url and len(links) > 1:
                preview_url = ((links[1] or {}).get("attributes") or {}).get("href")
            if links:
                store_url = ((links[0] or {}).get("attributes") or {}).get("href")

        identity = entry.get("id") or {}
        track_id = clean_str((identity.get("attributes") or {}).get("im:id"))
        store_url = clean_optional(label(identity) or store_url)
        return CandidateTrack(
            title=title,
            artist=clean_str(label(entry.get("im:artist"))),
            album=album,
            source="itunes-rss",
            source_id=track_id,
            album_art_url=clean_optional(art),
            preview_url=clean_optional(preview_url),
            store_url=store_url,
            ids={self.source: track_id} if track_id else {},
            links={self.source: store_url} if store_url else {},
        )

    def fetch_genres(self, country="US"):
        """Flattened iTunes Music genre tree, or ``None`` when upstream fails."""
        payload = self._get_json_or_none(
            self.GENRES_URL,
            params={"cc": market_to_itunes_country(country), "lang": "en-US"},
        )
        if not isinstance(payload, dict):
            return None
        root = payload.get(self.MUSIC_GENRE_ID)
        if not isinstance(root, dict):
            root = next(
                (
                    node
                    for node in payload.values()
                    if isinstance(node, dict) and str(node.get("name") or "").lower() == "music"
                ),
                None,
            )
        if root is None:
            return None
        return [
            {"id": genre["id"], "name": genre["name"], "path": genre["path"], "label": " ▸ ".join(genre["path"])}
            for genre in _flatten_genres(root)
        ]


def _flatten_genres(node, path=()):
    results = []
    subgenres = node.get("subgenres") if isinstance(node.get("subgenres"), dict) else node
    for key, child in subgenres.items():
        if not str(key).isdigit() or not isinstance(child, dict):
            continue
        child_path = [*path, str(child.get("name") or "")]
        results.append({"id": str(child.get("id") or key), "name": child.get("name"), "path": child_path})
        results.extend(_flatten_genres(child, child_path))
    return results


class SpotifyAdapter(SearchAdapter):
    source = "spotify"
    max_limit = 50
    preview_format = "audio/mpeg"

    def __init__(self, client=None, *, timeout_sec=None):
        super().__init__(timeout_sec=timeout_sec)
        self.client = client or SpotifyClient(timeout_sec=self.timeout_sec)

    @property
    def enabled(self):
        return self.client.has_credentials

    def _search(self, query, limit, market, offset=0):
        tracks = self.client.search_tracks(query, limit=limit, market=market, offset=offset)
        return [self._to_candidate(track) for track in tracks]

    def _to_candidate(self, track):
        artists = [artist for artist in track.get("artists") or [] if isinstance(artist, dict)]
        album = track.get("album") or {}
        album_images = album.get("images") or []
        artist_images = (artists[0].get("images") or []) if artists else []
        image = (album_images or artist_images or [{}])[0] or {}
        track_id = clean_str(track.get("id"))
        link = clean_optional((track.get("external_urls") or {}).get("spotify"))
        return CandidateTrack(
            title=clean_str(track.get("name")),
            artist=clean_str(artists[0].get("name")) if artists else "",
            album=clean_str(album.get("name")),
            source=self.source,
            source_id=track_id,
            album_art_url=clean_optional(image.get("url")),
            preview_url=clean_optional(track.get("preview_url")),
            isrc=clean_optional((track.get("external_ids") or {}).get("isrc")),
            ids={self.source: track_id} if track_id else {},
            links={self.source: link} if link else {},
        )


class DeezerAdapter(SearchAdapter):
    source = "deezer"
    max_limit = 100
    preview_format = "audio/mpeg"

    SEARCH_URL = "https://api.deezer.com/search"

    def _search(self, query, limit, market):
        payload = self._get_json(self.SEARCH_URL, params={"q": query, "limit": str(limit)})
        if not isinstance(payload, dict) or payload.get("error"):
            return []
        return [self._to_candidate(row) for row in payload.get("data") or [] if isinstance(row, dict)]

    def _to_candidate(self, row):
        album = row.get("album") or {}
        track_id = clean_str(row.get("id"))
        link = clean_optional(row.get("link"))
        return CandidateTrack(
            title=clean_str(row.get("title")),
            artist=clean_str((row.get("artist") or {}).get("name")),
            album=clean_str(album.get("title")),
            source=self.source,
            source_id=track_id,
            album_art_url=clean_optional(album.get("cover_xl") or album.get("cover_big") or album.get("cover_medium")),
            preview_url=clean_optional(row.get("preview")),
            isrc=clean_optional(row.get("isrc")),
            ids={self.source: track_id} if track_id else {},
            links={self.source: link} if link else {},
        )


class NapsterAdapter(SearchAdapter):
    source = "napster"
    max_limit = 50
    preview_format = "audio/mpeg"

    SEARCH_URL = "https://api.napster.com/v2.2/search/verbose"
    IMAGE_URL = "https://api.napster.com/imageserver/v2/albums/{album_id}/images/500x500.jpg"

    def __init__(self, api_key=None, *, timeout_sec=None):
        super().__init__(timeout_sec=timeout_sec)
        self.api_key = api_key or os.environ.get("NAPSTER_API_KEY")

    @property
    def enabled(self):
        return bool(self.api_key)

    def _search(self, query, limit, market):
        payload = self._get_json(
            self.SEARCH_URL,
            params={"apikey": self.api_key, "query": query, "type": "track", "per_type_limit": str(limit)},
        )
        if not isinstance(payload, dict):
            return []
        tracks = ((payload.get("search") or {}).get("data") or {}).get("tracks") or payload.get("tracks") or []
        return [self._to_candidate(row) for row in tracks if isinstance(row, dict)]

    def _to_candidate(self, row):
        track_id = clean_str(row.get("id"))
        album_id = clean_str(row.get("albumId"))
        return CandidateTrack(
            title=clean_str(row.get("name")),
            artist=clean_str(row.get("artistName")),
            album=clean_str(row.get("albumName")),
            source=self.source,
            source_id=track_id,
            album_art_url=self.IMAGE_URL.format(album_id=quote(album_id, safe="")) if album_id else None,
            preview_url=clean_optional(row.get("previewURL")),
            isrc=clean_optional(row.get("isrc")),
            ids={self.source: track_id} if track_id else {},
        )


class YouTubeAdapter(SearchAdapter):
    source = "youtube"
    max_limit = 10

    SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"
    search_prefix = "ytsearch"

    def __init__(self, api_key=None, *, timeout_sec=None):
        super().__init__(timeout_sec=timeout_sec)
        self.api_key = api_key or os.environ.get("YOUTUBE_API_KEY")

    def _search(self, query, limit, market):
        if self.api_key:
            return self._search_data_api(query, limit, market)
        return self._search_ytdlp(query, limit)

    def _search_data_api(self, query, limit, market):
        params = {"part": "snippet", "type": "video", "maxResults": str(limit), "q": query, "key": self.api_key}
        if market:
            params["regionCode"] = str(market).upper()
        payload = self._get_json(self.SEARCH_URL, params=params)
        results = []
        for item in (payload or {}).get("items") or []:
            if not isinstance(item, dict):
                continue
            video_id = clean_str((item.get("id") or {}).get("videoId"))
            if not video_id:
                continue
            snippet = item.get("snippet") or {}
            thumbnails = snippet.get("thumbnails") or {}
            thumb = thumbnails.get("high") or thumbnails.get("medium") or {}
            results.append(
                self._video_candidate(
                    video_id,
                    title=snippet.get("title"),
                    channel=snippet.get("channelTitle"),
                    thumbnail=thumb.get("url"),
                )
            )
        return results

    def _search_ytdlp(self, query, limit):
        search_term = f"{self.search_prefix}{limit}:{query}"
        opts = {
            "skip_download": True,
            "quiet": True,
            "no_warnings": True,
            "ignoreerrors": True,
            "noplaylist": True,
            "cachedir": False,
            "extract_flat": "in_playlist",
            "socket_timeout": self.timeout_sec,
        }
        with YoutubeDL(opts) as ydl:
            info = ydl.extract_info(search_term, download=False)

        entries = info.get("entries") if isinstance(info, dict) else None
        results = []
        for entry in entries or []:
            if not isinstance(entry, dict):
                continue
            video_id = clean_str(entry.get("id"))
            if not video_id:
                continue
            url = entry.get("webpage_url") or entry.get("url")
            if url and not _is_http_url(url):
                # yt-dlp can expose internal extractor URLs which must never be linked.
                logging.debug("Skipping non-http search result from %s: %r", self.source, url)
                continue
            results.append(
                self._video_candidate(
                    video_id,
                    title=entry.get("track") or entry.get("title"),
                    channel=entry.get("artist") or entry.get("uploader") or entry.get("channel"),
                    thumbnail=None,
                )
            )
        return results

    def _video_candidate(self, video_id, *, title, channel, thumbnail):
        link = f"https://www.youtube.com/watch?v={video_id}"
        return CandidateTrack(
            title=clean_str(title),
            artist=_TOPIC_SUFFIX_RE.sub("", clean_str(channel)),
            album="",
            source=self.source,
            source_id=video_id,
            album_art_url=clean_optional(thumbnail) or f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg",
            ids={self.source: video_id},
            links={self.source: link},
        )


class MusicBrainzAdapter(SearchAdapter):
    source = "musicbrainz"
    # MusicBrainz allows roughly one request per second; keep pages small.
    max_limit = 10

    def __init__(self, client: MusicBrainzClient | None = None, *, timeout_sec=None):
        super().__init__(timeout_sec=timeout_sec)
        self._client = client

    @property
    def client(self):
        return self._client or get_musicbrainz_client()

    def _search(self, query, limit, market):
        recordings = self.client.search_recordings(query, limit=limit, timeout=self.timeout_sec)
        return [self._to_candidate(rec) for rec in recordings]

    def _to_candidate(self, rec):
        credits = [credit for credit in rec.get("artist-credit") or [] if isinstance(credit, dict)]
        artist = ""
        if credits:
            artist = clean_str(credits[0].get("name") or (credits[0].get("artist") or {}).get("name"))
        releases = [release for release in rec.get("releases") or [] if isinstance(release, dict)]
        isrcs = rec.get("isrcs") or []
        recording_id = clean_str(rec.get("id"))
        link = f"https://musicbrainz.org/recording/{recording_id}" if recording_id else None
        return CandidateTrack(
            title=clean_str(rec.get("title")),
            artist=artist,
            album=clean_str(releases[0].get("title")) if releases else "",
            source=self.source,
            source_id=recording_id,
            isrc=clean_optional(isrcs[0]) if isrcs else None,
            ids={self.source: recording_id} if recording_id else {},
            links={self.source: link} if link else {},
        )


def default_adapters():
    adapters = [
        ITunesAdapter(),
        SpotifyAdapter(),
        DeezerAdapter(),
        NapsterAdapter(),
        YouTubeAdapter(),
        MusicBrainzAdapter(),
    ]
    return {adapter.source: adapter for adapter in adapters}
