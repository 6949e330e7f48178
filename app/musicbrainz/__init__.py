from app.musicbrainz.client import MUSICBRAINZ_USER_AGENT, MusicBrainzClient, get_musicbrainz_client

__all__ = [
    "MUSICBRAINZ_USER_AGENT",
    "MusicBrainzClient",
    "get_musicbrainz_client",
]
