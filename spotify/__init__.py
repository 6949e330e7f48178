"""Spotify integration modules."""

from spotify.client import SpotifyClient, SpotifyTokenCache

__all__ = ["SpotifyClient", "SpotifyTokenCache"]
