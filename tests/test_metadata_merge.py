from metadata.merge import merge_candidates
from metadata.types import CandidateTrack


def _track(title, artist, source, **fields):
    return CandidateTrack(title=title, artist=artist, source=source, **fields)


def test_duplicates_collapse_to_first_seen_record():
    first = _track("Song (Live)", "Artist", "itunes", source_id="1", ids={"itunes": "1"})
    second = _track("Song", "Artist", "spotify", source_id="sp", ids={"spotify": "sp"})

    merged = merge_candidates([first, second])

    assert len(merged) == 1
    assert merged[0].source == "itunes"
    assert merged[0].title == "Song (Live)"
    assert merged[0].ids == {"itunes": "1", "spotify": "sp"}


def test_empty_optional_fields_are_filled_from_later_duplicates():
    first = _track("Song", "Artist", "spotify", album="", preview_url=None)
    second = _track(
        "song!",
        "ARTIST",
        "itunes",
        album="Album",
        album_art_url="https://art/600x600bb.jpg",
        preview_url="https://audio/preview.m4a",
        isrc="USRC17607839",
        links={"itunes": "https://music.apple.com/x"},
    )

    merged = merge_candidates([first, second])

    assert len(merged) == 1
    record = merged[0]
    assert record.album == "Album"
    assert record.album_art_url == "https://art/600x600bb.jpg"
    assert record.preview_url == "https://audio/preview.m4a"
    assert record.isrc == "USRC17607839"
    assert record.links == {"itunes": "https://music.apple.com/x"}


def test_first_seen_values_win_over_later_ones():
    first = _track("Song", "Artist", "itunes", preview_url="https://a/1", ids={"itunes": "1"})
    second = _track("Song", "Artist", "deezer", preview_url="https://a/2", ids={"itunes": "2", "deezer": "9"})

    merged = merge_candidates([first, second])

    assert merged[0].preview_url == "https://a/1"
    assert merged[0].ids == {"itunes": "1", "deezer": "9"}


def test_output_keeps_first_seen_order():
    items = [
        _track("B", "Artist", "itunes"),
        _track("A", "Artist", "itunes"),
        _track("b", "artist", "spotify"),
        _track("C", "Artist", "spotify"),
    ]

    merged = merge_candidates(items)

    assert [item.title for item in merged] == ["B", "A", "C"]


def test_matching_isrc_joins_records_with_different_titles():
    first = _track("Song - 2011 Remaster", "Artist", "spotify", isrc="USRC17607839")
    second = _track("Song", "Artist", "musicbrainz", isrc="us-rc1-76-07839", album="Album")

    merged = merge_candidates([first, second])

    assert len(merged) == 1
    assert merged[0].album == "Album"


def test_inputs_are_not_mutated():
    first = _track("Song", "Artist", "itunes", ids={"itunes": "1"})
    second = _track("Song", "Artist", "spotify", album="Album", ids={"spotify": "2"})

    merge_candidates([first, second])

    assert first.album == ""
    assert first.ids == {"itunes": "1"}


def test_empty_titles_are_never_merged():
    merged = merge_candidates([_track("", "Artist", "youtube"), _track("", "Artist", "youtube")])

    assert len(merged) == 2
