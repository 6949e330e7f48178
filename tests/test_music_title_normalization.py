from engine.music_title_normalization import merge_key, normalize_for_key, normalize_isrc


def test_bracketed_and_parenthetical_spans_are_dropped():
    assert normalize_for_key("Song (Live) [Remastered]") == "song"
    assert merge_key("Song (Live) [Remastered]", "Artist") == merge_key("Song", "Artist")


def test_punctuation_runs_collapse_to_single_space():
    assert normalize_for_key("  AC/DC -- Back   in Black!! ") == "ac dc back in black"


def test_missing_values_normalize_to_empty():
    assert normalize_for_key(None) == ""
    assert merge_key(None, None) == ("", "")


def test_distinct_artists_keep_distinct_keys():
    assert merge_key("Hello", "Adele") != merge_key("Hello", "Lionel Richie")


def test_normalize_isrc_strips_separators():
    assert normalize_isrc("us-rc1-76-07839") == "USRC17607839"
    assert normalize_isrc("  ") is None
    assert normalize_isrc(None) is None
