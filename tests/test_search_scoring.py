import unittest

from engine.search_scoring import (
    ScoringProfile,
    ScoringWeights,
    clamp,
    like_key,
    score_candidate,
    score_candidates,
)
from metadata.types import CandidateTrack


def _track(title, artist, album="", preview_url=None):
    return CandidateTrack(title=title, artist=artist, album=album, source="itunes", preview_url=preview_url)


class SearchScoringTests(unittest.TestCase):
    def test_recent_artist_penalty_reorders_results(self):
        a = _track("One", "A", "X")
        b = _track("Two", "B", "Y")
        profile = ScoringProfile.from_payload({"recentArtists": ["A"]})

        ranked = score_candidates([a, b], profile)

        self.assertEqual([item.artist for item in ranked], ["B", "A"])
        self.assertAlmostEqual(ranked[0].score, 1.0)
        self.assertAlmostEqual(ranked[1].score, 0.5)

    def test_penalties_and_boosts_compose_multiplicatively(self):
        track = _track("Song", "A", "X", preview_url="https://p/1")
        profile = ScoringProfile.from_payload(
            {
                "recentArtists": ["A"],
                "recentAlbums": ["X"],
                "likes": {"https://p/1": 1},
                "artistAffinity": {"A": 0.2},
            }
        )

        score = score_candidate(track, profile, ScoringWeights())

        self.assertAlmostEqual(score, 1.0 * 0.5 * 0.65 * 1.2 * 1.2)

    def test_dislike_uses_composite_key_without_preview(self):
        track = _track("Song", "Artist", "Album")
        key = like_key(track)
        profile = ScoringProfile(likes={key: -1})

        self.assertEqual(key, "artist|song|album")
        self.assertAlmostEqual(score_candidate(track, profile, ScoringWeights()), 0.4)

    def test_affinity_is_clamped(self):
        track = _track("Song", "A")
        high = ScoringProfile(artist_affinity={"A": 5})
        low = ScoringProfile(artist_affinity={"A": -5})

        self.assertAlmostEqual(score_candidate(track, high, ScoringWeights()), 1.6)
        self.assertAlmostEqual(score_candidate(track, low, ScoringWeights()), 0.6)
        self.assertEqual(clamp(0.1, -0.4, 0.6), 0.1)

    def test_ties_keep_input_order(self):
        items = [_track(str(i), f"Artist {i}") for i in range(5)]

        ranked = score_candidates(items)

        self.assertEqual([item.title for item in ranked], ["0", "1", "2", "3", "4"])
        self.assertTrue(all(item.score == 1.0 for item in ranked))

    def test_scoring_returns_copies(self):
        track = _track("Song", "A")

        ranked = score_candidates([track])

        self.assertIsNone(track.score)
        self.assertEqual(ranked[0].score, 1.0)

    def test_weight_overrides_accept_camel_case(self):
        weights = ScoringWeights.from_payload({"artistPenalty": "0.25", "likeBoost": 2, "unknown": 1})

        self.assertEqual(weights.artist_penalty, 0.25)
        self.assertEqual(weights.like_boost, 2.0)
        self.assertEqual(weights.album_penalty, 0.35)

    def test_weight_overrides_reject_non_numbers(self):
        with self.assertRaises(ValueError):
            ScoringWeights.from_payload({"albumPenalty": "lots"})

    def test_weight_overrides_reject_non_finite_numbers(self):
        for raw in ("nan", "inf", "-inf"):
            with self.assertRaises(ValueError):
                ScoringWeights.from_payload({"likeBoost": raw})

    def test_profile_drops_non_finite_signals(self):
        profile = ScoringProfile.from_payload(
            {"likes": {"k": "nan"}, "artistAffinity": {"A": "inf", "B": "0.2"}}
        )

        self.assertEqual(profile.likes, {})
        self.assertEqual(profile.artist_affinity, {"B": 0.2})
        self.assertEqual(score_candidate(CandidateTrack(title="t", artist="A"), profile, ScoringWeights()), 1.0)


if __name__ == "__main__":
    unittest.main()
