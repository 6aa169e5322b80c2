import unittest

from rankbuddy.schemas import clamp_rating
from rankbuddy.services.rating_engine import RatingConstants, RatingEngine
from conftest import make_rated


class TestKFactor(unittest.TestCase):
    def setUp(self):
        self.engine = RatingEngine(RatingConstants())

    def test_bands(self):
        expected = {0: 0.5, 4: 0.5, 5: 0.25, 9: 0.25, 10: 0.125, 19: 0.125, 20: 0.1, 250: 0.1}
        for games, k in expected.items():
            self.assertEqual(self.engine.k_factor(games), k, games)

    def test_non_increasing(self):
        ks = [self.engine.k_factor(g) for g in range(0, 40)]
        self.assertTrue(all(a >= b for a, b in zip(ks, ks[1:])))


class TestAdjust(unittest.TestCase):
    def setUp(self):
        self.engine = RatingEngine(RatingConstants())

    def test_favourite_wins(self):
        winner = make_rated(1, rating=9.5, games=12)
        loser = make_rated(2, rating=5.0, games=3)
        result = self.engine.adjust(winner, loser)
        # both deltas fall to the 0.1 floor
        self.assertEqual(result.updated_winner.user_rating, 9.6)
        self.assertEqual(result.updated_loser.user_rating, 4.9)
        self.assertEqual(result.updated_winner.games_played, 13)
        self.assertEqual(result.updated_loser.games_played, 4)

    def test_major_upset(self):
        winner = make_rated(1, rating=5.0, games=12)
        loser = make_rated(2, rating=9.5, games=3)
        result = self.engine.adjust(winner, loser)
        self.assertEqual(result.updated_winner.user_rating, 8.1)
        self.assertEqual(result.updated_loser.user_rating, 9.0)

    def test_major_upset_caps_loser_only(self):
        winner = make_rated(1, rating=2.0, games=0)
        loser = make_rated(2, rating=9.0, games=0)
        result = self.engine.adjust(winner, loser)
        self.assertGreaterEqual(result.updated_winner.user_rating - 2.0, 3.0)
        self.assertLessEqual(round(9.0 - result.updated_loser.user_rating, 1), 0.7)

    def test_minor_upset_gets_multiplier(self):
        winner = make_rated(1, rating=6.0, games=0)
        loser = make_rated(2, rating=7.0, games=0)
        result = self.engine.adjust(winner, loser)
        self.assertEqual(result.updated_winner.user_rating, 6.4)
        self.assertEqual(result.updated_loser.user_rating, 6.7)

    def test_clamped_to_ten(self):
        result = self.engine.adjust(make_rated(1, rating=9.9), make_rated(2, rating=9.8))
        self.assertEqual(result.updated_winner.user_rating, 10.0)
        self.assertEqual(result.updated_loser.user_rating, 9.6)

    def test_clamped_to_one(self):
        result = self.engine.adjust(make_rated(1, rating=8.0), make_rated(2, rating=1.0))
        self.assertEqual(result.updated_loser.user_rating, 1.0)

    def test_inputs_untouched(self):
        winner = make_rated(1, rating=6.0, games=2)
        loser = make_rated(2, rating=7.0, games=2)
        self.engine.adjust(winner, loser)
        self.assertEqual(winner.user_rating, 6.0)
        self.assertEqual(loser.games_played, 2)

    def test_ratings_stay_in_range_and_non_upsets_stay_small(self):
        ratings = [1.0, 2.5, 4.0, 5.5, 7.0, 8.5, 10.0]
        for w in ratings:
            for l in ratings:
                for games in (0, 7, 15, 30):
                    result = self.engine.adjust(make_rated(1, rating=w, games=games), make_rated(2, rating=l, games=games))
                    for item in result:
                        self.assertGreaterEqual(item.user_rating, 1.0)
                        self.assertLessEqual(item.user_rating, 10.0)
                        self.assertEqual(item.user_rating, round(item.user_rating, 1))
                    if not (w < l and l - w > 3.0):
                        self.assertLessEqual(abs(result.updated_winner.user_rating - w), 0.7 + 1e-9)
                        self.assertLessEqual(abs(result.updated_loser.user_rating - l), 0.7 + 1e-9)

    def test_elo_rating_follows_user_rating(self):
        result = self.engine.adjust(make_rated(1, rating=6.0), make_rated(2, rating=7.0))
        self.assertAlmostEqual(result.updated_winner.elo_rating, 64.0)

    def test_constants_are_overridable(self):
        engine = RatingEngine(RatingConstants(min_delta=0.5))
        result = engine.adjust(make_rated(1, rating=9.5, games=12), make_rated(2, rating=5.0, games=3))
        self.assertEqual(result.updated_winner.user_rating, 10.0)
        self.assertEqual(result.updated_loser.user_rating, 4.5)


class TestToughChoice(unittest.TestCase):
    def setUp(self):
        self.engine = RatingEngine(RatingConstants())

    def test_nudges_toward_higher_prior(self):
        result = self.engine.tough_choice(make_rated(1, rating=8.0), make_rated(2, rating=6.0))
        self.assertEqual(result.updated_first.user_rating, 7.1)
        self.assertEqual(result.updated_second.user_rating, 6.9)

    def test_second_higher(self):
        result = self.engine.tough_choice(make_rated(1, rating=6.0), make_rated(2, rating=8.0))
        self.assertEqual(result.updated_first.user_rating, 6.9)
        self.assertEqual(result.updated_second.user_rating, 7.1)

    def test_tie_favours_first(self):
        result = self.engine.tough_choice(make_rated(1, rating=7.0), make_rated(2, rating=7.0))
        self.assertEqual(result.updated_first.user_rating, 7.1)
        self.assertEqual(result.updated_second.user_rating, 6.9)

    def test_known_pair_uses_smaller_nudge(self):
        result = self.engine.tough_choice(make_rated(1, rating=8.0), make_rated(2, rating=6.5), known_vs_known=True)
        self.assertAlmostEqual(result.updated_first.user_rating, 7.3)
        self.assertAlmostEqual(result.updated_second.user_rating, 7.2)

    def test_counts_as_a_game(self):
        result = self.engine.tough_choice(make_rated(1, rating=8.0, games=4), make_rated(2, rating=6.0))
        self.assertEqual(result.updated_first.games_played, 5)
        self.assertEqual(result.updated_second.games_played, 1)

    def test_clamped(self):
        result = self.engine.tough_choice(make_rated(1, rating=10.0), make_rated(2, rating=10.0))
        self.assertEqual(result.updated_first.user_rating, 10.0)
        self.assertEqual(result.updated_second.user_rating, 9.9)

    def test_halves_round_up(self):
        result = self.engine.tough_choice(make_rated(1, rating=5.5), make_rated(2, rating=5.0))
        self.assertEqual(result.updated_first.user_rating, 5.4)
        self.assertEqual(result.updated_second.user_rating, 5.2)


class TestClampRating(unittest.TestCase):
    def test_rounds_half_up(self):
        self.assertEqual(clamp_rating(5.35), 5.4)
        self.assertEqual(clamp_rating(5.15), 5.2)
        self.assertEqual(clamp_rating(2.25), 2.3)

    def test_clamps_range(self):
        self.assertEqual(clamp_rating(0.2), 1.0)
        self.assertEqual(clamp_rating(12), 10.0)


if __name__ == "__main__":
    unittest.main()
