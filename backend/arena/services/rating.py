"""Elo helpers for ranked matches."""

import math


def k_factor(games_played: int) -> int:
    return 40 if int(games_played) < 10 else 20


def expected_score(r_self: int, r_other: int) -> float:
    return 1.0 / (1.0 + math.pow(10.0, (float(r_other) - float(r_self)) / 400.0))


def compute_match_update(*, rating_a: int, rating_b: int, games_played_a: int,
                         games_played_b: int, winner_side: str) -> dict[str, int]:
    """Rating deltas for both sides of a decided match, keyed 'a' and 'b'."""
    score_a = 1.0 if winner_side == 'a' else 0.0
    delta_a = k_factor(games_played_a) * (score_a - expected_score(rating_a, rating_b))
    delta_b = k_factor(games_played_b) * ((1.0 - score_a) - expected_score(rating_b, rating_a))
    return {'a': int(round(delta_a)), 'b': int(round(delta_b))}


def rating_window(rating: int, tolerance: int) -> dict[str, int]:
    return {'min': int(rating) - int(tolerance), 'max': int(rating) + int(tolerance)}
