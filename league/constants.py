"""
Engine-wide constants for the fight league standings engine.

This module contains all magic numbers and fixed values used throughout
the codebase to improve maintainability and clarity.
"""

class StandingsConstants:
    """Constants related to per-round standings."""

    # Points awarded for a win when no configuration overrides it
    DEFAULT_POINTS_PER_WIN = 3


class RankingWeights:
    """Weights of the global ranking score formula."""

    WIN_PERCENTAGE_DIVISOR = 10      # win% / 10
    LEAGUE_TITLE = 5
    CHAMPIONS_CUP_TITLE = 4
    INVICTA_CUP_TITLE = 4
    CHAMPIONS_CUP_APPEARANCE = 3
    INVICTA_CUP_APPEARANCE = 2
    DIVISION_1_APPEARANCE = 1.0
    DIVISION_2_APPEARANCE = 0.75
    DIVISION_3_APPEARANCE = 0.5
    WIN_STREAK_DIVISOR = 5           # longest win streak / 5

    # Scores are stored rounded to this many decimals
    SCORE_PRECISION = 2

    @classmethod
    def as_dict(cls) -> dict:
        """Weights keyed by the names accepted in the ranking.weights configuration"""
        return {
            'win_percentage_divisor': cls.WIN_PERCENTAGE_DIVISOR,
            'league_title': cls.LEAGUE_TITLE,
            'champions_cup_title': cls.CHAMPIONS_CUP_TITLE,
            'invicta_cup_title': cls.INVICTA_CUP_TITLE,
            'champions_cup_appearance': cls.CHAMPIONS_CUP_APPEARANCE,
            'invicta_cup_appearance': cls.INVICTA_CUP_APPEARANCE,
            'division_1_appearance': cls.DIVISION_1_APPEARANCE,
            'division_2_appearance': cls.DIVISION_2_APPEARANCE,
            'division_3_appearance': cls.DIVISION_3_APPEARANCE,
            'win_streak_divisor': cls.WIN_STREAK_DIVISOR,
        }


class StageCodes:
    """Cup stage codes embedded in fight identifiers."""

    FINAL = "FN"
    SEMIFINAL = "SF"
    QUARTERFINAL = "QF"

    # Older seasons spell the terminal stage out
    FINAL_MARKER = "FINAL"

    # Chronological order of named stages, after any numbered R<n> stage
    NAMED_STAGE_ORDER = {
        QUARTERFINAL: 100,
        SEMIFINAL: 200,
        FINAL: 300,
    }


class CupResults:
    """Cup results recorded in a fighter's season details."""

    ROUND_1 = "Round 1"
    QUARTERFINALS = "Quarterfinals"
    SEMIFINALS = "Semifinals"
    FINALS = "Finals"
    CHAMPION = "Champion"


class LockConstants:
    """Constants for the global ranking single-writer lock."""

    RANKING_LOCK_KEY = "league:ranking_lock"
