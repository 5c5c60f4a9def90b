from typing import Iterable, Optional, Sequence

from league.data_models.completion import CompletionStatus, DivisionInfo
from league.data_models.fight import FightRecord
from league.utils.fight_identifier import is_final_stage

class CompletionDetector:
    """Decides whether league and cup seasons have reached their terminal state"""

    @staticmethod
    def is_league_completed(divisions: Sequence[DivisionInfo], fights: Iterable[FightRecord]) -> bool:
        """
        Check whether every division has decided all fights of its final round

        Args:
            divisions: Divisions of the league season with their total rounds
            fights: All fights of the league season

        Returns:
            False if there are no divisions, a division has no final round
            fights, or any final round fight lacks a winner
        """
        if not divisions:
            return False

        fights = list(fights)
        for division in divisions:
            last_round = [
                fight for fight in fights
                if fight.division == division.division and fight.round == division.total_rounds
            ]
            if not last_round:
                return False
            if not all(fight.is_decided for fight in last_round):
                return False
        return True

    @staticmethod
    def is_cup_completed(fights: Iterable[FightRecord]) -> bool:
        """
        Check whether every fight of the cup's terminal stage has a winner

        Args:
            fights: All fights of the cup season

        Returns:
            False if no terminal stage fight exists or one is undecided
        """
        final_fights = [fight for fight in fights if is_final_stage(fight.fight_identifier)]
        if not final_fights:
            return False
        return all(fight.is_decided for fight in final_fights)

    @staticmethod
    def build_status(league_completed: bool, cc_completed: bool, ic_completed: bool,
                     league_name: Optional[str] = None, **details) -> CompletionStatus:
        """
        Combine the three completion flags into a status with a readable reason

        Args:
            league_completed: League season completion
            cc_completed: Champions Cup season completion
            ic_completed: Invicta Cup season completion
            league_name: Name used for the league in the reason
            **details: season_number and season ids passed through to the status

        Returns:
            CompletionStatus whose reason lists what is still pending
        """
        all_completed = league_completed and cc_completed and ic_completed
        league_label = league_name or 'League'

        if all_completed:
            reason = 'All competitions completed'
        else:
            pending = [
                name for name, completed in (
                    (league_label, league_completed),
                    ('CC', cc_completed),
                    ('IC', ic_completed),
                )
                if not completed
            ]
            reason = f"Waiting for: {', '.join(pending)}"

        return CompletionStatus(
            all_completed=all_completed,
            league_completed=league_completed,
            cc_completed=cc_completed,
            ic_completed=ic_completed,
            reason=reason,
            league_name=league_label,
            **details
        )
