"""
Fight Identifier Parser Utility

Fight identifiers are the stable, human-readable keys that order fights inside
a round and tell cup stages apart.

Formats:
    "S7-D1-R1-F1"       league fight (season, division, round, fight number)
    "IFC-S7-D1-R1-F1"   league fight with competition prefix
    "CC-S6-FN-F1"       cup fight (competition, season, stage, fight number)
    "CC-S3-R3-F1"       cup fight from older seasons with a numbered stage
"""

import re
from dataclasses import dataclass
from typing import Optional

from league.constants import StageCodes, CupResults


_SEASON_RE = re.compile(r'^S(\d+)$')
_DIVISION_RE = re.compile(r'^D(\d+)$')
_ROUND_RE = re.compile(r'^R(\d+)$')
_FIGHT_RE = re.compile(r'^F(\d+)$')


@dataclass(frozen=True)
class ParsedFightIdentifier:
    """Components of a fight identifier."""
    competition_code: Optional[str]
    season: int
    division: Optional[int]
    round: Optional[int]
    stage: Optional[str]
    fight_number: int

    @property
    def is_cup(self) -> bool:
        return self.stage is not None


def _match_number(pattern: re.Pattern, part: str, identifier: str) -> int:
    match = pattern.match(part)
    if not match:
        raise ValueError(f"Invalid fight identifier format: {identifier}")
    return int(match.group(1))


def parse_fight_identifier(identifier: str) -> ParsedFightIdentifier:
    """
    Parse a fight identifier string into its components.

    Args:
        identifier: Fight identifier such as "S7-D1-R1-F1" or "CC-S6-FN-F1"

    Returns:
        ParsedFightIdentifier with league fields or cup stage filled in

    Raises:
        ValueError: If the identifier does not follow a known format
    """
    if not identifier:
        raise ValueError("Fight identifier cannot be empty")

    parts = identifier.strip().upper().split('-')

    competition_code = None
    if not _SEASON_RE.match(parts[0]):
        competition_code = parts[0]
        parts = parts[1:]

    if len(parts) < 3:
        raise ValueError(f"Invalid fight identifier format: {identifier}")

    season = _match_number(_SEASON_RE, parts[0], identifier)
    fight_number = _match_number(_FIGHT_RE, parts[-1], identifier)

    # League: S-D-R-F
    if len(parts) == 4 and _DIVISION_RE.match(parts[1]):
        return ParsedFightIdentifier(
            competition_code=competition_code,
            season=season,
            division=_match_number(_DIVISION_RE, parts[1], identifier),
            round=_match_number(_ROUND_RE, parts[2], identifier),
            stage=None,
            fight_number=fight_number,
        )

    # Cup: S-<stage>-F
    if len(parts) == 3 and competition_code is not None:
        return ParsedFightIdentifier(
            competition_code=competition_code,
            season=season,
            division=None,
            round=None,
            stage=parts[1],
            fight_number=fight_number,
        )

    raise ValueError(f"Invalid fight identifier format: {identifier}")


def extract_stage_code(identifier: str) -> Optional[str]:
    """
    Extract the cup stage code from a fight identifier.

    Examples:
        "CC-S6-FN-F1" -> "FN"
        "S7-D1-R1-F1" -> None
    """
    try:
        return parse_fight_identifier(identifier).stage
    except ValueError:
        return None


def is_final_stage_code(stage: Optional[str]) -> bool:
    """Check whether a stage code denotes the terminal stage of a cup"""
    if not stage:
        return False
    stage = stage.upper()
    if stage == StageCodes.FINAL:
        return True
    # "SEMIFINAL" and "QUARTERFINAL" contain the marker but are not terminal
    if stage.startswith('SEMI') or stage.startswith('QUARTER'):
        return False
    return StageCodes.FINAL_MARKER in stage


def is_final_stage(identifier: str) -> bool:
    """Check whether a fight identifier belongs to the terminal cup stage"""
    return is_final_stage_code(extract_stage_code(identifier))


def stage_order(stage: Optional[str]) -> int:
    """
    Chronological position of a cup stage.

    Numbered stages ("R1", "R2") sort by their number, named stages follow
    them in quarterfinal, semifinal, final order.
    """
    if not stage:
        return 0
    stage = stage.upper()
    round_match = _ROUND_RE.match(stage)
    if round_match:
        return int(round_match.group(1))
    if is_final_stage_code(stage):
        return StageCodes.NAMED_STAGE_ORDER[StageCodes.FINAL]
    if stage.startswith('SEMI'):
        return StageCodes.NAMED_STAGE_ORDER[StageCodes.SEMIFINAL]
    if stage.startswith('QUARTER'):
        return StageCodes.NAMED_STAGE_ORDER[StageCodes.QUARTERFINAL]
    return StageCodes.NAMED_STAGE_ORDER.get(stage, 0)


def cup_result_for_stage(stage: Optional[str]) -> str:
    """Cup result reached by a fighter whose last fight was in this stage"""
    order = stage_order(stage)
    if order == StageCodes.NAMED_STAGE_ORDER[StageCodes.FINAL]:
        return CupResults.FINALS
    if order == StageCodes.NAMED_STAGE_ORDER[StageCodes.SEMIFINAL]:
        return CupResults.SEMIFINALS
    if order == StageCodes.NAMED_STAGE_ORDER[StageCodes.QUARTERFINAL]:
        return CupResults.QUARTERFINALS
    return CupResults.ROUND_1
