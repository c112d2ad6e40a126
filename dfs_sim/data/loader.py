"""
CSV loader for player pools.

Accepts DraftKings salary exports merged with projections as well as simple
hand-made pools; column names are matched against a list of aliases.
"""

import logging
import pandas as pd
from typing import List, Dict, Optional

from ..types import Player

logger = logging.getLogger(__name__)


# Canonical field -> accepted CSV headers, in priority order
COLUMN_ALIASES: Dict[str, List[str]] = {
    'id': ['ID', 'Id', 'DFS ID', 'player_id', 'PlayerID'],
    'name': ['Name', 'Player', 'name'],
    'position': ['Position', 'Pos', 'position'],
    'team': ['Team', 'TeamAbbrev', 'team'],
    'salary': ['Salary', 'salary'],
    'projection': ['Projection', 'Proj', 'FPTS', 'dk_points', 'My Proj', 'projection'],
    'game': ['Game', 'Game Info', 'game'],
    'opponent': ['Opponent', 'Opp', 'opponent'],
    'floor': ['Floor', 'floor'],
    'ceiling': ['Ceiling', 'ceiling'],
    'ownership': ['Ownership', 'Own', 'Adj Own', 'My Own', 'ownership'],
    'tee_time': ['TeeTime', 'Tee Time', 'tee_time'],
}

REQUIRED_FIELDS = ('id', 'name', 'position', 'salary', 'projection')


def load_players(
    csv_path: str,
    min_projection: float = 0.0
) -> List[Player]:
    """
    Load a player pool from CSV.

    Args:
        csv_path: Path to the CSV
        min_projection: Drop players projecting below this

    Returns:
        Players in file order
    """
    df = pd.read_csv(csv_path)
    columns = _resolve_columns(df)

    missing = [f for f in REQUIRED_FIELDS if f not in columns]
    if missing:
        raise ValueError(
            "Missing required columns in CSV: "
            + ", ".join(f"{f} (one of {COLUMN_ALIASES[f]})" for f in missing)
        )

    df = df[df[columns['salary']].notna() & df[columns['projection']].notna()].copy()

    if min_projection > 0.0:
        before = len(df)
        df = df[df[columns['projection']] >= min_projection]
        logger.info(
            "min_projection=%.1f: removed %d players, kept %d",
            min_projection, before - len(df), len(df)
        )

    if len(df) == 0:
        raise ValueError(f"No valid players found in {csv_path}")

    players = [_build_player(row, columns) for _, row in df.iterrows()]
    logger.info("Loaded %d players from %s", len(players), csv_path)
    return players


def _resolve_columns(df: pd.DataFrame) -> Dict[str, str]:
    columns = {}
    for canonical, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in df.columns:
                columns[canonical] = alias
                break
    return columns


def _text(row: pd.Series, columns: Dict[str, str], key: str) -> str:
    col = columns.get(key)
    if col is None or pd.isna(row[col]):
        return ''
    return str(row[col]).strip()


def _number(row: pd.Series, columns: Dict[str, str], key: str) -> float:
    col = columns.get(key)
    if col is None or pd.isna(row[col]):
        return 0.0
    return float(row[col])


def _game_key(raw_game: str, team: str, opponent: str) -> str:
    """
    Normalize a game identifier.

    DraftKings 'Game Info' looks like 'BUF@KC 01/12/2025 08:15PM ET'; only the
    matchup is kept. Without one, the game is built from team and opponent.
    """
    if raw_game:
        return raw_game.split()[0]
    if team and opponent:
        return '@'.join(sorted([team, opponent]))
    return ''


def _build_player(row: pd.Series, columns: Dict[str, str]) -> Player:
    team = _text(row, columns, 'team')
    opponent = _text(row, columns, 'opponent')
    ownership = _number(row, columns, 'ownership')

    return Player(
        id=str(row[columns['id']]).strip(),
        name=_text(row, columns, 'name'),
        position=_text(row, columns, 'position').upper(),
        team=team,
        game=_game_key(_text(row, columns, 'game'), team, opponent),
        salary=int(row[columns['salary']]),
        projection=float(row[columns['projection']]),
        floor=_number(row, columns, 'floor'),
        ceiling=_number(row, columns, 'ceiling'),
        ownership=ownership,
        opponent=opponent,
        tee_time=_text(row, columns, 'tee_time'),
    )


def find_player(players: List[Player], name: str) -> Optional[Player]:
    """Find a player by name (case-insensitive)."""
    target = name.strip().lower()
    for player in players:
        if player.name.lower() == target:
            return player
    return None
