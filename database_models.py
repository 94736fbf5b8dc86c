from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any
from datetime import datetime
from enum import Enum

from betting_engine import ActionType, Phase


class GameStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"

class PlayerModel(BaseModel):
    id: Optional[int] = None
    name: str
    model_type: str  # "openai", "anthropic", "random", "human"
    model_name: str  # "gpt-4o", "claude-sonnet-4-20250514", etc.
    created_at: datetime = Field(default_factory=datetime.now)

class GameModel(BaseModel):
    id: Optional[int] = None
    game_name: str
    starting_chips: int
    small_blind: int
    big_blind: int
    max_hands: Optional[int] = None
    status: GameStatus = GameStatus.ACTIVE
    created_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    total_hands_played: int = 0

class HandModel(BaseModel):
    id: Optional[int] = None
    game_id: int
    hand_number: int
    dealer_position: int
    initial_state: Dict[str, Any]  # table snapshot once the blinds are posted
    pot_size: int = 0
    community_cards: List[str] = Field(default_factory=list)
    winner_ids: List[int] = Field(default_factory=list)  # player IDs
    winnings: Dict[int, int] = Field(default_factory=dict)  # player_id -> amount_won
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

class PlayerHandModel(BaseModel):
    id: Optional[int] = None
    hand_id: int
    player_id: int
    seat_id: str
    hole_cards: List[str]
    starting_chips: int
    ending_chips: int
    final_position: int = 0  # 1 = winner, 2 = everyone else
    folded: bool = False
    all_in: bool = False

class ActionModel(BaseModel):
    id: Optional[int] = None
    game_id: int
    hand_id: int
    hand_number: int
    player_id: int
    seat_id: str
    sequence_number: int  # strictly increasing within a game
    betting_round: Phase
    action_type: ActionType
    amount: Optional[int] = None  # bet size, or the new total for a raise
    chips_moved: int = 0
    pot_size_after: int
    reasoning: Optional[str] = None
    game_state: Dict[str, Any]  # snapshot after the action
    created_at: datetime = Field(default_factory=datetime.now)

class RoundModel(BaseModel):
    hand_number: int
    betting_round: Phase
    actions: List[ActionModel]
    community_cards: List[str]
    pot_size_after: int

class PlayerStatsModel(BaseModel):
    player_id: int
    player_name: str
    model_name: str
    games_played: int
    total_hands: int
    hands_won: int
    win_percentage: float
    total_chips_won: int
    total_actions: int
    action_counts: Dict[str, int]
    fold_percentage: float
    call_percentage: float
    raise_percentage: float
    check_percentage: float
    preflop_aggression: float  # % of preflop bets and raises
    postflop_aggression: float  # % of postflop bets and raises

class StatsOverviewModel(BaseModel):
    total_games: int
    completed_games: int
    active_games: int
    total_hands: int
    total_actions: int

class StatsModel(BaseModel):
    overview: StatsOverviewModel
    action_counts: Dict[str, int]
    players: List[PlayerStatsModel]

class HandDetailModel(BaseModel):
    hand: HandModel
    players: List[PlayerHandModel]
    actions: List[ActionModel]
    game: GameModel
