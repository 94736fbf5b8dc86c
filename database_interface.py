from abc import ABC, abstractmethod
from typing import List, Optional
from database_models import (
    PlayerModel, GameModel, HandModel, PlayerHandModel, ActionModel,
    RoundModel, PlayerStatsModel, StatsModel, HandDetailModel
)

class DatabaseInterface(ABC):
    """Abstract interface for database operations"""

    @abstractmethod
    async def connect(self) -> None:
        """Establish database connection"""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close database connection"""
        pass

    @abstractmethod
    async def init_schema(self) -> None:
        """Initialize database schema/tables"""
        pass

    # Player operations
    @abstractmethod
    async def create_player(self, player: PlayerModel) -> PlayerModel:
        """Create a new player and return with ID"""
        pass

    @abstractmethod
    async def get_player_by_name(self, name: str) -> Optional[PlayerModel]:
        """Get player by name"""
        pass

    @abstractmethod
    async def list_players(self) -> List[PlayerModel]:
        """List all players"""
        pass

    # Game operations
    @abstractmethod
    async def create_game(self, game: GameModel) -> GameModel:
        """Create a new game and return with ID"""
        pass

    @abstractmethod
    async def get_game(self, game_id: int) -> Optional[GameModel]:
        """Get game by ID"""
        pass

    @abstractmethod
    async def update_game(self, game: GameModel) -> GameModel:
        """Update status and totals of a game"""
        pass

    # Hand operations
    @abstractmethod
    async def create_hand(self, hand: HandModel) -> HandModel:
        """Create a new hand and return with ID"""
        pass

    @abstractmethod
    async def get_hand(self, hand_id: int) -> Optional[HandModel]:
        """Get hand by ID"""
        pass

    @abstractmethod
    async def get_hand_by_number(self, game_id: int, hand_number: int) -> Optional[HandModel]:
        """Get a hand by its number within a game"""
        pass

    @abstractmethod
    async def update_hand(self, hand: HandModel) -> HandModel:
        """Store the result of a finished hand"""
        pass

    @abstractmethod
    async def get_hands_by_game(self, game_id: int) -> List[HandModel]:
        """Get all hands for a game"""
        pass

    # Player hand operations
    @abstractmethod
    async def create_player_hand(self, player_hand: PlayerHandModel) -> PlayerHandModel:
        """Create player hand record"""
        pass

    @abstractmethod
    async def update_player_hand(self, player_hand: PlayerHandModel) -> PlayerHandModel:
        """Update ending chips and final position of a player hand"""
        pass

    @abstractmethod
    async def get_player_hands_by_hand(self, hand_id: int) -> List[PlayerHandModel]:
        """Get all player hands for a specific hand"""
        pass

    # Action operations
    @abstractmethod
    async def create_action(self, action: ActionModel) -> ActionModel:
        """Create a new action record"""
        pass

    @abstractmethod
    async def get_actions_by_game(self, game_id: int) -> List[ActionModel]:
        """Get all actions for a game in sequence order"""
        pass

    @abstractmethod
    async def get_actions_by_hand(self, hand_id: int) -> List[ActionModel]:
        """Get all actions for a specific hand in sequence order"""
        pass

    @abstractmethod
    async def get_last_sequence_number(self, game_id: int) -> int:
        """Highest sequence number recorded for a game, 0 when there is none"""
        pass

    @abstractmethod
    async def get_rounds(self, game_id: int) -> List[RoundModel]:
        """Actions of a game grouped by hand and betting round"""
        pass

    # Statistics and aggregations
    @abstractmethod
    async def get_player_stats(self, player_id: int) -> Optional[PlayerStatsModel]:
        """Get comprehensive player statistics"""
        pass

    @abstractmethod
    async def get_all_player_stats(self) -> List[PlayerStatsModel]:
        """Get statistics for all players"""
        pass

    @abstractmethod
    async def get_stats(self) -> StatsModel:
        """Overview counts, action counts and per-player statistics"""
        pass

    @abstractmethod
    async def get_hand_detail(self, hand_id: int) -> Optional[HandDetailModel]:
        """Get complete hand details with all players and actions"""
        pass

