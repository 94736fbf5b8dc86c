import sqlite3
import json
import logging
from typing import List, Optional, Dict
from datetime import datetime
from database_interface import DatabaseInterface
from database_models import (
    PlayerModel, GameModel, GameStatus, HandModel, PlayerHandModel, ActionModel,
    RoundModel, PlayerStatsModel, StatsOverviewModel, StatsModel, HandDetailModel,
    ActionType, Phase
)

logger = logging.getLogger(__name__)


def _action_counts(rows) -> Dict[str, int]:
    counts = {action.value.lower(): 0 for action in ActionType}
    for row in rows:
        counts[row['action_type'].lower()] = row['count']
    return counts


def _percentage(part: int, whole: int) -> float:
    return (part / whole * 100) if whole > 0 else 0


class SQLiteDatabase(DatabaseInterface):
    def __init__(self, db_path: str = "poker_games.db"):
        self.db_path = db_path
        self.connection = None

    async def connect(self) -> None:
        """Establish database connection"""
        self.connection = sqlite3.connect(self.db_path)
        self.connection.row_factory = sqlite3.Row
        await self.init_schema()
        logger.debug("Connected to %s", self.db_path)

    async def disconnect(self) -> None:
        """Close database connection"""
        if self.connection:
            self.connection.close()
            self.connection = None

    async def init_schema(self) -> None:
        """Initialize database schema/tables"""
        schema = """
        CREATE TABLE IF NOT EXISTS players (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT UNIQUE NOT NULL,
            model_type TEXT NOT NULL,
            model_name TEXT NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS games (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            game_name TEXT NOT NULL,
            starting_chips INTEGER NOT NULL,
            small_blind INTEGER NOT NULL,
            big_blind INTEGER NOT NULL,
            max_hands INTEGER NULL,
            status TEXT NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            completed_at TIMESTAMP NULL,
            total_hands_played INTEGER DEFAULT 0
        );

        CREATE TABLE IF NOT EXISTS hands (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            game_id INTEGER NOT NULL,
            hand_number INTEGER NOT NULL,
            dealer_position INTEGER NOT NULL,
            initial_state TEXT NOT NULL, -- JSON snapshot
            pot_size INTEGER NOT NULL,
            community_cards TEXT NOT NULL, -- JSON array
            winner_ids TEXT NOT NULL, -- JSON array
            winnings TEXT NOT NULL, -- JSON dict
            description TEXT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            completed_at TIMESTAMP NULL,
            UNIQUE (game_id, hand_number),
            FOREIGN KEY (game_id) REFERENCES games(id)
        );

        CREATE TABLE IF NOT EXISTS player_hands (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            hand_id INTEGER NOT NULL,
            player_id INTEGER NOT NULL,
            seat_id TEXT NOT NULL,
            hole_cards TEXT NOT NULL, -- JSON array
            starting_chips INTEGER NOT NULL,
            ending_chips INTEGER NOT NULL,
            final_position INTEGER NOT NULL,
            folded BOOLEAN DEFAULT FALSE,
            all_in BOOLEAN DEFAULT FALSE,
            FOREIGN KEY (hand_id) REFERENCES hands(id),
            FOREIGN KEY (player_id) REFERENCES players(id)
        );

        CREATE TABLE IF NOT EXISTS actions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            game_id INTEGER NOT NULL,
            hand_id INTEGER NOT NULL,
            hand_number INTEGER NOT NULL,
            player_id INTEGER NOT NULL,
            seat_id TEXT NOT NULL,
            sequence_number INTEGER NOT NULL,
            betting_round TEXT NOT NULL,
            action_type TEXT NOT NULL,
            amount INTEGER NULL,
            chips_moved INTEGER NOT NULL,
            pot_size_after INTEGER NOT NULL,
            reasoning TEXT NULL,
            game_state TEXT NOT NULL, -- JSON snapshot
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (game_id, sequence_number),
            FOREIGN KEY (game_id) REFERENCES games(id),
            FOREIGN KEY (hand_id) REFERENCES hands(id),
            FOREIGN KEY (player_id) REFERENCES players(id)
        );

        CREATE INDEX IF NOT EXISTS idx_hands_game ON hands(game_id);
        CREATE INDEX IF NOT EXISTS idx_player_hands_hand ON player_hands(hand_id);
        CREATE INDEX IF NOT EXISTS idx_player_hands_player ON player_hands(player_id);
        CREATE INDEX IF NOT EXISTS idx_actions_hand ON actions(hand_id);
        CREATE INDEX IF NOT EXISTS idx_actions_player ON actions(player_id);
        """

        cursor = self.connection.cursor()
        cursor.executescript(schema)
        self.connection.commit()

    def _row_to_player(self, row: sqlite3.Row) -> PlayerModel:
        return PlayerModel(
            id=row['id'],
            name=row['name'],
            model_type=row['model_type'],
            model_name=row['model_name'],
            created_at=datetime.fromisoformat(row['created_at'])
        )

    def _row_to_game(self, row: sqlite3.Row) -> GameModel:
        return GameModel(
            id=row['id'],
            game_name=row['game_name'],
            starting_chips=row['starting_chips'],
            small_blind=row['small_blind'],
            big_blind=row['big_blind'],
            max_hands=row['max_hands'],
            status=GameStatus(row['status']),
            created_at=datetime.fromisoformat(row['created_at']),
            completed_at=datetime.fromisoformat(row['completed_at']) if row['completed_at'] else None,
            total_hands_played=row['total_hands_played']
        )

    def _row_to_hand(self, row: sqlite3.Row) -> HandModel:
        return HandModel(
            id=row['id'],
            game_id=row['game_id'],
            hand_number=row['hand_number'],
            dealer_position=row['dealer_position'],
            initial_state=json.loads(row['initial_state']),
            pot_size=row['pot_size'],
            community_cards=json.loads(row['community_cards']),
            winner_ids=json.loads(row['winner_ids']),
            winnings={int(k): v for k, v in json.loads(row['winnings']).items()},
            description=row['description'],
            created_at=datetime.fromisoformat(row['created_at']),
            completed_at=datetime.fromisoformat(row['completed_at']) if row['completed_at'] else None
        )

    def _row_to_player_hand(self, row: sqlite3.Row) -> PlayerHandModel:
        return PlayerHandModel(
            id=row['id'],
            hand_id=row['hand_id'],
            player_id=row['player_id'],
            seat_id=row['seat_id'],
            hole_cards=json.loads(row['hole_cards']),
            starting_chips=row['starting_chips'],
            ending_chips=row['ending_chips'],
            final_position=row['final_position'],
            folded=bool(row['folded']),
            all_in=bool(row['all_in'])
        )

    def _row_to_action(self, row: sqlite3.Row) -> ActionModel:
        return ActionModel(
            id=row['id'],
            game_id=row['game_id'],
            hand_id=row['hand_id'],
            hand_number=row['hand_number'],
            player_id=row['player_id'],
            seat_id=row['seat_id'],
            sequence_number=row['sequence_number'],
            betting_round=Phase(row['betting_round']),
            action_type=ActionType(row['action_type']),
            amount=row['amount'],
            chips_moved=row['chips_moved'],
            pot_size_after=row['pot_size_after'],
            reasoning=row['reasoning'],
            game_state=json.loads(row['game_state']),
            created_at=datetime.fromisoformat(row['created_at'])
        )

    # Player operations
    async def create_player(self, player: PlayerModel) -> PlayerModel:
        cursor = self.connection.cursor()
        cursor.execute("""
            INSERT INTO players (name, model_type, model_name, created_at)
            VALUES (?, ?, ?, ?)
        """, (player.name, player.model_type, player.model_name, player.created_at.isoformat()))
        self.connection.commit()

        player.id = cursor.lastrowid
        return player

    async def get_player_by_name(self, name: str) -> Optional[PlayerModel]:
        cursor = self.connection.cursor()
        cursor.execute("SELECT * FROM players WHERE name = ?", (name,))
        row = cursor.fetchone()
        return self._row_to_player(row) if row else None

    async def list_players(self) -> List[PlayerModel]:
        cursor = self.connection.cursor()
        cursor.execute("SELECT * FROM players ORDER BY id")
        return [self._row_to_player(row) for row in cursor.fetchall()]

    # Game operations
    async def create_game(self, game: GameModel) -> GameModel:
        cursor = self.connection.cursor()
        cursor.execute("""
            INSERT INTO games (game_name, starting_chips, small_blind, big_blind, max_hands,
                               status, created_at, completed_at, total_hands_played)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (game.game_name, game.starting_chips, game.small_blind, game.big_blind,
              game.max_hands, game.status.value, game.created_at.isoformat(),
              game.completed_at.isoformat() if game.completed_at else None,
              game.total_hands_played))
        self.connection.commit()

        game.id = cursor.lastrowid
        return game

    async def get_game(self, game_id: int) -> Optional[GameModel]:
        cursor = self.connection.cursor()
        cursor.execute("SELECT * FROM games WHERE id = ?", (game_id,))
        row = cursor.fetchone()
        return self._row_to_game(row) if row else None

    async def update_game(self, game: GameModel) -> GameModel:
        cursor = self.connection.cursor()
        cursor.execute("""
            UPDATE games SET game_name = ?, status = ?, completed_at = ?, total_hands_played = ?
            WHERE id = ?
        """, (game.game_name, game.status.value,
              game.completed_at.isoformat() if game.completed_at else None,
              game.total_hands_played, game.id))
        self.connection.commit()
        return game

    # Hand operations
    async def create_hand(self, hand: HandModel) -> HandModel:
        cursor = self.connection.cursor()
        cursor.execute("""
            INSERT INTO hands (game_id, hand_number, dealer_position, initial_state, pot_size,
                               community_cards, winner_ids, winnings, description, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (hand.game_id, hand.hand_number, hand.dealer_position, json.dumps(hand.initial_state),
              hand.pot_size, json.dumps(hand.community_cards), json.dumps(hand.winner_ids),
              json.dumps(hand.winnings), hand.description, hand.created_at.isoformat()))
        self.connection.commit()

        hand.id = cursor.lastrowid
        return hand

    async def get_hand(self, hand_id: int) -> Optional[HandModel]:
        cursor = self.connection.cursor()
        cursor.execute("SELECT * FROM hands WHERE id = ?", (hand_id,))
        row = cursor.fetchone()
        return self._row_to_hand(row) if row else None

    async def get_hand_by_number(self, game_id: int, hand_number: int) -> Optional[HandModel]:
        cursor = self.connection.cursor()
        cursor.execute("SELECT * FROM hands WHERE game_id = ? AND hand_number = ?",
                       (game_id, hand_number))
        row = cursor.fetchone()
        return self._row_to_hand(row) if row else None

    async def update_hand(self, hand: HandModel) -> HandModel:
        cursor = self.connection.cursor()
        cursor.execute("""
            UPDATE hands SET pot_size = ?, community_cards = ?, winner_ids = ?, winnings = ?,
                             description = ?, completed_at = ?
            WHERE id = ?
        """, (hand.pot_size, json.dumps(hand.community_cards), json.dumps(hand.winner_ids),
              json.dumps(hand.winnings), hand.description,
              hand.completed_at.isoformat() if hand.completed_at else None, hand.id))
        self.connection.commit()
        return hand

    async def get_hands_by_game(self, game_id: int) -> List[HandModel]:
        cursor = self.connection.cursor()
        cursor.execute("SELECT * FROM hands WHERE game_id = ? ORDER BY hand_number", (game_id,))
        return [self._row_to_hand(row) for row in cursor.fetchall()]

    # Player hand operations
    async def create_player_hand(self, player_hand: PlayerHandModel) -> PlayerHandModel:
        cursor = self.connection.cursor()
        cursor.execute("""
            INSERT INTO player_hands (hand_id, player_id, seat_id, hole_cards, starting_chips,
                                      ending_chips, final_position, folded, all_in)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (player_hand.hand_id, player_hand.player_id, player_hand.seat_id,
              json.dumps(player_hand.hole_cards), player_hand.starting_chips,
              player_hand.ending_chips, player_hand.final_position,
              player_hand.folded, player_hand.all_in))
        self.connection.commit()

        player_hand.id = cursor.lastrowid
        return player_hand

    async def update_player_hand(self, player_hand: PlayerHandModel) -> PlayerHandModel:
        cursor = self.connection.cursor()
        cursor.execute("""
            UPDATE player_hands SET ending_chips = ?, final_position = ?, folded = ?, all_in = ?
            WHERE id = ?
        """, (player_hand.ending_chips, player_hand.final_position,
              player_hand.folded, player_hand.all_in, player_hand.id))
        self.connection.commit()
        return player_hand

    async def get_player_hands_by_hand(self, hand_id: int) -> List[PlayerHandModel]:
        cursor = self.connection.cursor()
        cursor.execute("SELECT * FROM player_hands WHERE hand_id = ? ORDER BY id", (hand_id,))
        return [self._row_to_player_hand(row) for row in cursor.fetchall()]

    # Action operations
    async def create_action(self, action: ActionModel) -> ActionModel:
        cursor = self.connection.cursor()
        cursor.execute("""
            INSERT INTO actions (game_id, hand_id, hand_number, player_id, seat_id, sequence_number,
                                 betting_round, action_type, amount, chips_moved, pot_size_after,
                                 reasoning, game_state, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (action.game_id, action.hand_id, action.hand_number, action.player_id, action.seat_id,
              action.sequence_number, action.betting_round.value, action.action_type.value,
              action.amount, action.chips_moved, action.pot_size_after, action.reasoning,
              json.dumps(action.game_state), action.created_at.isoformat()))
        self.connection.commit()

        action.id = cursor.lastrowid
        return action

    async def get_actions_by_game(self, game_id: int) -> List[ActionModel]:
        cursor = self.connection.cursor()
        cursor.execute("SELECT * FROM actions WHERE game_id = ? ORDER BY sequence_number", (game_id,))
        return [self._row_to_action(row) for row in cursor.fetchall()]

    async def get_actions_by_hand(self, hand_id: int) -> List[ActionModel]:
        cursor = self.connection.cursor()
        cursor.execute("SELECT * FROM actions WHERE hand_id = ? ORDER BY sequence_number", (hand_id,))
        return [self._row_to_action(row) for row in cursor.fetchall()]

    async def get_last_sequence_number(self, game_id: int) -> int:
        cursor = self.connection.cursor()
        cursor.execute("SELECT MAX(sequence_number) AS last FROM actions WHERE game_id = ?", (game_id,))
        row = cursor.fetchone()
        return row['last'] or 0

    async def get_rounds(self, game_id: int) -> List[RoundModel]:
        rounds: List[RoundModel] = []
        for action in await self.get_actions_by_game(game_id):
            current = rounds[-1] if rounds else None
            if (current is None or current.hand_number != action.hand_number
                    or current.betting_round != action.betting_round):
                current = RoundModel(
                    hand_number=action.hand_number,
                    betting_round=action.betting_round,
                    actions=[],
                    community_cards=[],
                    pot_size_after=0
                )
                rounds.append(current)
            current.actions.append(action)
            current.pot_size_after = action.pot_size_after
            current.community_cards = action.game_state.get("community_cards", [])
        return rounds

    # Statistics and aggregations
    async def get_player_stats(self, player_id: int) -> Optional[PlayerStatsModel]:
        cursor = self.connection.cursor()

        # Get basic player info
        cursor.execute("SELECT * FROM players WHERE id = ?", (player_id,))
        player_row = cursor.fetchone()
        if not player_row:
            return None

        cursor.execute("""
            SELECT
                COUNT(DISTINCT h.game_id) as games_played,
                COUNT(DISTINCT ph.hand_id) as total_hands,
                COUNT(DISTINCT CASE WHEN ph.final_position = 1 THEN ph.hand_id END) as hands_won,
                SUM(CASE WHEN ph.final_position = 1 THEN ph.ending_chips - ph.starting_chips ELSE 0 END)
                    as total_chips_won
            FROM player_hands ph
            JOIN hands h ON ph.hand_id = h.id
            WHERE ph.player_id = ?
        """, (player_id,))
        stats_row = cursor.fetchone()

        cursor.execute("""
            SELECT action_type, COUNT(*) as count
            FROM actions
            WHERE player_id = ?
            GROUP BY action_type
        """, (player_id,))
        action_counts = _action_counts(cursor.fetchall())
        total_actions = sum(action_counts.values())

        cursor.execute("""
            SELECT
                SUM(CASE WHEN betting_round = 'PREFLOP' AND action_type IN ('BET', 'RAISE') THEN 1 ELSE 0 END) as preflop_raises,
                SUM(CASE WHEN betting_round != 'PREFLOP' AND action_type IN ('BET', 'RAISE') THEN 1 ELSE 0 END) as postflop_raises,
                SUM(CASE WHEN betting_round = 'PREFLOP' THEN 1 ELSE 0 END) as preflop_actions,
                SUM(CASE WHEN betting_round != 'PREFLOP' THEN 1 ELSE 0 END) as postflop_actions
            FROM actions
            WHERE player_id = ?
        """, (player_id,))
        aggr_row = cursor.fetchone()

        total_hands = stats_row['total_hands']
        hands_won = stats_row['hands_won']

        return PlayerStatsModel(
            player_id=player_id,
            player_name=player_row['name'],
            model_name=player_row['model_name'],
            games_played=stats_row['games_played'],
            total_hands=total_hands,
            hands_won=hands_won,
            win_percentage=_percentage(hands_won, total_hands),
            total_chips_won=stats_row['total_chips_won'] or 0,
            total_actions=total_actions,
            action_counts=action_counts,
            fold_percentage=_percentage(action_counts['fold'], total_actions),
            call_percentage=_percentage(action_counts['call'], total_actions),
            raise_percentage=_percentage(action_counts['raise'], total_actions),
            check_percentage=_percentage(action_counts['check'], total_actions),
            preflop_aggression=_percentage(aggr_row['preflop_raises'] or 0, aggr_row['preflop_actions'] or 0),
            postflop_aggression=_percentage(aggr_row['postflop_raises'] or 0, aggr_row['postflop_actions'] or 0)
        )

    async def get_all_player_stats(self) -> List[PlayerStatsModel]:
        players = await self.list_players()
        stats = []
        for player in players:
            player_stats = await self.get_player_stats(player.id)
            if player_stats:
                stats.append(player_stats)
        return stats

    async def get_stats(self) -> StatsModel:
        cursor = self.connection.cursor()
        cursor.execute("""
            SELECT
                COUNT(*) as total_games,
                SUM(CASE WHEN status = 'completed' THEN 1 ELSE 0 END) as completed_games,
                SUM(CASE WHEN status = 'active' THEN 1 ELSE 0 END) as active_games
            FROM games
        """)
        games_row = cursor.fetchone()
        cursor.execute("SELECT COUNT(*) as total FROM hands")
        total_hands = cursor.fetchone()['total']
        cursor.execute("SELECT action_type, COUNT(*) as count FROM actions GROUP BY action_type")
        action_counts = _action_counts(cursor.fetchall())

        overview = StatsOverviewModel(
            total_games=games_row['total_games'],
            completed_games=games_row['completed_games'] or 0,
            active_games=games_row['active_games'] or 0,
            total_hands=total_hands,
            total_actions=sum(action_counts.values())
        )
        return StatsModel(
            overview=overview,
            action_counts=action_counts,
            players=await self.get_all_player_stats()
        )

    async def get_hand_detail(self, hand_id: int) -> Optional[HandDetailModel]:
        hand = await self.get_hand(hand_id)
        if not hand:
            return None

        game = await self.get_game(hand.game_id)
        players = await self.get_player_hands_by_hand(hand_id)
        actions = await self.get_actions_by_hand(hand_id)

        return HandDetailModel(
            hand=hand,
            players=players,
            actions=actions,
            game=game
        )

