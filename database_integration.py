import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union
from datetime import datetime
from database_interface import DatabaseInterface
from database_models import (
    PlayerModel, GameModel, GameStatus, HandModel, PlayerHandModel, ActionModel
)
from ai_players import AIPlayer
from betting_engine import ActionType, PlayerState, TableConfig, TableState, apply_action
from poker_errors import IllegalActionError, ReplayError
from poker_game import cards_to_labels

logger = logging.getLogger(__name__)


def model_type_of(player: Optional[AIPlayer]) -> str:
    if player is None:
        return "human"
    class_name = player.__class__.__name__.lower()
    if 'anthropic' in class_name:
        return "anthropic"
    if 'openai' in class_name:
        return "openai"
    if 'random' in class_name:
        return "random"
    return "unknown"


def replay_actions(initial_state: TableState, actions: Sequence[ActionModel]) -> List[TableState]:
    """Re-apply stored actions and check each result against its stored snapshot."""
    states = []
    state = initial_state
    last_sequence = None
    for action in actions:
        if last_sequence is not None and action.sequence_number <= last_sequence:
            raise ReplayError(
                f"Sequence number {action.sequence_number} does not follow {last_sequence}")
        last_sequence = action.sequence_number

        try:
            state = apply_action(state, action.action_type, action.amount, player_id=action.seat_id)
        except IllegalActionError as e:
            raise ReplayError(f"Action {action.sequence_number} cannot be replayed: {e}") from e

        if state != TableState.from_snapshot(action.game_state):
            raise ReplayError(f"Replayed state differs from the stored one at action {action.sequence_number}")
        states.append(state)
    return states


class DatabaseIntegration:
    def __init__(self, db: DatabaseInterface):
        self.db = db
        self.player_id_cache: Dict[str, int] = {}  # seat id -> player row id
        self.hand_id_cache: Dict[Tuple[int, int], int] = {}  # (game id, hand number) -> hand row id
        self.sequence_counter: Dict[int, int] = {}  # game id -> last sequence number

    async def register_players(self, seats: Sequence[PlayerState],
                               ai_players: Optional[Mapping[str, AIPlayer]] = None) -> None:
        """Create or look up a player row for every seat"""
        ai_players = ai_players or {}
        for seat in seats:
            existing_player = await self.db.get_player_by_name(seat.name)
            if existing_player:
                self.player_id_cache[seat.id] = existing_player.id
                continue
            ai = ai_players.get(seat.id)
            new_player = PlayerModel(
                name=seat.name,
                model_type=model_type_of(ai),
                model_name=getattr(ai, 'model', 'unknown') if ai else "human"
            )
            created_player = await self.db.create_player(new_player)
            self.player_id_cache[seat.id] = created_player.id

    async def init_game(self, game_name: str, seats: Sequence[PlayerState], config: TableConfig,
                        ai_players: Optional[Mapping[str, AIPlayer]] = None,
                        max_hands: Optional[int] = None) -> int:
        """Initialize a new game and register its players"""
        await self.register_players(seats, ai_players)
        game = GameModel(
            game_name=game_name,
            starting_chips=config.starting_chips,
            small_blind=config.small_blind,
            big_blind=config.big_blind,
            max_hands=max_hands
        )
        created_game = await self.db.create_game(game)
        self.sequence_counter[created_game.id] = 0
        logger.info("Recording game %d (%s)", created_game.id, game_name)
        return created_game.id

    async def start_hand(self, game_id: int, state: TableState) -> int:
        """Store the starting snapshot of a hand and one player_hand row per seat"""
        hand = HandModel(
            game_id=game_id,
            hand_number=state.hand_number,
            dealer_position=state.dealer_index,
            initial_state=state.to_snapshot(),
            pot_size=state.pot
        )
        created_hand = await self.db.create_hand(hand)
        self.hand_id_cache[(game_id, state.hand_number)] = created_hand.id

        for seat in state.players:
            player_hand = PlayerHandModel(
                hand_id=created_hand.id,
                player_id=self.player_id_cache[seat.id],
                seat_id=seat.id,
                hole_cards=cards_to_labels(seat.hole_cards),
                starting_chips=seat.chips + seat.total_bet,
                ending_chips=seat.chips
            )
            await self.db.create_player_hand(player_hand)

        return created_hand.id

    async def record_action(self, game_id: int, seat_id: str, action_type: Union[ActionType, str],
                            amount: Optional[int], before: TableState, after: TableState,
                            reasoning: Optional[str] = None) -> ActionModel:
        """Record an applied action with the next sequence number for the game"""
        last = self.sequence_counter.get(game_id)
        if last is None:
            last = await self.db.get_last_sequence_number(game_id)

        action = ActionModel(
            game_id=game_id,
            hand_id=self.hand_id_cache[(game_id, before.hand_number)],
            hand_number=before.hand_number,
            player_id=self.player_id_cache[seat_id],
            seat_id=seat_id,
            sequence_number=last + 1,
            betting_round=before.phase,
            action_type=ActionType.parse(action_type),
            amount=amount,
            chips_moved=after.player(seat_id).total_bet - before.player(seat_id).total_bet,
            pot_size_after=after.pot,
            reasoning=reasoning,
            game_state=after.to_snapshot()
        )
        created = await self.db.create_action(action)
        self.sequence_counter[game_id] = action.sequence_number
        return created

    async def complete_hand(self, game_id: int, state: TableState) -> None:
        """Store the result of a finished hand"""
        result = state.result
        if result is None:
            raise IllegalActionError(f"Hand {state.hand_number} is not finished")

        hand = await self.db.get_hand(self.hand_id_cache[(game_id, state.hand_number)])
        hand.pot_size = result.pot
        hand.community_cards = cards_to_labels(state.community_cards)
        hand.winner_ids = [self.player_id_cache[seat_id] for seat_id in result.winner_ids]
        hand.winnings = {self.player_id_cache[seat_id]: amount for seat_id, amount in result.payouts.items()}
        hand.description = result.description
        hand.completed_at = datetime.now()
        await self.db.update_hand(hand)

        for player_hand in await self.db.get_player_hands_by_hand(hand.id):
            seat = state.player(player_hand.seat_id)
            player_hand.ending_chips = seat.chips
            player_hand.final_position = 1 if seat.id in result.winner_ids else 2
            player_hand.folded = seat.folded
            player_hand.all_in = seat.is_all_in
            await self.db.update_player_hand(player_hand)

    async def complete_game(self, game_id: int, total_hands_played: int) -> None:
        """Mark a game completed"""
        game = await self.db.get_game(game_id)
        if game:
            game.status = GameStatus.COMPLETED
            game.completed_at = datetime.now()
            game.total_hands_played = total_hands_played
            await self.db.update_game(game)

    async def replay_hand(self, game_id: int, hand_number: int) -> List[TableState]:
        """Rebuild every state of a stored hand from its starting snapshot"""
        hand = await self.db.get_hand_by_number(game_id, hand_number)
        if hand is None:
            raise ReplayError(f"Game {game_id} has no hand {hand_number}")
        actions = await self.db.get_actions_by_hand(hand.id)
        return replay_actions(TableState.from_snapshot(hand.initial_state), actions)

    async def replay_game(self, game_id: int) -> Dict[int, List[TableState]]:
        """Replay every stored hand of a game, keyed by hand number"""
        hands = await self.db.get_hands_by_game(game_id)
        if not hands:
            raise ReplayError(f"Game {game_id} has no recorded hands")

        replayed = {}
        last_sequence = 0
        for hand in hands:
            actions = await self.db.get_actions_by_hand(hand.id)
            if actions and actions[0].sequence_number <= last_sequence:
                raise ReplayError(f"Hand {hand.hand_number} starts at sequence number "
                                  f"{actions[0].sequence_number}, after {last_sequence}")
            replayed[hand.hand_number] = replay_actions(TableState.from_snapshot(hand.initial_state), actions)
            if actions:
                last_sequence = actions[-1].sequence_number
        logger.debug("Replayed %d hands of game %d", len(replayed), game_id)
        return replayed
