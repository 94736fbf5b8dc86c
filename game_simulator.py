import asyncio
import logging
import random
import time
from typing import List, Dict, Any, Optional, Sequence, Tuple, Union
from dataclasses import dataclass

from ai_players import AIPlayer, AIDecision, DecisionRequest
from betting_engine import (
    ActionType, HandResult, PlayerState, TableConfig, TableState,
    apply_action, coerce_decision, create_players, next_hand, start_hand
)
from database_interface import DatabaseInterface
from database_integration import DatabaseIntegration
from poker_errors import GameOverError, IllegalActionError, StaleDecisionError
from poker_game import Deck, cards_to_labels

logger = logging.getLogger(__name__)


class GameSession:
    """Drives one table: a single actor at a time, AI turns requested asynchronously.

    Every applied action bumps ``version``. An AI request remembers the
    version, hand number and actor index it was made for and its decision is
    dropped if any of them changed while the collaborator was thinking.
    """

    def __init__(self, seats: Sequence[PlayerState], ai_players: Optional[Dict[str, AIPlayer]] = None,
                 config: Optional[TableConfig] = None, db_integration: Optional[DatabaseIntegration] = None,
                 rng: Optional[random.Random] = None, decision_timeout: float = 30.0,
                 ai_action_delay: float = 0.0, game_name: str = "Game", max_hands: Optional[int] = None):
        self.seats = list(seats)
        self.ai_players = ai_players or {}
        self.config = config or TableConfig()
        self.db_integration = db_integration
        self.rng = rng or random.Random()
        self.decision_timeout = decision_timeout
        self.ai_action_delay = ai_action_delay
        self.game_name = game_name
        self.max_hands = max_hands
        self.game_id: Optional[int] = None
        self.state: Optional[TableState] = None
        self.history: List[str] = []
        self.hands_played = 0
        self._version = 0
        self._ai_acting = False
        self._lock = asyncio.Lock()

    @property
    def version(self) -> int:
        return self._version

    @property
    def is_ai_acting(self) -> bool:
        return self._ai_acting

    def _require_state(self) -> TableState:
        if self.state is None:
            raise IllegalActionError("No hand has been dealt yet")
        return self.state

    def _set_state(self, state: TableState) -> None:
        self.state = state
        self._version += 1

    async def open(self) -> Optional[int]:
        if self.db_integration and self.game_id is None:
            self.game_id = await self.db_integration.init_game(
                self.game_name, self.seats, self.config, self.ai_players, self.max_hands)
        return self.game_id

    async def start_hand(self, dealer_index: Optional[int] = None, deck: Optional[Deck] = None) -> TableState:
        """Deal the first hand, or the next one once the current hand is over."""
        await self.open()
        if self.state is None:
            if dealer_index is None:
                dealer_index = self.rng.randrange(len(self.seats))
            state = start_hand(self.seats, self.config, dealer_index, rng=self.rng, deck=deck)
        else:
            state = next_hand(self.state, self.config, rng=self.rng, deck=deck)

        self._set_state(state)
        self.history = [f"{p.name} {p.last_action}" for p in state.players if p.last_action]
        if self.db_integration:
            await self.db_integration.start_hand(self.game_id, state)
        if state.is_hand_complete:
            # Blinds alone put everyone all-in
            await self._finish_hand(state)
        return state

    async def submit_action(self, player_id: str, action: Union[ActionType, str],
                            amount: Optional[int] = None, reason: Optional[str] = None) -> TableState:
        """Apply an action for the player whose turn it is and record it."""
        async with self._lock:
            before = self._require_state()
            action = ActionType.parse(action)
            try:
                after = apply_action(before, action, amount, player_id=player_id)
            except IllegalActionError as e:
                logger.debug("Rejected %s from %s: %s", action.value, player_id, e)
                raise

            # The table only moves on once the action is in the log
            if self.db_integration:
                await self.db_integration.record_action(
                    self.game_id, player_id, action, amount, before, after, reason)
            self._set_state(after)
            player = after.player(player_id)
            self.history.append(f"{player.name} {player.last_action}")
            if after.is_hand_complete:
                await self._finish_hand(after)
            return after

    async def _finish_hand(self, state: TableState) -> None:
        self.hands_played += 1
        result = state.result
        for seat_id, ai in self.ai_players.items():
            if not any(p.id == seat_id for p in state.players):
                continue
            ai.total_hands += 1
            if seat_id in result.winner_ids:
                ai.hands_won += 1
                ai.total_winnings += result.payouts.get(seat_id, 0)
        if self.db_integration:
            await self.db_integration.complete_hand(self.game_id, state)

    def _check_fresh(self, ticket: Tuple[int, int, Optional[int]]) -> None:
        state = self.state
        current = (self._version, state.hand_number if state else None,
                   state.current_player_index if state else None)
        if current != ticket:
            raise StaleDecisionError(f"Decision requested at {ticket} arrived at {current}")

    async def request_ai_action(self) -> Optional[TableState]:
        """Ask the AI whose turn it is for a decision and apply it.

        Returns None when it is not an AI's turn, when a request is already
        in flight, or when the decision went stale.
        """
        state = self.state
        if state is None or state.is_hand_complete:
            return None
        player = state.current_player
        ai = self.ai_players.get(player.id)
        if ai is None:
            return None
        if self._ai_acting:
            logger.debug("AI action for %s already in progress", player.name)
            return None

        self._ai_acting = True
        ticket = (self._version, state.hand_number, state.current_player_index)
        try:
            request = DecisionRequest.from_state(state, self.history)
            try:
                decision = await asyncio.wait_for(ai.make_decision(request), timeout=self.decision_timeout)
            except asyncio.TimeoutError:
                logger.warning("%s took longer than %ss, folding", player.name, self.decision_timeout)
                decision = AIDecision(action=ActionType.FOLD, reason="timeout")
            except Exception as e:
                logger.warning("Error getting action from %s: %s", player.name, e)
                decision = AIDecision(action=ActionType.FOLD, reason="error")

            if self.ai_action_delay:
                await asyncio.sleep(self.ai_action_delay)

            try:
                self._check_fresh(ticket)
            except StaleDecisionError as e:
                logger.debug("Discarding decision from %s: %s", player.name, e)
                return None

            action, amount = coerce_decision(self.state, decision.action, decision.amount)
            if action != decision.action or amount != decision.amount:
                logger.info("%s wanted %s %s, playing %s %s", player.name, decision.action.value,
                            decision.amount, action.value, amount)
            logger.debug("%s: %s %s (%s)", player.name, action.value, amount or "", decision.reason)
            return await self.submit_action(player.id, action, amount, decision.reason)
        finally:
            self._ai_acting = False

    async def play_hand(self, dealer_index: Optional[int] = None) -> HandResult:
        """Deal a hand and let the AI players play it out."""
        state = await self.start_hand(dealer_index)
        while not state.is_hand_complete:
            player = state.current_player
            if player.id not in self.ai_players:
                raise IllegalActionError(f"{player.name} is not an AI player")
            await self.request_ai_action()
            state = self.state
        return state.result

    def cancel_pending(self) -> None:
        """Invalidate any AI decision still being computed."""
        self._version += 1

    def reset(self) -> None:
        """Drop the current table; the next start_hand deals a fresh game."""
        self.cancel_pending()
        self.state = None
        self.history = []
        self.hands_played = 0
        self.game_id = None

    async def close(self) -> None:
        if self.db_integration and self.game_id is not None:
            await self.db_integration.complete_game(self.game_id, self.hands_played)

    @property
    def chips(self) -> Dict[str, int]:
        if self.state is None:
            return {p.id: p.chips for p in self.seats}
        chips = {p.id: 0 for p in self.seats}
        chips.update({p.id: p.chips for p in self.state.players})
        return chips


@dataclass
class GameResults:
    player_final_chips: Dict[str, int]
    hands_played: int
    session_duration: float
    hand_results: List[Dict[str, Any]]
    game_id: Optional[int] = None

@dataclass
class BenchmarkResults:
    total_hands: int
    total_sessions: int
    player_stats: Dict[str, Dict[str, Any]]
    overall_winner: str
    session_results: List[GameResults]

class GameSimulator:
    def __init__(self, players: List[AIPlayer], config: Optional[TableConfig] = None,
                 db: Optional[DatabaseInterface] = None, rng: Optional[random.Random] = None,
                 decision_timeout: float = 30.0):
        self.players = players
        self.player_names = [p.name for p in players]
        self.config = config or TableConfig()
        self.db = db
        self.db_integration = DatabaseIntegration(db) if db else None
        self.rng = rng or random.Random()
        self.decision_timeout = decision_timeout

    def _new_session(self, session_name: str, max_hands: int) -> GameSession:
        seats = create_players([(p.name, p.name, True) for p in self.players], self.config)
        return GameSession(
            seats,
            ai_players={p.name: p for p in self.players},
            config=self.config,
            db_integration=self.db_integration,
            rng=self.rng,
            decision_timeout=self.decision_timeout,
            game_name=session_name,
            max_hands=max_hands,
        )

    async def simulate_session(self, max_hands: int = 100, time_limit: int = 300,
                               session_name: str = "Single_Session") -> GameResults:
        start_time = time.time()
        session = self._new_session(session_name, max_hands)
        hand_results = []

        print(f"  Starting chips: {', '.join(f'{p}: ${c}' for p, c in session.chips.items())}")

        while session.hands_played < max_hands and time.time() - start_time < time_limit:
            try:
                result = await session.play_hand()
            except GameOverError:
                break

            state = session.state
            hand_results.append({
                "hand_number": state.hand_number,
                "winners": list(result.winner_ids),
                "winnings": dict(result.payouts),
                "pot_size": result.pot,
                "description": result.description,
                "actions": list(session.history),
                "community_cards": cards_to_labels(state.community_cards)
            })

            print(f"\n  Hand {state.hand_number}:")
            for line in session.history:
                print(f"      {line}")
            print(f"    Winner(s): {', '.join(result.winner_ids)} (pot: ${result.pot}, {result.description})")
            print(f"    Current chips: {', '.join(f'{p}: ${c}' for p, c in session.chips.items())}")

        await session.close()

        return GameResults(
            player_final_chips=session.chips,
            hands_played=session.hands_played,
            session_duration=time.time() - start_time,
            hand_results=hand_results,
            game_id=session.game_id
        )

    async def run_benchmark(self, num_sessions: int = 10, hands_per_session: int = 100) -> BenchmarkResults:
        print(f"Starting benchmark: {num_sessions} sessions, {hands_per_session} hands each")

        session_results = []
        total_hands = 0

        for session_num in range(num_sessions):
            print(f"Running session {session_num + 1}/{num_sessions}...")

            for player in self.players:
                player.total_hands = 0
                player.hands_won = 0
                player.total_winnings = 0

            session_name = f"Session_{session_num + 1}" if num_sessions > 1 else "Single_Session"
            session_result = await self.simulate_session(hands_per_session, session_name=session_name)
            session_results.append(session_result)
            total_hands += session_result.hands_played

            print(f"Session {session_num + 1} complete: {session_result.hands_played} hands in {session_result.session_duration:.1f}s")
            for player_name, chips in session_result.player_final_chips.items():
                print(f"  {player_name}: ${chips}")

        # Calculate overall statistics
        starting_total = self.config.starting_chips * num_sessions
        player_stats = {}
        for player in self.players:
            total_chips = sum(session.player_final_chips.get(player.name, 0) for session in session_results)
            sessions_won = sum(1 for session in session_results
                               if session.player_final_chips.get(player.name, 0) ==
                               max(session.player_final_chips.values()))

            player_stats[player.name] = {
                "total_final_chips": total_chips,
                "average_chips_per_session": total_chips / num_sessions,
                "sessions_won": sessions_won,
                "win_rate": sessions_won / num_sessions,
                "total_profit": total_chips - starting_total,
                "roi": (total_chips - starting_total) / starting_total
            }

        overall_winner = max(player_stats.keys(),
                             key=lambda p: player_stats[p]["total_final_chips"])

        return BenchmarkResults(
            total_hands=total_hands,
            total_sessions=num_sessions,
            player_stats=player_stats,
            overall_winner=overall_winner,
            session_results=session_results
        )
