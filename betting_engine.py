import logging
import random
from enum import Enum
from types import MappingProxyType
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from poker_errors import (
    GameOverError, IllegalActionError, InsufficientChipsError, InvariantError,
    NoEligibleActorError, NotPlayersTurnError
)
from poker_game import (
    Card, Contender, Deck, HandEvaluation, HandRank, PokerHand,
    cards_to_labels, deal_community_cards, deal_hole_cards, determine_winner, parse_cards
)

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    PREFLOP = "PREFLOP"
    FLOP = "FLOP"
    TURN = "TURN"
    RIVER = "RIVER"
    SHOWDOWN = "SHOWDOWN"


PHASE_ORDER = list(Phase)
COMMUNITY_DEALS = {Phase.FLOP: 3, Phase.TURN: 1, Phase.RIVER: 1}


class ActionType(str, Enum):
    FOLD = "FOLD"
    CHECK = "CHECK"
    CALL = "CALL"
    BET = "BET"
    RAISE = "RAISE"
    ALL_IN = "ALL_IN"

    @classmethod
    def parse(cls, value: Union["ActionType", str]) -> "ActionType":
        """Normalise free-form action names ("fold", "All-In", "raise_to")."""
        if isinstance(value, ActionType):
            return value
        text = str(value).strip().upper().replace("-", "_").replace(" ", "_")
        text = ACTION_ALIASES.get(text, text)
        try:
            return cls(text)
        except ValueError:
            raise IllegalActionError(f"Unsupported action: {value!r}") from None


ACTION_ALIASES = {
    "ALLIN": "ALL_IN",
    "RAISE_TO": "RAISE",
    "FOLDED": "FOLD",
    "CHECKED": "CHECK",
    "CALLED": "CALL",
}


@dataclass
class TableConfig:
    starting_chips: int = 1000
    small_blind: int = 10
    big_blind: int = 20
    cards_per_player: int = 2


@dataclass(frozen=True)
class PlayerState:
    id: str
    name: str
    chips: int
    is_ai: bool = False
    hole_cards: Tuple[Card, ...] = ()
    folded: bool = False
    contribution: int = 0  # this betting round
    total_bet: int = 0  # this hand
    has_acted: bool = False
    last_action: Optional[str] = None

    @property
    def can_act(self) -> bool:
        return not self.folded and self.chips > 0

    @property
    def is_all_in(self) -> bool:
        return not self.folded and self.chips == 0 and self.total_bet > 0


@dataclass(frozen=True)
class HandResult:
    winner_ids: Tuple[str, ...]
    pot: int
    payouts: Mapping[str, int]
    description: str
    hand: Optional[HandEvaluation] = None
    last_player_standing: bool = False

    def __post_init__(self):
        object.__setattr__(self, "winner_ids", tuple(self.winner_ids))
        object.__setattr__(self, "payouts", MappingProxyType(dict(self.payouts)))


@dataclass(frozen=True)
class LegalActions:
    actions: Tuple[ActionType, ...]
    call_amount: int
    min_raise_to: Optional[int]
    max_raise_to: Optional[int]


@dataclass(frozen=True)
class TableState:
    players: Tuple[PlayerState, ...]
    deck: Deck
    community_cards: Tuple[Card, ...] = ()
    pot: int = 0
    current_bet: int = 0
    phase: Phase = Phase.PREFLOP
    dealer_index: int = 0
    current_player_index: Optional[int] = None
    hand_number: int = 1
    big_blind: int = 0
    result: Optional[HandResult] = None

    @property
    def is_hand_complete(self) -> bool:
        return self.result is not None

    @property
    def current_player(self) -> Optional[PlayerState]:
        if self.current_player_index is None:
            return None
        return self.players[self.current_player_index]

    @property
    def active_players(self) -> List[PlayerState]:
        return [p for p in self.players if not p.folded]

    @property
    def contributions(self) -> Dict[str, int]:
        return {p.id: p.contribution for p in self.players}

    def player(self, player_id: str) -> PlayerState:
        return self.players[self.index_of(player_id)]

    def index_of(self, player_id: str) -> int:
        for index, p in enumerate(self.players):
            if p.id == player_id:
                return index
        raise KeyError(player_id)

    def to_snapshot(self) -> Dict[str, Any]:
        return {
            "hand_number": self.hand_number,
            "phase": self.phase.value,
            "pot": self.pot,
            "current_bet": self.current_bet,
            "dealer_index": self.dealer_index,
            "current_player_index": self.current_player_index,
            "big_blind": self.big_blind,
            "community_cards": cards_to_labels(self.community_cards),
            "deck": cards_to_labels(self.deck.cards),
            "players": [_player_to_dict(p) for p in self.players],
            "result": _result_to_dict(self.result) if self.result else None,
        }

    @classmethod
    def from_snapshot(cls, data: Mapping[str, Any]) -> "TableState":
        return cls(
            players=tuple(_player_from_dict(p) for p in data["players"]),
            deck=Deck(tuple(parse_cards(data["deck"]))),
            community_cards=tuple(parse_cards(data["community_cards"])),
            pot=data["pot"],
            current_bet=data["current_bet"],
            phase=Phase(data["phase"]),
            dealer_index=data["dealer_index"],
            current_player_index=data["current_player_index"],
            hand_number=data["hand_number"],
            big_blind=data.get("big_blind", 0),
            result=_result_from_dict(data["result"]) if data.get("result") else None,
        )


def _player_to_dict(player: PlayerState) -> Dict[str, Any]:
    return {
        "id": player.id,
        "name": player.name,
        "chips": player.chips,
        "is_ai": player.is_ai,
        "hole_cards": cards_to_labels(player.hole_cards),
        "folded": player.folded,
        "contribution": player.contribution,
        "total_bet": player.total_bet,
        "has_acted": player.has_acted,
        "last_action": player.last_action,
    }


def _player_from_dict(data: Mapping[str, Any]) -> PlayerState:
    return PlayerState(
        id=data["id"],
        name=data["name"],
        chips=data["chips"],
        is_ai=data.get("is_ai", False),
        hole_cards=tuple(parse_cards(data.get("hole_cards", []))),
        folded=data.get("folded", False),
        contribution=data.get("contribution", 0),
        total_bet=data.get("total_bet", 0),
        has_acted=data.get("has_acted", False),
        last_action=data.get("last_action"),
    )


def _result_to_dict(result: HandResult) -> Dict[str, Any]:
    hand = result.hand
    return {
        "winner_ids": list(result.winner_ids),
        "pot": result.pot,
        "payouts": dict(result.payouts),
        "description": result.description,
        "last_player_standing": result.last_player_standing,
        "hand": {
            "rank": hand.rank.value,
            "kickers": list(hand.kickers),
            "description": hand.description,
            "best_hand": cards_to_labels(hand.best_hand),
        } if hand else None,
    }


def _result_from_dict(data: Mapping[str, Any]) -> HandResult:
    hand_data = data.get("hand")
    hand = None
    if hand_data:
        hand = HandEvaluation(
            HandRank(hand_data["rank"]),
            list(hand_data["kickers"]),
            hand_data["description"],
            parse_cards(hand_data["best_hand"]),
        )
    return HandResult(
        winner_ids=tuple(data["winner_ids"]),
        pot=data["pot"],
        payouts=dict(data["payouts"]),
        description=data["description"],
        hand=hand,
        last_player_standing=data.get("last_player_standing", False),
    )


def create_players(entries: Sequence[Tuple[str, str, bool]], config: TableConfig) -> List[PlayerState]:
    """Seat (id, name, is_ai) entries with the configured starting stack."""
    return [PlayerState(id=player_id, name=name, chips=config.starting_chips, is_ai=is_ai)
            for player_id, name, is_ai in entries]


def start_hand(players: Sequence[PlayerState], config: TableConfig, dealer_index: int = 0,
               rng: Optional[random.Random] = None, deck: Optional[Deck] = None,
               hand_number: int = 1) -> TableState:
    """Deal a new hand and post the blinds.

    ``dealer_index`` indexes into ``players``; every player must have chips.
    The first player to act sits after the big blind.
    """
    if any(p.chips <= 0 for p in players):
        raise IllegalActionError("Players without chips cannot be dealt in")
    if len(players) < 2:
        raise GameOverError("Need at least two players with chips to start a hand")

    deck = deck or Deck.generate(rng)
    hands, deck = deal_hole_cards(deck, len(players), config.cards_per_player)
    seated = [
        replace(p, hole_cards=tuple(hand), folded=False, contribution=0, total_bet=0,
                has_acted=False, last_action=None)
        for p, hand in zip(players, hands)
    ]

    count = len(seated)
    dealer_index %= count
    small_blind_index = (dealer_index + 1) % count
    big_blind_index = (dealer_index + 2) % count
    pot = 0
    for index, blind, label in ((small_blind_index, config.small_blind, "Small Blind"),
                                (big_blind_index, config.big_blind, "Big Blind")):
        posted = min(blind, seated[index].chips)
        seated[index] = _commit(seated[index], posted, f"{label} ({posted})", acted=False)
        pot += posted

    state = TableState(
        players=tuple(seated),
        deck=deck,
        pot=pot,
        current_bet=max(p.contribution for p in seated),
        phase=Phase.PREFLOP,
        dealer_index=dealer_index,
        current_player_index=big_blind_index,
        hand_number=hand_number,
        big_blind=config.big_blind,
    )
    logger.info("Hand %d dealt: dealer %s, blinds %d/%d", hand_number,
                seated[dealer_index].name, config.small_blind, config.big_blind)
    return _after_action(state)


def next_hand(state: TableState, config: TableConfig, rng: Optional[random.Random] = None,
              deck: Optional[Deck] = None) -> TableState:
    """Rotate the dealer button, drop busted players and deal the next hand."""
    if not state.is_hand_complete:
        raise IllegalActionError("The current hand is still in progress")

    survivors = [p for p in state.players if p.chips > 0]
    if len(survivors) < 2:
        raise GameOverError("Fewer than two players have chips left")

    for seat in _seats_after(state.dealer_index, len(state.players)):
        if state.players[seat].chips > 0:
            dealer_id = state.players[seat].id
            break
    dealer_index = [p.id for p in survivors].index(dealer_id)
    return start_hand(survivors, config, dealer_index, rng=rng, deck=deck,
                      hand_number=state.hand_number + 1)


def legal_actions(state: TableState) -> LegalActions:
    """Actions worth offering to the player whose turn it is."""
    player = state.current_player
    if player is None or state.is_hand_complete:
        return LegalActions((), 0, None, None)

    owed = max(state.current_bet - player.contribution, 0)
    max_target = player.contribution + player.chips
    step = max(state.big_blind, 1)
    actions = [ActionType.FOLD]
    min_target = None

    if owed == 0:
        actions.append(ActionType.CHECK)
    elif player.chips >= owed:
        actions.append(ActionType.CALL)

    if state.current_bet == 0:
        actions.append(ActionType.BET)
        min_target = min(step, player.chips)
    elif max_target > state.current_bet:
        actions.append(ActionType.RAISE)
        min_target = min(state.current_bet + step, max_target)

    actions.append(ActionType.ALL_IN)
    return LegalActions(tuple(actions), min(owed, player.chips), min_target,
                        max_target if min_target is not None else None)


def coerce_decision(state: TableState, action: Union[ActionType, str],
                    amount: Optional[int] = None) -> Tuple[ActionType, Optional[int]]:
    """Clamp a decision from an untrusted source to one the table accepts."""
    player = state.current_player
    if player is None:
        raise IllegalActionError("The hand is already over")

    action = ActionType.parse(action)
    owed = state.current_bet - player.contribution
    max_target = player.contribution + player.chips

    if action == ActionType.RAISE and state.current_bet == 0:
        action = ActionType.BET
    elif action == ActionType.BET and state.current_bet > 0:
        action = ActionType.RAISE

    if action in (ActionType.BET, ActionType.RAISE):
        if amount is None or amount <= 0:
            amount = legal_actions(state).min_raise_to or max_target
        if amount >= max_target:
            return ActionType.ALL_IN, None
        if action == ActionType.BET or amount > state.current_bet:
            return action, amount
        action = ActionType.CALL

    if action == ActionType.CALL:
        if owed <= 0:
            return ActionType.CHECK, None
        if owed > player.chips:
            return ActionType.ALL_IN, None
        return ActionType.CALL, None

    if action == ActionType.CHECK and owed > 0:
        return ActionType.FOLD, None
    return action, None


def split_pot(pot: int, winner_ids: Sequence[str]) -> Dict[str, int]:
    """Equal shares; odd chips go to the earliest winners."""
    share, remainder = divmod(pot, len(winner_ids))
    return {player_id: share + (1 if idx < remainder else 0)
            for idx, player_id in enumerate(winner_ids)}


def apply_action(state: TableState, action: Union[ActionType, str], amount: Optional[int] = None,
                 player_id: Optional[str] = None) -> TableState:
    """Apply one action for the current player and return the next state.

    ``amount`` is the bet size for BET and the new total contribution for
    RAISE. Illegal actions raise before anything changes.
    """
    action = ActionType.parse(action)
    if state.is_hand_complete or state.current_player_index is None:
        raise IllegalActionError("The hand is already over")

    index = state.current_player_index
    player = state.players[index]
    if player_id is not None and player_id != player.id:
        raise NotPlayersTurnError(player_id, player.id)

    current_bet = state.current_bet
    if action == ActionType.FOLD:
        updated = replace(player, folded=True, has_acted=True, last_action="Folded")

    elif action == ActionType.CHECK:
        if player.contribution != state.current_bet:
            raise IllegalActionError(
                f"Cannot check: {state.current_bet - player.contribution} to call")
        updated = replace(player, has_acted=True, last_action="Checked")

    elif action == ActionType.CALL:
        if state.current_bet == 0:
            raise IllegalActionError("No bet to call")
        required = state.current_bet - player.contribution
        if player.chips < required:
            raise InsufficientChipsError(required, player.chips)
        updated = _commit(player, required, f"Called {state.current_bet}")

    elif action == ActionType.BET:
        if state.current_bet > 0:
            raise IllegalActionError("Cannot bet when there is already a bet; raise instead")
        target = _require_amount(action, amount)
        delta = target - player.contribution
        if delta > player.chips:
            raise InsufficientChipsError(delta, player.chips)
        updated = _commit(player, delta, f"Bet {target}")
        current_bet = target

    elif action == ActionType.RAISE:
        if state.current_bet == 0:
            raise IllegalActionError("No bet to raise; bet instead")
        target = _require_amount(action, amount)
        if target <= state.current_bet:
            raise IllegalActionError(
                f"Raise to {target} must be above the current bet of {state.current_bet}")
        delta = target - player.contribution
        if delta > player.chips:
            raise InsufficientChipsError(delta, player.chips)
        updated = _commit(player, delta, f"Raised to {target}")
        current_bet = target

    elif action == ActionType.ALL_IN:
        if player.chips <= 0:
            raise IllegalActionError("No chips left to go all-in")
        updated = _commit(player, player.chips, f"All-in ({player.chips})")
        current_bet = max(state.current_bet, updated.contribution)

    else:
        raise IllegalActionError(f"Unsupported action: {action!r}")

    logger.debug("Hand %d %s: %s %s", state.hand_number, state.phase.value, player.name, updated.last_action)
    players = state.players[:index] + (updated,) + state.players[index + 1:]
    moved = updated.total_bet - player.total_bet
    return _after_action(replace(state, players=players, pot=state.pot + moved, current_bet=current_bet))


def _require_amount(action: ActionType, amount: Optional[int]) -> int:
    if amount is None:
        raise IllegalActionError(f"{action.value} needs an amount")
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise IllegalActionError(f"{action.value} amount must be a whole number of chips, got {amount!r}")
    if amount <= 0:
        raise IllegalActionError(f"{action.value} amount must be positive")
    return amount


def _commit(player: PlayerState, amount: int, label: str, acted: bool = True) -> PlayerState:
    return replace(
        player,
        chips=player.chips - amount,
        contribution=player.contribution + amount,
        total_bet=player.total_bet + amount,
        has_acted=acted or player.has_acted,
        last_action=label,
    )


def _seats_after(index: int, count: int) -> Iterator[int]:
    """Seats clockwise from ``index``, ending with ``index`` itself."""
    for step in range(1, count + 1):
        yield (index + step) % count


def _is_pending(player: PlayerState, current_bet: int) -> bool:
    return player.can_act and (not player.has_acted or player.contribution < current_bet)


def _is_round_complete(state: TableState) -> bool:
    actors = [p for p in state.players if p.can_act]
    if len(actors) <= 1 and all(p.contribution >= state.current_bet for p in actors):
        return True
    return not any(_is_pending(p, state.current_bet) for p in actors)


def _next_actor_index(state: TableState, from_index: int) -> int:
    """Next seat clockwise that still owes an action in this phase.

    Raises ``NoEligibleActorError`` once the betting round is over.
    """
    if not _is_round_complete(state):
        for seat in _seats_after(from_index, len(state.players)):
            if _is_pending(state.players[seat], state.current_bet):
                return seat
    raise NoEligibleActorError(f"No player can act in hand {state.hand_number} {state.phase.value}")


def _after_action(state: TableState) -> TableState:
    if len(state.active_players) == 1:
        return _award_last_player(state)
    try:
        next_index = _next_actor_index(state, state.current_player_index)
    except NoEligibleActorError:
        logger.debug("Betting complete in hand %d %s", state.hand_number, state.phase.value)
        return _complete_phase(state)
    return replace(state, current_player_index=next_index)


def _complete_phase(state: TableState) -> TableState:
    if state.phase == Phase.RIVER:
        return _showdown(state)

    next_phase = PHASE_ORDER[PHASE_ORDER.index(state.phase) + 1]
    dealt, deck = deal_community_cards(state.deck, COMMUNITY_DEALS[next_phase])
    players = tuple(replace(p, contribution=0, has_acted=False) for p in state.players)
    state = replace(
        state,
        players=players,
        deck=deck,
        community_cards=state.community_cards + tuple(dealt),
        current_bet=0,
        phase=next_phase,
        current_player_index=None,
    )
    logger.debug("Hand %d moves to %s: %s", state.hand_number, next_phase.value,
                 " ".join(cards_to_labels(state.community_cards)))

    try:
        first = _next_actor_index(state, state.dealer_index)
    except NoEligibleActorError:
        # At most one player can still bet; run out the board
        return _complete_phase(state)
    return replace(state, current_player_index=first)


def _showdown(state: TableState) -> TableState:
    contenders = [Contender(p.id, p.hole_cards, p.folded) for p in state.players]
    outcome = determine_winner(contenders, state.community_cards)
    if outcome is None:
        raise InvariantError(f"No winner could be determined for hand {state.hand_number}")

    payouts = split_pot(state.pot, outcome.winner_ids)
    players = tuple(replace(p, chips=p.chips + payouts.get(p.id, 0)) for p in state.players)
    description = outcome.hand.description if outcome.hand else ""
    result = HandResult(
        winner_ids=tuple(outcome.winner_ids),
        pot=state.pot,
        payouts=payouts,
        description=description,
        hand=outcome.hand,
    )
    logger.info("Hand %d won by %s with %s (pot %d)", state.hand_number,
                ", ".join(outcome.winner_ids), description, state.pot)
    return replace(state, players=players, phase=Phase.SHOWDOWN, current_player_index=None, result=result)


def _award_last_player(state: TableState) -> TableState:
    winner = state.active_players[0]
    hand = PokerHand.evaluate(list(winner.hole_cards) + list(state.community_cards))
    players = tuple(replace(p, chips=p.chips + state.pot) if p.id == winner.id else p
                    for p in state.players)
    result = HandResult(
        winner_ids=(winner.id,),
        pot=state.pot,
        payouts={winner.id: state.pot},
        description="Last player standing",
        hand=hand,
        last_player_standing=True,
    )
    logger.info("Hand %d won by %s, everyone else folded (pot %d)", state.hand_number, winner.name, state.pot)
    return replace(state, players=players, current_player_index=None, result=result)
