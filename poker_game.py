import logging
import random
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from poker_errors import InvariantError

logger = logging.getLogger(__name__)

DECK_SIZE = 52


class Suit(Enum):
    HEARTS = "H"
    DIAMONDS = "D"
    CLUBS = "C"
    SPADES = "S"

    @property
    def symbol(self) -> str:
        return SUIT_SYMBOLS[self]


SUIT_SYMBOLS = {
    Suit.HEARTS: "♥",
    Suit.DIAMONDS: "♦",
    Suit.CLUBS: "♣",
    Suit.SPADES: "♠",
}
SUIT_ORDER = {suit: idx for idx, suit in enumerate(Suit)}


class Rank(Enum):
    TWO = 2
    THREE = 3
    FOUR = 4
    FIVE = 5
    SIX = 6
    SEVEN = 7
    EIGHT = 8
    NINE = 9
    TEN = 10
    JACK = 11
    QUEEN = 12
    KING = 13
    ACE = 14


RANK_LABELS = {2: "2", 3: "3", 4: "4", 5: "5", 6: "6", 7: "7", 8: "8",
               9: "9", 10: "T", 11: "J", 12: "Q", 13: "K", 14: "A"}
LABEL_RANKS = {label: Rank(value) for value, label in RANK_LABELS.items()}
LABEL_RANKS["10"] = Rank.TEN
RANK_NAMES = {11: "Jack", 12: "Queen", 13: "King", 14: "Ace"}


def rank_name(value: int) -> str:
    return RANK_NAMES.get(value, str(value))


def rank_plural(value: int) -> str:
    return f"{rank_name(value)}s"


@dataclass(frozen=True)
class Card:
    rank: Rank
    suit: Suit

    def __str__(self):
        return f"{RANK_LABELS[self.rank.value]}{self.suit.value}"

    @property
    def label(self) -> str:
        return str(self)

    @property
    def pretty(self) -> str:
        return f"{RANK_LABELS[self.rank.value]}{self.suit.symbol}"

    def sort_key(self) -> Tuple[int, int]:
        return (self.rank.value, -SUIT_ORDER[self.suit])

    @classmethod
    def parse(cls, label: str) -> "Card":
        """Parse labels such as "AH", "td" or "10S"."""
        text = label.strip().upper()
        if len(text) < 2:
            raise ValueError(f"Invalid card label: {label}")
        rank_text, suit_text = text[:-1], text[-1]
        if rank_text not in LABEL_RANKS:
            raise ValueError(f"Invalid rank: {label}")
        try:
            suit = Suit(suit_text)
        except ValueError:
            raise ValueError(f"Invalid suit: {label}") from None
        return cls(LABEL_RANKS[rank_text], suit)


def parse_cards(labels: Sequence[str]) -> List[Card]:
    return [Card.parse(label) for label in labels]


def cards_to_labels(cards: Sequence[Card]) -> List[str]:
    return [card.label for card in cards]


def canonical_cards() -> List[Card]:
    return [Card(rank, suit) for suit in Suit for rank in Rank]


@dataclass(frozen=True)
class Deck:
    """Remaining cards of a hand, top of the deck first."""
    cards: Tuple[Card, ...]

    def __post_init__(self):
        if len(self.cards) > DECK_SIZE:
            raise InvariantError(f"Deck holds {len(self.cards)} cards, more than {DECK_SIZE}")
        if len(set(self.cards)) != len(self.cards):
            raise InvariantError("Deck contains duplicate cards")

    @classmethod
    def generate(cls, rng: Optional[random.Random] = None) -> "Deck":
        cards = canonical_cards()
        (rng or random).shuffle(cards)
        return cls(tuple(cards))

    def __len__(self) -> int:
        return len(self.cards)


def deal_hole_cards(deck: Deck, num_players: int,
                    cards_per_player: int = 2) -> Tuple[List[List[Card]], Deck]:
    needed = num_players * cards_per_player
    if needed > len(deck):
        raise InvariantError(f"Not enough cards left in deck: need {needed}, have {len(deck)}")

    # Hole cards come off the bottom, community cards off the top
    remaining = list(deck.cards)
    hands = []
    for _ in range(num_players):
        hands.append([remaining.pop() for _ in range(cards_per_player)])
    return hands, Deck(tuple(remaining))


def deal_community_cards(deck: Deck, count: int) -> Tuple[List[Card], Deck]:
    if count > len(deck):
        raise InvariantError(f"Not enough cards left in deck: need {count}, have {len(deck)}")
    return list(deck.cards[:count]), Deck(deck.cards[count:])


class HandRank(Enum):
    HIGH_CARD = 1
    PAIR = 2
    TWO_PAIR = 3
    THREE_OF_A_KIND = 4
    STRAIGHT = 5
    FLUSH = 6
    FULL_HOUSE = 7
    FOUR_OF_A_KIND = 8
    STRAIGHT_FLUSH = 9
    ROYAL_FLUSH = 10

    @property
    def label(self) -> str:
        return HAND_RANK_LABELS[self]


HAND_RANK_LABELS = {
    HandRank.HIGH_CARD: "High Card",
    HandRank.PAIR: "Pair",
    HandRank.TWO_PAIR: "Two Pair",
    HandRank.THREE_OF_A_KIND: "Three of a Kind",
    HandRank.STRAIGHT: "Straight",
    HandRank.FLUSH: "Flush",
    HandRank.FULL_HOUSE: "Full House",
    HandRank.FOUR_OF_A_KIND: "Four of a Kind",
    HandRank.STRAIGHT_FLUSH: "Straight Flush",
    HandRank.ROYAL_FLUSH: "Royal Flush",
}


@dataclass(frozen=True)
class HandEvaluation:
    rank: HandRank
    kickers: Tuple[int, ...]
    description: str = ""
    best_hand: Tuple[Card, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "kickers", tuple(self.kickers))
        object.__setattr__(self, "best_hand", tuple(self.best_hand))

    def __hash__(self):
        return hash((self.rank.value, self.kickers))

    def __lt__(self, other):
        if self.rank.value != other.rank.value:
            return self.rank.value < other.rank.value
        return self.kickers < other.kickers

    def __gt__(self, other):
        if self.rank.value != other.rank.value:
            return self.rank.value > other.rank.value
        return self.kickers > other.kickers

    def __eq__(self, other):
        if not isinstance(other, HandEvaluation):
            return NotImplemented
        return self.rank.value == other.rank.value and self.kickers == other.kickers

    def __ge__(self, other):
        return self > other or self == other

    def __le__(self, other):
        return self < other or self == other


def _values(cards: Sequence[Card]) -> List[int]:
    return [card.rank.value for card in cards]


def _group_by_rank(cards: Sequence[Card]) -> List[List[Card]]:
    groups: Dict[Rank, List[Card]] = {}
    for card in cards:
        groups.setdefault(card.rank, []).append(card)
    return list(groups.values())


def _group_by_suit(cards: Sequence[Card]) -> List[List[Card]]:
    groups: Dict[Suit, List[Card]] = {}
    for card in cards:
        groups.setdefault(card.suit, []).append(card)
    return [groups[suit] for suit in Suit if suit in groups]


def _others(cards: Sequence[Card], used: Sequence[Card], count: int) -> List[Card]:
    used_ranks = {card.rank for card in used}
    return [card for card in cards if card.rank not in used_ranks][:count]


class PokerHand:
    """Best five-card hand out of five to seven cards.

    Categories are checked from the strongest down and the first match wins.
    Input cards are sorted by rank (then by a fixed suit order), so the
    result does not depend on the order the cards were given in.
    """

    @staticmethod
    def evaluate(cards: Sequence[Optional[Card]]) -> Optional[HandEvaluation]:
        valid = [card for card in cards if card is not None]
        ordered = sorted(dict.fromkeys(valid), key=Card.sort_key, reverse=True)
        if len(ordered) < 5:
            return None

        straight_flush = PokerHand._straight_flush(ordered)
        if straight_flush:
            high = straight_flush[0].rank.value
            if high == Rank.ACE.value:
                return HandEvaluation(HandRank.ROYAL_FLUSH, [high], HandRank.ROYAL_FLUSH.label, straight_flush)
            return HandEvaluation(HandRank.STRAIGHT_FLUSH, [high],
                                  f"Straight Flush, {rank_name(high)} high", straight_flush)

        four_kind = PokerHand._four_of_a_kind(ordered)
        if four_kind:
            return HandEvaluation(HandRank.FOUR_OF_A_KIND, _values(four_kind),
                                  f"Four of a Kind, {rank_plural(four_kind[0].rank.value)}", four_kind)

        full_house = PokerHand._full_house(ordered)
        if full_house:
            trips, pair = full_house[0].rank.value, full_house[3].rank.value
            return HandEvaluation(HandRank.FULL_HOUSE, _values(full_house),
                                  f"Full House, {rank_plural(trips)} over {rank_plural(pair)}", full_house)

        flush = PokerHand._flush(ordered)
        if flush:
            return HandEvaluation(HandRank.FLUSH, _values(flush),
                                  f"Flush, {rank_name(flush[0].rank.value)} high", flush)

        straight = PokerHand._straight(ordered)
        if straight:
            high = straight[0].rank.value
            return HandEvaluation(HandRank.STRAIGHT, [high], f"Straight, {rank_name(high)} high", straight)

        three_kind = PokerHand._three_of_a_kind(ordered)
        if three_kind:
            return HandEvaluation(HandRank.THREE_OF_A_KIND, _values(three_kind),
                                  f"Three of a Kind, {rank_plural(three_kind[0].rank.value)}", three_kind)

        two_pair = PokerHand._two_pair(ordered)
        if two_pair:
            high_pair, low_pair = two_pair[0].rank.value, two_pair[2].rank.value
            return HandEvaluation(HandRank.TWO_PAIR, _values(two_pair),
                                  f"Two Pair, {rank_plural(high_pair)} and {rank_plural(low_pair)}", two_pair)

        pair = PokerHand._one_pair(ordered)
        if pair:
            return HandEvaluation(HandRank.PAIR, _values(pair),
                                  f"Pair of {rank_plural(pair[0].rank.value)}", pair)

        high_card = ordered[:5]
        return HandEvaluation(HandRank.HIGH_CARD, _values(high_card),
                              f"High Card {rank_name(high_card[0].rank.value)}", high_card)

    @staticmethod
    def _straight_flush(cards: List[Card]) -> Optional[List[Card]]:
        candidates = []
        for suited in _group_by_suit(cards):
            if len(suited) >= 5:
                straight = PokerHand._straight(suited)
                if straight:
                    candidates.append(straight)
        if not candidates:
            return None
        return max(candidates, key=lambda straight: straight[0].rank.value)

    @staticmethod
    def _four_of_a_kind(cards: List[Card]) -> Optional[List[Card]]:
        for group in _group_by_rank(cards):
            if len(group) >= 4:
                kicker = _others(cards, group, 1)
                if kicker:
                    return group[:4] + kicker
        return None

    @staticmethod
    def _full_house(cards: List[Card]) -> Optional[List[Card]]:
        groups = _group_by_rank(cards)
        trips = next((group for group in groups if len(group) >= 3), None)
        if trips is None:
            return None
        # A second set of trips can supply the pair
        pair = next((group for group in groups if group is not trips and len(group) >= 2), None)
        if pair is None:
            return None
        return trips[:3] + pair[:2]

    @staticmethod
    def _flush(cards: List[Card]) -> Optional[List[Card]]:
        candidates = [suited[:5] for suited in _group_by_suit(cards) if len(suited) >= 5]
        if not candidates:
            return None
        return max(candidates, key=_values)

    @staticmethod
    def _straight(cards: List[Card]) -> Optional[List[Card]]:
        distinct = list({card.rank: card for card in reversed(cards)}.values())
        distinct.sort(key=Card.sort_key, reverse=True)
        ladder = [(card.rank.value, card) for card in distinct]
        if distinct and distinct[0].rank == Rank.ACE:
            # The ace also plays low: A-2-3-4-5
            ladder.append((1, distinct[0]))
        for start in range(len(ladder) - 4):
            window = ladder[start:start + 5]
            if all(window[i][0] == window[i + 1][0] + 1 for i in range(4)):
                return [card for _, card in window]
        return None

    @staticmethod
    def _three_of_a_kind(cards: List[Card]) -> Optional[List[Card]]:
        for group in _group_by_rank(cards):
            if len(group) >= 3:
                kickers = _others(cards, group, 2)
                if len(kickers) == 2:
                    return group[:3] + kickers
        return None

    @staticmethod
    def _two_pair(cards: List[Card]) -> Optional[List[Card]]:
        pairs = [group[:2] for group in _group_by_rank(cards) if len(group) >= 2]
        if len(pairs) < 2:
            return None
        used = pairs[0] + pairs[1]
        kicker = _others(cards, used, 1)
        if not kicker:
            return None
        return used + kicker

    @staticmethod
    def _one_pair(cards: List[Card]) -> Optional[List[Card]]:
        for group in _group_by_rank(cards):
            if len(group) >= 2:
                kickers = _others(cards, group, 3)
                if len(kickers) == 3:
                    return group[:2] + kickers
        return None


@dataclass(frozen=True)
class Contender:
    id: str
    cards: Tuple[Card, ...]
    folded: bool = False


@dataclass
class WinnerResult:
    winner_ids: List[str]
    hand: Optional[HandEvaluation]
    evaluations: Dict[str, Optional[HandEvaluation]] = field(default_factory=dict)

    @property
    def winner_id(self) -> str:
        return self.winner_ids[0]

    @property
    def is_split(self) -> bool:
        return len(self.winner_ids) > 1


def determine_winner(contenders: Sequence[Contender],
                     community_cards: Sequence[Card]) -> Optional[WinnerResult]:
    """Pick the winner(s) among the players who have not folded.

    Hands of the same category are separated by their kickers; players whose
    hands are still exactly equal all win, in the order they were given.
    """
    active = [contender for contender in contenders if not contender.folded]
    if not active:
        return None

    community = list(community_cards)
    if len(active) == 1:
        winner = active[0]
        hand = PokerHand.evaluate(list(winner.cards) + community)
        return WinnerResult([winner.id], hand, {winner.id: hand})

    evaluations = {
        contender.id: PokerHand.evaluate(list(contender.cards) + community)
        for contender in active
    }
    ranked = [(contender.id, evaluations[contender.id]) for contender in active
              if evaluations[contender.id] is not None]
    if not ranked:
        return None

    best = max(hand for _, hand in ranked)
    winners = [player_id for player_id, hand in ranked if hand == best]
    logger.debug("Showdown winners %s with %s", winners, best.description)
    return WinnerResult(winners, evaluations[winners[0]], evaluations)
