from typing import Sequence

from poker_game import Deck, canonical_cards, parse_cards


def build_deck(hole_cards: Sequence[Sequence[str]], board: Sequence[str] = ()) -> Deck:
    """Deck that deals ``hole_cards`` to the seats in order and ``board`` as the community cards."""
    hole = [card for hand in hole_cards for card in parse_cards(hand)]
    community = parse_cards(board)
    used = set(hole) | set(community)
    filler = [card for card in canonical_cards() if card not in used]
    # Hole cards are popped off the end, community cards taken from the front
    return Deck(tuple(community + filler + list(reversed(hole))))


def total_chips(players) -> int:
    return sum(p.chips for p in players)


def pot_matches_contributions(state) -> bool:
    return state.pot == sum(p.total_bet for p in state.players)
