import random
from dataclasses import FrozenInstanceError

import pytest

from poker_errors import InvariantError
from poker_game import (
    Card, Contender, Deck, HandRank, PokerHand, Rank, Suit,
    canonical_cards, deal_community_cards, deal_hole_cards, determine_winner, parse_cards
)


def evaluate(*labels):
    return PokerHand.evaluate(parse_cards(labels))


def test_card_labels_round_trip_and_accept_ten():
    assert str(Card(Rank.ACE, Suit.HEARTS)) == "AH"
    assert Card.parse("10s") == Card(Rank.TEN, Suit.SPADES)
    assert Card.parse("td").label == "TD"
    assert Card(Rank.ACE, Suit.HEARTS).pretty == "A♥"


def test_card_parse_rejects_invalid_labels():
    with pytest.raises(ValueError, match="Invalid rank"):
        Card.parse("1H")
    with pytest.raises(ValueError, match="Invalid suit"):
        Card.parse("AX")
    with pytest.raises(ValueError, match="Invalid card label"):
        Card.parse("A")


@pytest.mark.parametrize("seed", [0, 1, 7, 42, 1234])
def test_shuffle_is_a_permutation_of_the_canonical_deck(seed):
    deck = Deck.generate(random.Random(seed))
    assert len(deck) == 52
    assert sorted(deck.cards, key=Card.sort_key) == sorted(canonical_cards(), key=Card.sort_key)


def test_shuffle_order_depends_on_the_rng():
    first = Deck.generate(random.Random(1))
    second = Deck.generate(random.Random(2))
    assert first.cards != second.cards


def test_deck_rejects_duplicates_and_oversize():
    card = Card(Rank.TWO, Suit.CLUBS)
    with pytest.raises(InvariantError):
        Deck((card, card))
    with pytest.raises(InvariantError):
        Deck(tuple(canonical_cards()) + (card,))


def test_deal_hole_cards_removes_cards_from_the_deck():
    deck = Deck.generate(random.Random(3))
    hands, rest = deal_hole_cards(deck, 3)

    assert len(hands) == 3
    assert all(len(hand) == 2 for hand in hands)
    assert len(rest) == 46
    dealt = [card for hand in hands for card in hand]
    assert len(set(dealt)) == 6
    assert not set(dealt) & set(rest.cards)
    # the input deck is untouched
    assert len(deck) == 52


def test_deal_hole_cards_needs_enough_cards():
    deck = Deck(tuple(parse_cards(["AH", "KH", "QH"])))
    with pytest.raises(InvariantError, match="Not enough cards"):
        deal_hole_cards(deck, 2)


def test_deal_community_cards_takes_from_the_front():
    deck = Deck(tuple(parse_cards(["AH", "KH", "QH", "JH", "TH"])))
    flop, rest = deal_community_cards(deck, 3)
    assert [str(c) for c in flop] == ["AH", "KH", "QH"]
    assert [str(c) for c in rest.cards] == ["JH", "TH"]
    with pytest.raises(InvariantError):
        deal_community_cards(rest, 3)


@pytest.mark.parametrize("labels, rank, description", [
    (["AH", "KH", "QH", "JH", "TH"], HandRank.ROYAL_FLUSH, "Royal Flush"),
    (["KS", "QS", "JS", "TS", "9S"], HandRank.STRAIGHT_FLUSH, "Straight Flush, King high"),
    (["9S", "9H", "9D", "9C", "KD"], HandRank.FOUR_OF_A_KIND, "Four of a Kind, 9s"),
    (["QC", "QD", "QS", "9H", "9S"], HandRank.FULL_HOUSE, "Full House, Queens over 9s"),
    (["AH", "JH", "9H", "6H", "2H"], HandRank.FLUSH, "Flush, Ace high"),
    (["9H", "8D", "7C", "6S", "5H"], HandRank.STRAIGHT, "Straight, 9 high"),
    (["8H", "8D", "8S", "QD", "JS"], HandRank.THREE_OF_A_KIND, "Three of a Kind, 8s"),
    (["AH", "AD", "KS", "KC", "2S"], HandRank.TWO_PAIR, "Two Pair, Aces and Kings"),
    (["6H", "6S", "QH", "8D", "4C"], HandRank.PAIR, "Pair of 6s"),
    (["AS", "KD", "JH", "9C", "4D"], HandRank.HIGH_CARD, "High Card Ace"),
])
def test_evaluate_identifies_every_category(labels, rank, description):
    result = evaluate(*labels)
    assert result.rank == rank
    assert result.description == description
    assert len(result.best_hand) == 5


def test_royal_flush_out_of_seven_cards():
    result = evaluate("AH", "KH", "QH", "JH", "TH", "2C", "3D")
    assert result.rank == HandRank.ROYAL_FLUSH
    assert {str(c) for c in result.best_hand} == {"AH", "KH", "QH", "JH", "TH"}


def test_wheel_straight_is_five_high():
    result = evaluate("AH", "2D", "3C", "4S", "5H", "9D", "KD")
    assert result.rank == HandRank.STRAIGHT
    assert result.description == "Straight, 5 high"
    assert result.kickers == (5,)


def test_wheel_loses_to_six_high_straight():
    wheel = evaluate("AH", "2D", "3C", "4S", "5H")
    six_high = evaluate("2D", "3C", "4S", "5H", "6C")
    assert six_high > wheel


def test_steel_wheel_is_a_five_high_straight_flush():
    result = evaluate("AH", "2H", "3H", "4H", "5H", "KC")
    assert result.rank == HandRank.STRAIGHT_FLUSH
    assert result.description == "Straight Flush, 5 high"


def test_four_of_a_kind_keeps_the_best_kicker():
    result = evaluate("9S", "9H", "9D", "9C", "KD", "2S", "3H")
    assert result.rank == HandRank.FOUR_OF_A_KIND
    assert result.kickers == (9, 9, 9, 9, 13)


def test_two_sets_of_trips_make_a_full_house():
    result = evaluate("KH", "KD", "KS", "5C", "5D", "5H", "2S")
    assert result.rank == HandRank.FULL_HOUSE
    assert result.description == "Full House, Kings over 5s"
    assert result.kickers == (13, 13, 13, 5, 5)


def test_straight_flush_beats_a_bigger_flush():
    result = evaluate("9H", "8H", "7H", "6H", "5H", "AH", "2H")
    assert result.rank == HandRank.STRAIGHT_FLUSH
    assert result.kickers == (9,)


def test_fewer_than_five_cards_evaluate_to_none():
    assert evaluate("AH", "KH", "QH", "JH") is None
    assert PokerHand.evaluate([]) is None
    assert PokerHand.evaluate(parse_cards(["AH", "KH", "QH", "JH"]) + [None, None]) is None


def test_evaluation_ignores_input_order():
    cards = parse_cards(["7S", "7D", "KH", "2C", "9S", "KD", "JH"])
    expected = PokerHand.evaluate(cards)
    rng = random.Random(11)
    for _ in range(25):
        shuffled = cards[:]
        rng.shuffle(shuffled)
        result = PokerHand.evaluate(shuffled)
        assert result == expected
        assert result.description == expected.description
        assert result.best_hand == expected.best_hand


def test_pocket_aces_never_evaluate_below_a_pair():
    rng = random.Random(5)
    aces = parse_cards(["AH", "AD"])
    rest = [card for card in canonical_cards() if card not in aces]
    for _ in range(200):
        board = rng.sample(rest, 5)
        assert PokerHand.evaluate(aces + board).rank.value >= HandRank.PAIR.value


def test_kickers_break_ties_between_equal_pairs():
    better = evaluate("AH", "AD", "KC", "QS", "9H", "2D", "3C")
    worse = evaluate("AS", "AC", "QC", "JS", "8H", "2D", "3C")
    assert better > worse
    assert worse < better


def test_evaluations_are_immutable_and_hashable():
    result = evaluate("AH", "AD", "KC", "QS", "9H", "2D", "3C")
    assert isinstance(result.kickers, tuple)
    assert isinstance(result.best_hand, tuple)
    with pytest.raises(FrozenInstanceError):
        result.rank = HandRank.ROYAL_FLUSH

    same = evaluate("AS", "AC", "KD", "QH", "9C", "4D", "3C")
    assert result == same
    assert len({result, same}) == 1


def test_determine_winner_ignores_folded_players():
    board = parse_cards(["2C", "7D", "9H", "JS", "3D"])
    result = determine_winner([
        Contender("a", tuple(parse_cards(["AH", "AD"])), folded=True),
        Contender("b", tuple(parse_cards(["KH", "4S"]))),
        Contender("c", tuple(parse_cards(["QH", "5S"]))),
    ], board)
    assert result.winner_ids == ["b"]
    assert result.hand.description == "High Card King"
    assert "a" not in result.evaluations


def test_determine_winner_with_a_single_player_before_the_flop():
    result = determine_winner([
        Contender("a", tuple(parse_cards(["AH", "AD"])), folded=True),
        Contender("b", tuple(parse_cards(["KH", "4S"]))),
    ], [])
    assert result.winner_id == "b"
    assert result.hand is None


def test_determine_winner_returns_none_when_everyone_folded():
    assert determine_winner([Contender("a", tuple(parse_cards(["AH", "AD"])), folded=True)], []) is None


def test_determine_winner_uses_kickers():
    board = parse_cards(["AS", "8D", "5C", "3H", "2S"])
    result = determine_winner([
        Contender("a", tuple(parse_cards(["AH", "QD"]))),
        Contender("b", tuple(parse_cards(["AD", "KC"]))),
    ], board)
    assert result.winner_ids == ["b"]
    assert not result.is_split


def test_determine_winner_splits_exact_ties_in_seat_order():
    board = parse_cards(["5C", "6D", "7H", "8S", "9C"])
    result = determine_winner([
        Contender("a", tuple(parse_cards(["2H", "2D"]))),
        Contender("b", tuple(parse_cards(["3H", "3D"]))),
        Contender("c", tuple(parse_cards(["KH", "4D"]))),
    ], board)
    assert result.winner_ids == ["a", "b", "c"]
    assert result.is_split
    assert result.hand.description == "Straight, 9 high"
