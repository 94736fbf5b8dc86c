import pytest

from betting_engine import TableConfig, create_players, start_hand
from helpers import build_deck


@pytest.fixture
def config() -> TableConfig:
    return TableConfig()


@pytest.fixture
def three_players(config):
    return create_players([("alice", "Alice", False), ("bob", "Bob", False), ("carol", "Carol", False)], config)


@pytest.fixture
def three_handed(three_players, config):
    """Alice deals, Bob posts 10, Carol posts 20 and Alice acts first."""
    deck = build_deck(
        [["AH", "AD"], ["KS", "KC"], ["7D", "2C"]],
        ["AS", "9H", "4C", "JD", "3S"],
    )
    return start_hand(three_players, config, dealer_index=0, deck=deck)
