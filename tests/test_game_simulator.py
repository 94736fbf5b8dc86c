import asyncio
import random

import pytest

from ai_players import AIDecision, AIPlayer, RandomPlayer
from betting_engine import ActionType, Phase, TableConfig, create_players
from database_integration import DatabaseIntegration
from game_simulator import GameSession, GameSimulator
from helpers import build_deck, total_chips
from poker_errors import IllegalActionError, NotPlayersTurnError


class ScriptedPlayer(AIPlayer):
    def __init__(self, name, decisions):
        super().__init__(name)
        self.decisions = list(decisions)
        self.requests = []

    async def make_decision(self, request):
        self.requests.append(request)
        return self.decisions.pop(0)


class BlockingPlayer(AIPlayer):
    """Thinks until released."""

    def __init__(self, name, decision):
        super().__init__(name)
        self.decision = decision
        self.release = asyncio.Event()
        self.calls = 0

    async def make_decision(self, request):
        self.calls += 1
        await self.release.wait()
        return self.decision


class BrokenPlayer(AIPlayer):
    async def make_decision(self, request):
        raise RuntimeError("model unavailable")


def make_session(ai_players, **kwargs):
    seats = create_players([("alice", "Alice", True), ("bob", "Bob", False), ("carol", "Carol", False)],
                           TableConfig())
    return GameSession(seats, ai_players=ai_players, **kwargs)


DECK = build_deck([["AH", "AD"], ["KS", "KC"], ["7D", "2C"]], ["AS", "9H", "4C", "JD", "3S"])


@pytest.mark.asyncio
async def test_human_actions_go_through_the_session():
    session = make_session({})
    state = await session.start_hand(dealer_index=0, deck=DECK)
    assert state.current_player.id == "alice"

    with pytest.raises(NotPlayersTurnError):
        await session.submit_action("bob", "call")
    assert session.state is state

    version = session.version
    state = await session.submit_action("alice", "raise", 60)
    assert state.current_bet == 60
    assert session.version == version + 1
    assert session.history[-1] == "Alice Raised to 60"


@pytest.mark.asyncio
async def test_request_ai_action_applies_the_coerced_decision():
    ai = ScriptedPlayer("Alice", [AIDecision(action=ActionType.CHECK, reason="free card?")])
    session = make_session({"alice": ai})
    await session.start_hand(dealer_index=0, deck=DECK)

    state = await session.request_ai_action()

    # checking facing the big blind is clamped to a fold
    assert state.player("alice").folded
    assert state.current_player.id == "bob"
    assert ai.requests[0].hole_cards == ["AH", "AD"]


@pytest.mark.asyncio
async def test_request_ai_action_ignores_human_turns():
    session = make_session({"alice": ScriptedPlayer("Alice", [AIDecision(action="call")])})
    await session.start_hand(dealer_index=0, deck=DECK)
    await session.request_ai_action()

    assert session.state.current_player.id == "bob"
    assert await session.request_ai_action() is None


@pytest.mark.asyncio
async def test_guard_flag_blocks_duplicate_requests():
    ai = BlockingPlayer("Alice", AIDecision(action="call"))
    session = make_session({"alice": ai})
    await session.start_hand(dealer_index=0, deck=DECK)

    first = asyncio.create_task(session.request_ai_action())
    await asyncio.sleep(0.01)
    assert session.is_ai_acting

    assert await session.request_ai_action() is None
    assert ai.calls == 1

    ai.release.set()
    state = await first
    assert state.player("alice").last_action == "Called 20"
    assert not session.is_ai_acting


@pytest.mark.asyncio
async def test_stale_decisions_are_discarded():
    ai = BlockingPlayer("Alice", AIDecision(action="raise", amount=100))
    session = make_session({"alice": ai})
    before = await session.start_hand(dealer_index=0, deck=DECK)

    pending = asyncio.create_task(session.request_ai_action())
    await asyncio.sleep(0.01)
    session.cancel_pending()
    ai.release.set()

    assert await pending is None
    assert session.state is before
    assert not session.is_ai_acting


@pytest.mark.asyncio
async def test_decision_arriving_after_reset_is_discarded():
    ai = BlockingPlayer("Alice", AIDecision(action="call"))
    session = make_session({"alice": ai})
    await session.start_hand(dealer_index=0, deck=DECK)

    pending = asyncio.create_task(session.request_ai_action())
    await asyncio.sleep(0.01)
    session.reset()
    ai.release.set()

    assert await pending is None
    assert session.state is None


@pytest.mark.asyncio
async def test_slow_decisions_fold():
    ai = BlockingPlayer("Alice", AIDecision(action="call"))
    session = make_session({"alice": ai}, decision_timeout=0.01)
    await session.start_hand(dealer_index=0, deck=DECK)

    state = await session.request_ai_action()
    assert state.player("alice").folded


@pytest.mark.asyncio
async def test_failing_collaborator_folds():
    session = make_session({"alice": BrokenPlayer("Alice")})
    await session.start_hand(dealer_index=0, deck=DECK)

    state = await session.request_ai_action()
    assert state.player("alice").last_action == "Folded"


@pytest.mark.asyncio
async def test_ai_action_delay_is_awaited_before_applying():
    ai = ScriptedPlayer("Alice", [AIDecision(action="call")])
    session = make_session({"alice": ai}, ai_action_delay=0.05)
    await session.start_hand(dealer_index=0, deck=DECK)

    pending = asyncio.create_task(session.request_ai_action())
    await asyncio.sleep(0.01)
    assert session.state.current_player.id == "alice"
    state = await pending
    assert state.current_player.id == "bob"


@pytest.mark.asyncio
async def test_play_hand_needs_ai_players():
    session = make_session({})
    with pytest.raises(IllegalActionError):
        await session.play_hand(dealer_index=0)


@pytest.mark.asyncio
async def test_play_hand_with_random_players_conserves_chips():
    rng = random.Random(3)
    names = ["R1", "R2", "R3"]
    seats = create_players([(n, n, True) for n in names], TableConfig())
    session = GameSession(seats, {n: RandomPlayer(n, random.Random(i)) for i, n in enumerate(names)}, rng=rng)

    for _ in range(3):
        result = await session.play_hand()
        assert result.pot == sum(result.payouts.values())
        assert total_chips(session.state.players) == 3000
        if session.state.phase != Phase.SHOWDOWN:
            assert result.last_player_standing

    assert session.hands_played == 3
    assert session.state.hand_number == 3


@pytest.mark.asyncio
async def test_simulator_runs_sessions():
    players = [RandomPlayer("R1", random.Random(1)), RandomPlayer("R2", random.Random(2))]
    simulator = GameSimulator(players, TableConfig(starting_chips=200), rng=random.Random(7))

    results = await simulator.run_benchmark(num_sessions=2, hands_per_session=5)

    assert results.total_sessions == 2
    assert results.total_hands == sum(s.hands_played for s in results.session_results)
    for session in results.session_results:
        assert sum(session.player_final_chips.values()) == 400
        assert 1 <= session.hands_played <= 5
    assert results.overall_winner in ("R1", "R2")


class FailingLog(DatabaseIntegration):
    def __init__(self):
        super().__init__(db=None)

    async def init_game(self, *args, **kwargs):
        return 1

    async def start_hand(self, game_id, state):
        return 1

    async def record_action(self, *args, **kwargs):
        raise RuntimeError("disk full")


@pytest.mark.asyncio
async def test_table_does_not_move_when_the_action_cannot_be_logged():
    session = make_session({}, db_integration=FailingLog())
    before = await session.start_hand(dealer_index=0, deck=DECK)
    version = session.version

    with pytest.raises(RuntimeError, match="disk full"):
        await session.submit_action("alice", "raise", 60)

    assert session.state is before
    assert session.version == version
    assert session.history == ["Bob Small Blind (10)", "Carol Big Blind (20)"]
