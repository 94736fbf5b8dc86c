import sqlite3

import pytest

from betting_engine import ActionType, Phase, TableState, create_players
from database_integration import DatabaseIntegration, replay_actions
from database_models import GameStatus
from game_simulator import GameSession
from helpers import build_deck
from poker_errors import IllegalActionError, ReplayError
from sqlite_database import SQLiteDatabase

HAND_ONE = [
    ("alice", "raise", 60, "premium pair"),
    ("bob", "call", None, None),
    ("carol", "fold", None, "junk"),
    ("bob", "check", None, None),
    ("alice", "bet", 100, "top set"),
    ("bob", "call", None, None),
    ("bob", "check", None, None),
    ("alice", "check", None, "trap"),
    ("bob", "check", None, None),
    ("alice", "check", None, None),
]


async def open_db(tmp_path):
    db = SQLiteDatabase(str(tmp_path / "poker.db"))
    await db.connect()
    return db


async def recorded_session(tmp_path, config):
    db = await open_db(tmp_path)
    integration = DatabaseIntegration(db)
    seats = create_players([("alice", "Alice", False), ("bob", "Bob", False), ("carol", "Carol", False)], config)
    session = GameSession(seats, config=config, db_integration=integration, game_name="Test table")
    deck = build_deck([["AH", "AD"], ["KS", "KC"], ["7D", "2C"]], ["AS", "9H", "4C", "JD", "3S"])
    await session.start_hand(dealer_index=0, deck=deck)
    for player_id, action, amount, reason in HAND_ONE:
        await session.submit_action(player_id, action, amount, reason)
    return db, integration, session


@pytest.mark.asyncio
async def test_actions_are_recorded_with_sequence_numbers(tmp_path, config):
    db, _, session = await recorded_session(tmp_path, config)
    try:
        actions = await db.get_actions_by_game(session.game_id)

        assert [a.sequence_number for a in actions] == list(range(1, 11))
        first = actions[0]
        assert first.seat_id == "alice"
        assert first.action_type == ActionType.RAISE
        assert first.amount == 60
        assert first.chips_moved == 60
        assert first.betting_round == Phase.PREFLOP
        assert first.pot_size_after == 90
        assert first.reasoning == "premium pair"
        assert actions[-1].game_state == session.state.to_snapshot()
        assert actions[-1].betting_round == Phase.RIVER
    finally:
        await db.disconnect()


@pytest.mark.asyncio
async def test_sequence_continues_across_hands(tmp_path, config):
    db, _, session = await recorded_session(tmp_path, config)
    try:
        state = await session.start_hand(deck=build_deck([["2H", "3D"], ["4S", "5C"], ["7D", "9C"]]))
        assert state.hand_number == 2
        assert state.current_player.id == "bob"
        await session.submit_action("bob", "fold")

        actions = await db.get_actions_by_game(session.game_id)
        assert actions[-1].sequence_number == 11
        assert actions[-1].hand_number == 2
        assert await db.get_last_sequence_number(session.game_id) == 11
    finally:
        await db.disconnect()


@pytest.mark.asyncio
async def test_duplicate_sequence_numbers_are_rejected(tmp_path, config):
    db, _, session = await recorded_session(tmp_path, config)
    try:
        action = (await db.get_actions_by_game(session.game_id))[0]
        with pytest.raises(sqlite3.IntegrityError):
            await db.create_action(action.model_copy(update={"id": None}))
    finally:
        await db.disconnect()


@pytest.mark.asyncio
async def test_finished_hand_is_stored(tmp_path, config):
    db, _, session = await recorded_session(tmp_path, config)
    try:
        alice = await db.get_player_by_name("Alice")
        hand = await db.get_hand_by_number(session.game_id, 1)

        assert hand.winner_ids == [alice.id]
        assert hand.winnings == {alice.id: 340}
        assert hand.pot_size == 340
        assert hand.description == "Three of a Kind, Aces"
        assert hand.community_cards == ["AS", "9H", "4C", "JD", "3S"]
        assert hand.completed_at is not None
        assert TableState.from_snapshot(hand.initial_state).current_player.id == "alice"

        detail = await db.get_hand_detail(hand.id)
        assert len(detail.actions) == 10
        assert detail.game.game_name == "Test table"
        by_seat = {p.seat_id: p for p in detail.players}
        assert by_seat["alice"].final_position == 1
        assert by_seat["alice"].starting_chips == 1000
        assert by_seat["alice"].ending_chips == 1180
        assert by_seat["carol"].folded
        assert by_seat["carol"].starting_chips == 1000
    finally:
        await db.disconnect()


@pytest.mark.asyncio
async def test_rounds_group_actions_by_phase(tmp_path, config):
    db, _, session = await recorded_session(tmp_path, config)
    try:
        rounds = await db.get_rounds(session.game_id)

        assert [(r.hand_number, r.betting_round) for r in rounds] == [
            (1, Phase.PREFLOP), (1, Phase.FLOP), (1, Phase.TURN), (1, Phase.RIVER)
        ]
        assert [len(r.actions) for r in rounds] == [3, 3, 2, 2]
        assert rounds[0].pot_size_after == 140
        assert rounds[-1].community_cards == ["AS", "9H", "4C", "JD", "3S"]
    finally:
        await db.disconnect()


@pytest.mark.asyncio
async def test_stats(tmp_path, config):
    db, _, session = await recorded_session(tmp_path, config)
    try:
        await session.close()
        stats = await db.get_stats()

        assert stats.overview.total_games == 1
        assert stats.overview.completed_games == 1
        assert stats.overview.active_games == 0
        assert stats.overview.total_hands == 1
        assert stats.overview.total_actions == 10
        assert stats.action_counts == {
            "fold": 1, "check": 5, "call": 2, "bet": 1, "raise": 1, "all_in": 0
        }

        by_name = {p.player_name: p for p in stats.players}
        assert by_name["Alice"].hands_won == 1
        assert by_name["Alice"].win_percentage == 100
        assert by_name["Alice"].preflop_aggression == 100
        assert by_name["Bob"].hands_won == 0
        assert by_name["Bob"].total_actions == 5
        assert by_name["Carol"].fold_percentage == 100
        assert await db.get_player_stats(by_name["Alice"].player_id) == by_name["Alice"]
        assert await db.get_player_stats(999) is None

        game = await db.get_game(session.game_id)
        assert game.status == GameStatus.COMPLETED
        assert game.total_hands_played == 1
    finally:
        await db.disconnect()


@pytest.mark.asyncio
async def test_replay_reproduces_every_stored_state(tmp_path, config):
    db, integration, session = await recorded_session(tmp_path, config)
    try:
        states = await integration.replay_hand(session.game_id, 1)

        assert len(states) == 10
        assert states[-1] == session.state
        assert states[-1].result.winner_ids == ("alice",)
    finally:
        await db.disconnect()


@pytest.mark.asyncio
async def test_replay_detects_a_tampered_log(tmp_path, config):
    db, _, session = await recorded_session(tmp_path, config)
    try:
        hand = await db.get_hand_by_number(session.game_id, 1)
        initial = TableState.from_snapshot(hand.initial_state)
        actions = await db.get_actions_by_hand(hand.id)

        tampered = [a.model_copy(deep=True) for a in actions]
        tampered[3].game_state["pot"] += 1
        with pytest.raises(ReplayError, match="differs"):
            replay_actions(initial, tampered)

        reordered = actions[:2] + [actions[2].model_copy(update={"sequence_number": 1})] + actions[3:]
        with pytest.raises(ReplayError, match="does not follow"):
            replay_actions(initial, reordered)

        illegal = [actions[0].model_copy(update={"action_type": ActionType.CHECK})] + actions[1:]
        with pytest.raises(ReplayError, match="cannot be replayed"):
            replay_actions(initial, illegal)
    finally:
        await db.disconnect()


@pytest.mark.asyncio
async def test_replay_of_an_unknown_hand(tmp_path, config):
    db, integration, session = await recorded_session(tmp_path, config)
    try:
        with pytest.raises(ReplayError):
            await integration.replay_hand(session.game_id, 99)
    finally:
        await db.disconnect()


@pytest.mark.asyncio
async def test_fractional_raise_leaves_table_and_log_untouched(tmp_path, config):
    db = await open_db(tmp_path)
    try:
        seats = create_players([("alice", "Alice", False), ("bob", "Bob", False), ("carol", "Carol", False)], config)
        session = GameSession(seats, config=config, db_integration=DatabaseIntegration(db))
        before = await session.start_hand(dealer_index=0,
                                          deck=build_deck([["AH", "AD"], ["KS", "KC"], ["7D", "2C"]]))
        version = session.version

        with pytest.raises(IllegalActionError, match="whole number"):
            await session.submit_action("alice", "raise", 60.9)

        assert session.state is before
        assert session.version == version
        assert await db.get_actions_by_game(session.game_id) == []

        await session.submit_action("alice", "raise", 60)
        assert [a.amount for a in await db.get_actions_by_game(session.game_id)] == [60]
    finally:
        await db.disconnect()


@pytest.mark.asyncio
async def test_replay_game_walks_every_hand(tmp_path, config):
    db, integration, session = await recorded_session(tmp_path, config)
    try:
        await session.start_hand(deck=build_deck([["2H", "3D"], ["4S", "5C"], ["7D", "9C"]]))
        await session.submit_action("bob", "fold")
        await session.submit_action("carol", "fold")

        replayed = await integration.replay_game(session.game_id)

        assert sorted(replayed) == [1, 2]
        assert len(replayed[1]) == 10
        assert replayed[2][-1] == session.state
        assert replayed[2][-1].result.winner_ids == ("alice",)
    finally:
        await db.disconnect()


@pytest.mark.asyncio
async def test_replay_game_checks_sequence_across_hands(tmp_path, config):
    db, integration, session = await recorded_session(tmp_path, config)
    try:
        await session.start_hand(deck=build_deck([["2H", "3D"], ["4S", "5C"], ["7D", "9C"]]))
        await session.submit_action("bob", "fold")
        await session.submit_action("carol", "fold")
        db.connection.execute(
            "UPDATE actions SET sequence_number = 0 WHERE game_id = ? AND sequence_number = 11",
            (session.game_id,))
        db.connection.commit()

        with pytest.raises(ReplayError, match="Hand 2 starts at sequence number 0"):
            await integration.replay_game(session.game_id)
        with pytest.raises(ReplayError, match="no recorded hands"):
            await integration.replay_game(session.game_id + 1)
    finally:
        await db.disconnect()
