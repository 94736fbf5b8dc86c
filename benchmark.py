#!/usr/bin/env python3

import asyncio
import argparse
import json
import logging
import os
import random
from datetime import datetime
from dotenv import load_dotenv

load_dotenv()

from ai_players import OpenAIPlayer, AnthropicPlayer, RandomPlayer
from betting_engine import TableConfig
from game_simulator import GameSimulator
from sqlite_database import SQLiteDatabase

logger = logging.getLogger(__name__)


def print_results(results, starting_chips: int):
    print("\n" + "="*60)
    print("POKER AI BENCHMARK RESULTS")
    print("="*60)

    print(f"\nBenchmark Summary:")
    print(f"Total Sessions: {results.total_sessions}")
    print(f"Total Hands: {results.total_hands}")
    print(f"Overall Winner: {results.overall_winner}")

    print(f"\nPlayer Performance:")
    print(f"{'Player':<20} {'Total $':<12} {'Avg/Session':<12} {'ROI':<8} {'Sessions Won':<12}")
    print("-" * 70)

    for player, stats in results.player_stats.items():
        roi_pct = stats['roi'] * 100
        print(f"{player:<20} ${stats['total_final_chips']:<11,} "
              f"${stats['average_chips_per_session']:<11,.0f} "
              f"{roi_pct:<7.1f}% {stats['sessions_won']:<12}")

    print(f"\nSession-by-Session Results:")
    for i, session in enumerate(results.session_results, 1):
        print(f"\nSession {i} ({session.hands_played} hands):")
        for player, chips in session.player_final_chips.items():
            profit = chips - starting_chips
            print(f"  {player}: ${chips:,} (${profit:+,})")

def print_action_stats(stats):
    print(f"\nRecorded games: {stats.overview.total_games} "
          f"({stats.overview.completed_games} completed), "
          f"hands: {stats.overview.total_hands}, actions: {stats.overview.total_actions}")
    print(f"{'Player':<20} {'Hands':<8} {'Won':<6} {'Win %':<8} {'Fold %':<8} {'Raise %':<8}")
    print("-" * 60)
    for player in stats.players:
        print(f"{player.player_name:<20} {player.total_hands:<8} {player.hands_won:<6} "
              f"{player.win_percentage:<8.1f} {player.fold_percentage:<8.1f} {player.raise_percentage:<8.1f}")

async def verify_replays(integration, results):
    print(f"\nReplaying recorded hands:")
    for i, session in enumerate(results.session_results, 1):
        replayed = await integration.replay_game(session.game_id)
        actions = sum(len(states) for states in replayed.values())
        print(f"  Session {i}: {len(replayed)} hands, {actions} actions reproduced")

def save_results(results, filename: str):
    data = {
        "timestamp": datetime.now().isoformat(),
        "benchmark_summary": {
            "total_sessions": results.total_sessions,
            "total_hands": results.total_hands,
            "overall_winner": results.overall_winner
        },
        "player_stats": results.player_stats,
        "session_results": [
            {
                "hands_played": session.hands_played,
                "session_duration": session.session_duration,
                "final_chips": session.player_final_chips,
                "hand_count": len(session.hand_results),
                "hands": session.hand_results
            }
            for session in results.session_results
        ]
    }

    with open(filename, 'w') as f:
        json.dump(data, f, indent=2)
    print(f"\nResults saved to {filename}")

async def main():
    parser = argparse.ArgumentParser(description="Texas Hold'em AI Benchmark")
    parser.add_argument("--openai-key", help="OpenAI API key")
    parser.add_argument("--openai-base-url", help="OpenAI-compatible API base URL")
    parser.add_argument("--openai-model", help="Play a single OpenAI model instead of the default line-up")
    parser.add_argument("--anthropic-key", help="Anthropic API key")
    parser.add_argument("--sessions", type=int, default=5, help="Number of sessions to run")
    parser.add_argument("--hands-per-session", type=int, default=50, help="Hands per session")
    parser.add_argument("--starting-chips", type=int, default=1000, help="Starting chips per player")
    parser.add_argument("--small-blind", type=int, default=10, help="Small blind")
    parser.add_argument("--big-blind", type=int, default=20, help="Big blind")
    parser.add_argument("--timeout", type=float, default=30.0, help="Seconds an AI may think before folding")
    parser.add_argument("--db-path", help="SQLite database file for the action log")
    parser.add_argument("--output", help="Output file for results (JSON)")
    parser.add_argument("--include-random", action="store_true", help="Include random player for baseline")
    parser.add_argument("--seed", type=int, help="Seed for shuffling and the random baseline")
    parser.add_argument("--verify-replay", action="store_true", help="Replay every recorded hand from the action log")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (DEBUG, INFO, ...)")

    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    # Get settings from environment if not provided
    openai_key = args.openai_key or os.getenv("OPENAI_API_KEY")
    openai_base_url = args.openai_base_url or os.getenv("OPENAI_BASE_URL")
    openai_model = args.openai_model or os.getenv("OPENAI_MODEL")
    anthropic_key = args.anthropic_key or os.getenv("ANTHROPIC_API_KEY")
    db_path = args.db_path or os.getenv("POKER_DB_PATH", "poker_games.db")

    if not openai_key and not anthropic_key and not args.include_random:
        print("Error: At least one API key is required (OpenAI or Anthropic)")
        print("Provide via --openai-key, --anthropic-key, or environment variables OPENAI_API_KEY, ANTHROPIC_API_KEY")
        return

    rng = random.Random(args.seed)

    # Create players
    players = []

    if openai_key:
        if openai_model:
            players.append(OpenAIPlayer(openai_model, openai_key, openai_model, base_url=openai_base_url))
        else:
            players.extend([
                OpenAIPlayer("GPT-4o", openai_key, "gpt-4o", base_url=openai_base_url),
                OpenAIPlayer("GPT-4o-mini", openai_key, "gpt-4o-mini", base_url=openai_base_url),
            ])

    if anthropic_key:
        players.extend([
            AnthropicPlayer("Claude-4-Sonnet", anthropic_key, "claude-sonnet-4-20250514"),
            AnthropicPlayer("Claude-3.5-Haiku", anthropic_key, "claude-3-5-haiku-20241022")
        ])

    if args.include_random:
        players.append(RandomPlayer("Random-Baseline", random.Random(rng.random())))
        if len(players) < 2:
            players.append(RandomPlayer("Random-Baseline-2", random.Random(rng.random())))

    if len(players) < 2:
        print("Error: Need at least 2 players for poker game")
        return

    print(f"Starting benchmark with {len(players)} players:")
    for player in players:
        print(f"  - {player.name}")

    config = TableConfig(
        starting_chips=args.starting_chips,
        small_blind=args.small_blind,
        big_blind=args.big_blind
    )

    print(f"\nConfiguration:")
    print(f"  Sessions: {args.sessions}")
    print(f"  Hands per session: {args.hands_per_session}")
    print(f"  Starting chips: ${args.starting_chips:,}")
    print(f"  Blinds: ${args.small_blind}/${args.big_blind}")
    print(f"  Database: {db_path}")

    # Setup database
    db = SQLiteDatabase(db_path)
    await db.connect()

    simulator = GameSimulator(players, config, db=db, rng=rng, decision_timeout=args.timeout)

    try:
        results = await simulator.run_benchmark(args.sessions, args.hands_per_session)

        print_results(results, args.starting_chips)
        print_action_stats(await db.get_stats())

        if args.verify_replay:
            await verify_replays(simulator.db_integration, results)

        if args.output:
            save_results(results, args.output)

    except KeyboardInterrupt:
        print("\nBenchmark interrupted by user")
    except Exception:
        logger.exception("Error during benchmark")
    finally:
        await db.disconnect()

def cli():
    asyncio.run(main())

if __name__ == "__main__":
    cli()
