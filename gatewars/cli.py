#!/usr/bin/env python3
"""
Command-line entry point for offline what-if battles and config inspection.

    gatewars-sim simulate --attacker hatak=20 --defender f302=40 --seed 7
    gatewars-sim ships
"""
from __future__ import annotations

import argparse
import json
import logging
import random
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from gatewars.combat import BattleFactors, CombatResolver
from gatewars.errors import GateWarsError
from gatewars.helper.snapshot_helpers import parse_research
from gatewars.infra.logging_setup import configure_logging
from gatewars.models import GAME_CONFIG, CoordinatorSettings, ResearchType

logger = logging.getLogger(__name__)


def parse_pairs(values: Optional[List[str]], what: str) -> Dict[str, int]:
    """Turn ["hatak=20", "f302=5"] into {"hatak": 20, "f302": 5}."""
    out: Dict[str, int] = {}
    for raw in values or []:
        key, sep, count = raw.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"{what} must look like id=count, got {raw!r}")
        try:
            out[key.strip()] = int(count)
        except ValueError as exc:
            raise argparse.ArgumentTypeError(f"{what} count for {key!r} is not an integer") from exc
    return out


def load_research(path: Optional[Path]) -> Dict[str, ResearchType]:
    if path is None:
        return {}
    payloads = json.loads(path.read_text(encoding="utf-8"))
    return parse_research(payloads)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="gatewars-sim", description="GateWars game-state tools.")
    parser.add_argument("--log-level", type=str, default=None, help="Log level (defaults to LOG_LEVEL).")
    parser.add_argument("--json-logs", action="store_true", help="Emit one JSON object per log line.")
    sub = parser.add_subparsers(dest="command", required=True)

    sim = sub.add_parser("simulate", help="Simulate a battle between two fleets.")
    sim.add_argument("--attacker", action="append", metavar="SHIP=COUNT", help="Attacking ships, repeatable.")
    sim.add_argument("--defender", action="append", metavar="SHIP=COUNT", help="Defending ships, repeatable.")
    sim.add_argument("--attacker-level", action="append", metavar="RESEARCH=LEVEL", help="Simulated attacker research level.")
    sim.add_argument("--defender-level", action="append", metavar="RESEARCH=LEVEL", help="Simulated defender research level.")
    sim.add_argument("--research-file", type=Path, default=None, help="JSON list of research payloads for bonuses.")
    sim.add_argument("--luck", type=float, default=1.0, help="Luck factor.")
    sim.add_argument("--morale", type=float, default=1.0, help="Attacker morale factor.")
    sim.add_argument("--terrain", type=float, default=1.0, help="Defender terrain factor.")
    sim.add_argument("--surprise", type=float, default=1.0, help="Surprise factor (>1 favours attacker).")
    sim.add_argument("--seed", type=int, default=None, help="Seed for a repeatable battle.")

    sub.add_parser("ships", help="List the ship catalog.")
    return parser.parse_args(argv)


def run_simulation(args: argparse.Namespace) -> dict:
    research = load_research(args.research_file)
    resolver = CombatResolver(GAME_CONFIG.ship_catalog, research, rng=random.Random(args.seed))
    attacker = parse_pairs(args.attacker, "attacker")
    defender = parse_pairs(args.defender, "defender")
    unknown = sorted((set(attacker) | set(defender)) - set(GAME_CONFIG.ship_catalog))
    if unknown:
        logger.warning("ignoring unknown ships: %s", ", ".join(unknown))
    report = resolver.resolve(
        attacker,
        defender,
        attacker_levels=parse_pairs(args.attacker_level, "attacker level") if args.attacker_level else None,
        defender_levels=parse_pairs(args.defender_level, "defender level") if args.defender_level else None,
        factors=BattleFactors(
            luck=args.luck, morale=args.morale, terrain=args.terrain, surprise=args.surprise
        ),
    )
    logger.info(
        "battle resolved winner=%s losses attacker=%d%% defender=%d%%",
        report.winner.value, report.attacker_loss_percent, report.defender_loss_percent,
    )
    return report.as_dict()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level or CoordinatorSettings().log_level, json_output=args.json_logs)
    try:
        if args.command == "simulate":
            payload = run_simulation(args)
        else:
            payload = {sid: ship.model_dump() for sid, ship in GAME_CONFIG.ship_catalog.items()}
    except (argparse.ArgumentTypeError, GateWarsError, OSError, ValueError) as exc:
        logger.error("%s", exc)
        return 2
    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
