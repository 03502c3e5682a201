from gatewars.helper.snapshot_helpers import (
    SnapshotBundle,
    build_snapshot,
    parse_city,
    parse_cities,
    pick_current_city,
    parse_research,
    parse_queue,
    parse_upgrade_response,
    parse_research_response,
)


__all__ = [
    "SnapshotBundle",
    "build_snapshot",
    "parse_city",
    "parse_cities",
    "pick_current_city",
    "parse_research",
    "parse_queue",
    "parse_upgrade_response",
    "parse_research_response",
]
