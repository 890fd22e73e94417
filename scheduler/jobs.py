"""
Sweeper wiring for the two expiration jobs.
"""

import logging
from typing import List

from core.config import SweeperConfig

from .sweeper import PeriodicSweeper


logger = logging.getLogger(__name__)

BAN_SWEEPER = "ban-expiration"
PROPOSAL_SWEEPER = "proposal-expiration"


def build_sweepers(ban_service, proposal_service, config: SweeperConfig) -> List[PeriodicSweeper]:
    """
    Create the ban and proposal expiration sweepers.

    Args:
        ban_service: object exposing expire_bans()
        proposal_service: object exposing expire_proposals()
        config: intervals and stop timeout
    """
    sweepers = [
        PeriodicSweeper(
            BAN_SWEEPER,
            ban_service.expire_bans,
            config.ban_interval_seconds,
            stop_timeout_seconds=config.stop_timeout_seconds,
        ),
        PeriodicSweeper(
            PROPOSAL_SWEEPER,
            proposal_service.expire_proposals,
            config.proposal_interval_seconds,
            stop_timeout_seconds=config.stop_timeout_seconds,
        ),
    ]
    logger.info(
        f"Sweepers configured | ban={config.ban_interval_seconds}s "
        f"proposal={config.proposal_interval_seconds}s"
    )
    return sweepers


__all__ = ["build_sweepers", "BAN_SWEEPER", "PROPOSAL_SWEEPER"]
