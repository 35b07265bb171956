"""
Gradual traffic shifting between the old and the new slot.

A fixed schedule: 100/0, 80/20, ... 0/100, one write per step with a sleep
after each. It is not driven by health feedback once it starts.
"""

import logging
import time
from typing import Callable, List, Tuple

from docker_roll.models import TrafficSplit
from docker_roll.traefik_manager import TraefikConfigWriter

logger = logging.getLogger("docker_roll.traffic_shift")

SHIFT_STRIDE = 20


def shift_schedule(no_shift: bool = False, stride: int = SHIFT_STRIDE) -> List[Tuple[int, int]]:
    """
    (old, new) weight pairs in the order they are applied.

    Direct cutover is a single 0/100 step.
    """
    if no_shift:
        return [(0, 100)]
    return [(100 - new, new) for new in range(0, 101, stride)]


class TrafficShiftController:
    """Emits the weighted split sequence through the proxy config writer."""

    def __init__(
        self, writer: TraefikConfigWriter, sleep: Callable[[float], None] = time.sleep
    ) -> None:
        self.writer = writer
        self.sleep = sleep

    def shift(
        self, old_key: str, new_key: str, interval: float, no_shift: bool = False
    ) -> List[TrafficSplit]:
        """
        Drive traffic from old_key to new_key.

        Args:
            old_key: Composite key of the live slot
            new_key: Composite key of the new slot
            interval: Seconds to wait after each step
            no_shift: Cut over in a single step

        Returns:
            The splits written, in order
        """
        if no_shift:
            logger.info("Performing direct switch to new version (no gradual shifting)")

        applied: List[TrafficSplit] = []
        for old_weight, new_weight in shift_schedule(no_shift):
            split = TrafficSplit(
                old_key=old_key, new_key=new_key, old_weight=old_weight, new_weight=new_weight
            )
            self.writer.write(split)
            applied.append(split)
            if not no_shift:
                self.sleep(interval)

        return applied
