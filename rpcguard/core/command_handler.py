"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py), delegates the work to
the SimulationService and renders the results through the UserInterface.
Every handler returns True on success and False when it reported an error.
"""

import logging
from typing import Any, Dict, Optional

from rpcguard.core.services.simulation_service import SimulationService
from rpcguard.domain.interfaces.user_interface import UserInterface
from rpcguard.domain.models.common import BackoffPolicy
from rpcguard.domain.models.errors import ResilienceError

logger = logging.getLogger(__name__)


class CommandHandler:
    """Handles incoming commands and delegates to appropriate services."""

    def __init__(self, simulation_service: SimulationService, ui: UserInterface):
        self.simulation_service = simulation_service
        self.ui = ui

    def handle_backoff(self, policy: BackoffPolicy, failures: Optional[int] = None, seed: Optional[int] = None) -> bool:
        """Handles the 'backoff' command: prints the delay schedule of a policy.

        Args:
            policy: Retry policy to describe.
            failures: If given, also rehearse an operation failing this many times.
            seed: Jitter seed for the rehearsal.
        """
        logger.info(f"Handling 'backoff' command for policy: {policy}")
        try:
            schedule = self.simulation_service.backoff_schedule(policy)
            worst_case = self.simulation_service.worst_case_wait_ms(policy)
        except ResilienceError as e:
            logger.error(f"Backoff command failed: {e}")
            self.ui.display_error(f"Invalid retry policy: {e}")
            return False

        if schedule:
            rows = [
                (entry['attempt'], entry['attempt'] + 1, f"{entry['delay_ms']:.0f}", f"{entry['max_with_jitter_ms']:.0f}")
                for entry in schedule
            ]
            self.ui.display_table(
                "Retry delay schedule",
                ["Failed attempt", "Next attempt", "Delay (ms)", "Max with jitter (ms)"],
                rows,
                numeric_columns=(0, 1, 2, 3),
            )
        else:
            self.ui.display_info("max_attempts is 1: failures are never retried.")
        self.ui.display_info(f"Worst-case total wait: {worst_case:.0f} ms over {policy['max_attempts']} attempts.")

        if failures is not None:
            try:
                rehearsal = self.simulation_service.rehearse_retries(policy, failures, seed=seed)
            except ResilienceError as e:
                self.ui.display_error(f"Rehearsal failed: {e}")
                return False
            outcome = "succeeded" if rehearsal['succeeded'] else "gave up"
            self.ui.display_info(
                f"Rehearsal with {failures} transient failure(s): {outcome} after "
                f"{rehearsal['attempts']} attempt(s), waited {rehearsal['total_wait_ms']:.0f} ms."
            )
        return True

    def handle_simulate(self, rate: float, capacity: Optional[int], requests: int, interval_ms: float) -> bool:
        """Handles the 'simulate' command: admission decisions of a token bucket."""
        logger.info(
            f"Handling 'simulate' command: rate={rate}, capacity={capacity}, "
            f"requests={requests}, interval={interval_ms}ms"
        )
        try:
            records = self.simulation_service.simulate_limiter(rate, capacity, requests, interval_ms)
        except ResilienceError as e:
            logger.error(f"Simulate command failed: {e}")
            self.ui.display_error(f"Simulation failed: {e}")
            return False

        rows = [
            (r['request_number'], f"{r['at_ms']:.1f}", "admitted" if r['admitted'] else "denied", f"{r['tokens_after']:.2f}")
            for r in records
        ]
        self.ui.display_table(
            "Token bucket simulation",
            ["Request", "At (ms)", "Decision", "Tokens left"],
            rows,
            numeric_columns=(0, 1, 3),
        )
        admitted = sum(1 for r in records if r['admitted'])
        self.ui.display_info(f"Admitted {admitted} of {len(records)} requests.")
        return True

    def handle_show_config(self, settings: Dict[str, Any]) -> bool:
        """Handles the 'config' command: prints effective settings."""
        logger.info("Handling 'config' command.")
        rows = [(key, "-" if value is None else value) for key, value in sorted(settings.items())]
        self.ui.display_table("Effective configuration", ["Key", "Value"], rows)
        return True
