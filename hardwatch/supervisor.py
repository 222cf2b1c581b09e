"""
supervisor.py — Reload and backoff control for hardwatch.

Keeps enforcement running across configuration edits and watch failures:

    load → enforce → watch → { reload now | cool down, then reload } → ...

A configuration that cannot be loaded after the first successful load is
treated as operator error and is raised to the caller instead of retried.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from hardwatch.applier import BulkApplyError, PolicyApplier, PolicyApplyError, apply_all
from hardwatch.config import Registry, load_config
from hardwatch.monitor import EventSourceError, WatchSession
from hardwatch.reconciler import LoopState, Reconciler

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN = 60.0


class Supervisor:
    """Drives the reconciliation loop forever.

    Parameters:
        config_path:    Configuration file; reused for every reload.
        applier:        Policy applier shared by bulk passes and the loop.
        cooldown:       Seconds to wait after a failed watch session.
        source_factory: Builds a fresh watch session for each loop run.
        sleep:          Sleep function (swapped out in tests).
    """

    def __init__(
        self,
        config_path: str,
        applier: PolicyApplier,
        cooldown: float = DEFAULT_COOLDOWN,
        source_factory: Callable[[], WatchSession] = WatchSession,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config_path = config_path
        self.applier = applier
        self.cooldown = cooldown
        self.source_factory = source_factory
        self.sleep = sleep
        self.registry: Optional[Registry] = None

    def load(self) -> Registry:
        """Build a new Registry from the configuration file, replacing the old one.

        Raises:
            ConfigError: if the file cannot be read or parsed.
        """
        registry = load_config(self.config_path)
        self.config_path = registry.config_path
        self.registry = registry
        return registry

    def enforce(self) -> bool:
        """Run the eager bulk pass; return ``False`` if any target failed."""
        if self.registry is None:
            raise RuntimeError("load() must be called before enforce()")
        try:
            apply_all(self.registry, self.applier)
        except BulkApplyError as exc:
            logger.error("%s", exc)
            return False
        return True

    def cycle(self) -> LoopState:
        """Run one watch session and deal with the way it ended.

        Returns:
            How the session ended.  By the time this returns, the registry
            has been reloaded and enforced for the next session.

        Raises:
            ConfigError: the configuration could not be reloaded.
        """
        if self.registry is None:
            self.load()
            self.enforce()

        reconciler = Reconciler(self.registry, self.applier, self.source_factory)
        try:
            state = reconciler.run()
        except (EventSourceError, PolicyApplyError) as exc:
            logger.error("Watch session failed: %s", exc)
            logger.info("Restarting in %.0f s", self.cooldown)
            self.sleep(self.cooldown)
            state = LoopState.FAILED

        logger.info("Reloading config file from %s", self.config_path)
        self.load()
        self.enforce()
        return state

    def run_forever(self) -> None:
        """Cycle forever.  Only a ConfigError or an interrupt ends this."""
        while True:
            self.cycle()
