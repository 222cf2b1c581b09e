"""
applier.py — Policy application via ``paxctl`` for hardwatch.

Wraps the external enforcement tool.  Each call is synchronous and is never
retried here; callers decide what a failure means.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from typing import Optional

from hardwatch.config import Registry, Target

logger = logging.getLogger(__name__)

PAXCTL = "paxctl"


class PolicyApplyError(Exception):
    """Applying a target's policy failed."""


class BulkApplyError(PolicyApplyError):
    """At least one target failed during a bulk pass."""

    def __init__(self, failed: int, total: int) -> None:
        super().__init__(f"failed to set flags on {failed} of {total} targets")
        self.failed = failed
        self.total = total


def find_paxctl(explicit: Optional[str] = None) -> str:
    """Locate the enforcement tool.

    Args:
        explicit: Path given on the command line.  When ``None`` the tool is
                  looked up on ``$PATH``.

    Raises:
        PolicyApplyError: if the tool cannot be found or is not executable.
    """
    if explicit is not None:
        if os.path.isfile(explicit) and os.access(explicit, os.X_OK):
            return explicit
        raise PolicyApplyError(f"{explicit} is not an executable file")

    found = shutil.which(PAXCTL)
    if found is None:
        raise PolicyApplyError(f"can't find {PAXCTL} on $PATH")
    return found


class PolicyApplier:
    """Applies a Target's flags with ``paxctl -c<flags> <path>``.

    The tool's stdout/stderr are inherited so that its own diagnostics show
    up next to ours.
    """

    def __init__(self, paxctl: str) -> None:
        self.paxctl = paxctl

    def command(self, target: Target) -> list[str]:
        return [self.paxctl, "-c" + target.policy, target.path]

    def apply(self, target: Target) -> None:
        """Apply *target*'s policy.

        Raises:
            PolicyApplyError: if the tool cannot be started or exits non-zero.
        """
        cmd = self.command(target)
        logger.debug("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(cmd, check=False)
        except OSError as exc:
            raise PolicyApplyError(f"cannot run {self.paxctl}: {exc}") from exc

        if result.returncode != 0:
            raise PolicyApplyError(
                f"{self.paxctl} exited with status {result.returncode} for {target.path}"
            )
        logger.info("Applied flags %r to %s", target.policy, target.path)


def apply_all(registry: Registry, applier: PolicyApplier) -> int:
    """Apply every target's policy once; the order is unspecified.

    A failing target never stops the remaining ones from being attempted.

    Returns:
        The number of targets whose flags were applied.

    Raises:
        BulkApplyError: after all targets were tried, if any of them failed.
    """
    failed = 0
    for target in registry.targets():
        try:
            applier.apply(target)
        except PolicyApplyError as exc:
            logger.error("Failed to apply flags to %s: %s", target.path, exc)
            failed += 1

    if failed:
        raise BulkApplyError(failed, len(registry))
    return len(registry)
