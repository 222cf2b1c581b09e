"""
config.py — Target registry and configuration loader for hardwatch.

The configuration file is line oriented, one target per line::

    # path<TAB>flags
    /usr/bin/python3.11	m
    /opt/app/bin/server	em

Blank lines and lines starting with ``#`` are skipped.  Any other line that
does not split into exactly two tab-separated fields makes the whole load
fail; a partially parsed registry is never returned.  Target paths are
made absolute but are not otherwise rewritten: ``..`` is left for the
kernel to resolve.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """The configuration file could not be read or is malformed."""


@dataclass(frozen=True)
class Target:
    """A managed executable and the policy flags applied to it."""

    path: str
    policy: str


class Registry:
    """Every Target from one configuration load, keyed by path.

    A registry is never modified after it is built; a reload builds a new
    one and the old one is dropped.
    """

    def __init__(self, config_path: str, targets: Dict[str, Target]) -> None:
        self.config_path = config_path
        self._targets = dict(targets)

    def __getitem__(self, path: str) -> Target:
        return self._targets[path]

    def __contains__(self, path: object) -> bool:
        return path in self._targets

    def __iter__(self) -> Iterator[str]:
        return iter(self._targets)

    def __len__(self) -> int:
        return len(self._targets)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Registry):
            return NotImplemented
        return self.config_path == other.config_path and self._targets == other._targets

    def __repr__(self) -> str:
        return f"Registry({self.config_path!r}, {len(self._targets)} targets)"

    def get(self, path: str) -> Target | None:
        return self._targets.get(path)

    def targets(self) -> List[Target]:
        return list(self._targets.values())


def absolute_path(path: str) -> str:
    """Anchor a relative *path* at the working directory, keeping ``..`` as is."""
    if os.path.isabs(path):
        return path
    return os.path.join(os.getcwd(), path)


def parse_lines(lines: Iterable[str], source: str = "<config>") -> Dict[str, Target]:
    """Parse configuration lines into a ``path -> Target`` mapping.

    Raises:
        ConfigError: on the first line that is not ``path<TAB>flags``.
    """
    targets: Dict[str, Target] = {}
    for lineno, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue

        fields = line.split("\t")
        if len(fields) != 2:
            raise ConfigError(
                f"{source}:{lineno}: malformed line (expected path<TAB>flags)"
            )

        path, policy = fields
        path = absolute_path(path)
        if path in targets:
            logger.debug("%s:%d: %s listed again, later entry wins", source, lineno, path)
        targets[path] = Target(path=path, policy=policy)
    return targets


def load_config(path: str) -> Registry:
    """Read *path* and build a fresh :class:`Registry` from it."""
    config_path = absolute_path(path)
    try:
        with open(config_path, encoding="utf-8") as fh:
            targets = parse_lines(fh, source=config_path)
    except OSError as exc:
        raise ConfigError(f"cannot read {config_path}: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise ConfigError(f"{config_path}: not valid UTF-8: {exc}") from exc

    logger.info("Loaded %d targets from %s", len(targets), config_path)
    return Registry(config_path, targets)
