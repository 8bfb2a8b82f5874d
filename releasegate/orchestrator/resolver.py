"""
Compose command resolution.

Detects whether the unified `docker compose` plugin or the legacy
standalone `docker-compose` binary is available, and memoizes the choice on
the run context so every later stage uses the same variant.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

import structlog

from releasegate.orchestrator.exceptions import ToolUnavailableError
from releasegate.orchestrator.pipeline.context import COMPOSE_COMMAND, PipelineContext
from releasegate.orchestrator.shell import CommandRunner

logger = structlog.get_logger(__name__)

DEFAULT_MODERN = ("docker", "compose")
DEFAULT_LEGACY = ("docker-compose",)


class VariantKind(str, Enum):
    MODERN = "modern"
    LEGACY = "legacy"


@dataclass(frozen=True)
class CommandVariant:
    """
    A resolved compose command.

    Both variants accept the same subcommands, so stages only ever call
    command() and never branch on the kind.
    """

    kind: VariantKind
    argv: tuple[str, ...]

    def command(self, *args: str) -> list[str]:
        """Build a full argv, e.g. command("up", "-d", "--build")."""
        return [*self.argv, *args]

    @property
    def is_modern(self) -> bool:
        return self.kind is VariantKind.MODERN

    def __str__(self) -> str:
        return " ".join(self.argv)


class CommandResolver:
    """
    Probes for the compose command variant.

    The modern command is probed first; on any probe failure (non-zero exit,
    missing executable, timeout) the legacy command is probed. If neither
    answers, ToolUnavailableError is raised.
    """

    def __init__(
        self,
        runner: CommandRunner,
        modern: Sequence[str] = DEFAULT_MODERN,
        legacy: Sequence[str] = DEFAULT_LEGACY,
        timeout: float = 10.0,
    ) -> None:
        self._runner = runner
        self._candidates = (
            CommandVariant(VariantKind.MODERN, tuple(modern)),
            CommandVariant(VariantKind.LEGACY, tuple(legacy)),
        )
        self._timeout = timeout

    async def resolve(self) -> CommandVariant:
        """
        Probe the host for a usable compose command.

        Returns:
            The first variant whose `version` subcommand exits 0

        Raises:
            ToolUnavailableError: Neither variant is usable
        """
        failures: list[str] = []

        for variant in self._candidates:
            result = await self._runner.run(variant.command("version"), timeout=self._timeout)
            if result.ok:
                logger.info(
                    "compose_command_resolved",
                    variant=variant.kind.value,
                    command=str(variant),
                    version=result.stdout.strip().splitlines()[0] if result.stdout.strip() else None,
                )
                return variant

            logger.info(
                "compose_probe_failed",
                variant=variant.kind.value,
                command=str(variant),
                returncode=result.returncode,
                timed_out=result.timed_out,
            )
            failures.append(f"$ {' '.join(result.argv)}\n{result.output}".rstrip())

        raise ToolUnavailableError(
            probed=[list(v.argv) for v in self._candidates],
            output="\n".join(failures),
        )

    async def resolve_for(self, context: PipelineContext) -> CommandVariant:
        """Resolve once per run; later calls return the memoized variant."""
        variant = context.get(COMPOSE_COMMAND)
        if variant is None:
            variant = await self.resolve()
            context.set(COMPOSE_COMMAND, variant)
        return variant
