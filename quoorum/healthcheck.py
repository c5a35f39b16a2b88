"""Provider reachability before a debate.

Every configured provider gets one tiny deterministic call in parallel. A
failure is reported with whether it looks transient (rate limit, timeout,
server error), which separates a bad key from a busy API. The report also
names the personas that would lose their provider, so the caller can warn
before they are moved to the fallback.
"""

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from quoorum.models import GenerationSettings, Persona
from quoorum.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)

PING_PROMPT = "Reply with the word OK only."
PING_TIMEOUT_SEC = 15.0


@dataclass
class HealthStatus:
    provider: str
    ok: bool
    latency_sec: float = 0.0
    error: str = ""
    transient: bool = False


@dataclass
class HealthReport:
    statuses: dict[str, HealthStatus] = field(default_factory=dict)

    @property
    def working(self) -> list[str]:
        return sorted(name for name, s in self.statuses.items() if s.ok)

    @property
    def failed(self) -> list[str]:
        return sorted(name for name, s in self.statuses.items() if not s.ok)

    def stranded_personas(self, roster: Sequence[Persona]) -> list[str]:
        """Keys of personas whose provider failed the check, in roster order."""
        failed = set(self.failed)
        return [p.key for p in roster if p.provider in failed]


async def ping_provider(name: str, provider: AIProvider, timeout_sec: float = PING_TIMEOUT_SEC) -> HealthStatus:
    settings = GenerationSettings(provider=name, model=provider.model_string(), temperature=0.0, max_tokens=16)
    start = time.monotonic()
    try:
        await asyncio.wait_for(provider.generate(PING_PROMPT, settings), timeout=timeout_sec)
    except TimeoutError:
        return HealthStatus(name, False, timeout_sec, f"No reply within {timeout_sec}s", transient=True)
    except ProviderError as exc:
        logger.debug("Health check failed for %s: %s", name, exc)
        return HealthStatus(name, False, time.monotonic() - start, str(exc), transient=exc.retryable)
    return HealthStatus(name, True, time.monotonic() - start)


async def run_health_checks(
    providers: dict[str, AIProvider],
    timeout_sec: float = PING_TIMEOUT_SEC,
) -> HealthReport:
    """Ping all providers in parallel."""
    statuses = await asyncio.gather(*(ping_provider(n, p, timeout_sec) for n, p in providers.items()))
    report = HealthReport({s.provider: s for s in statuses})
    if report.failed:
        logger.warning("Providers failing health check: %s", ", ".join(report.failed))
    return report
