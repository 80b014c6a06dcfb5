"""Dispatches each test to the probe registered for its kind."""

from collections.abc import Mapping, Sequence
from typing import Any

from carrierlab.core.models import Sample, TestConfig, TestKind
from carrierlab.core.ports import SampleSourcePort


class KindRoutingSampleSource(SampleSourcePort):
    """Composite SampleSourcePort keyed by TestKind."""

    def __init__(self, routes: Mapping[TestKind, SampleSourcePort]):
        self._routes = dict(routes)

    def source_for(self, kind: TestKind) -> SampleSourcePort:
        try:
            return self._routes[kind]
        except KeyError:
            raise ValueError(f"No probe registered for {kind.value} tests") from None

    async def prepare(self, config: TestConfig) -> None:
        await self.source_for(config.kind).prepare(config)

    async def sample(self, config: TestConfig, sequence: int) -> Mapping[str, Any]:
        return await self.source_for(config.kind).sample(config, sequence)

    async def summarize(
        self, config: TestConfig, samples: Sequence[Sample]
    ) -> Mapping[str, Any] | None:
        return await self.source_for(config.kind).summarize(config, samples)

    async def close(self) -> None:
        closed: set[int] = set()
        for source in self._routes.values():
            if id(source) in closed:
                continue
            closed.add(id(source))
            await source.close()
