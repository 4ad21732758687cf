import logging
from typing import Dict, Iterable, List, Tuple

from glab.orchestrator.types import ProducerSpec

logger = logging.getLogger(__name__)


class ProducerRegistry:
    """
    Producers grouped by stage. Stages run in sorted stage id order; inside a stage
    producers run by priority (high first), then by name.
    """

    def __init__(self, producers: Iterable[ProducerSpec] = ()):
        self._producers: Dict[Tuple[str, str], ProducerSpec] = {}
        for p in producers:
            self.register(p)

    def register(self, spec: ProducerSpec) -> ProducerSpec:
        key = (spec.stage_id, spec.name)
        if key in self._producers:
            raise ValueError(f"producer {spec.name} already registered for stage {spec.stage_id}")
        self._producers[key] = spec
        logger.debug(f"registered producer {spec.stage_id}/{spec.name} v{spec.version} prio={spec.priority}")
        return spec

    def unregister(self, stage_id: str, name: str) -> None:
        self._producers.pop((stage_id, name), None)

    def __len__(self) -> int:
        return len(self._producers)

    def stages(self) -> List[str]:
        return sorted({s for s, _ in self._producers})

    def for_stage(self, stage_id: str) -> List[ProducerSpec]:
        ps = [p for (s, _), p in self._producers.items() if s == stage_id]
        return sorted(ps, key=lambda p: (-p.priority, p.name))

    def ordered(self) -> List[Tuple[str, List[ProducerSpec]]]:
        return [(s, self.for_stage(s)) for s in self.stages()]
