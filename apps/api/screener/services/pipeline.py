from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from screener.services.candidates import StageResult


@dataclass
class PipelineOutcome:
    """Stages in execution order plus the terminal survivors."""
    stages: List[StageResult] = field(default_factory=list)
    final: List[Any] = field(default_factory=list)
    message: Optional[str] = None

    def stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {s.stage: len(s.passed) for s in self.stages}
        stats["skipped"] = {s.stage: s.skip_counts() for s in self.stages if s.skipped}
        return stats
