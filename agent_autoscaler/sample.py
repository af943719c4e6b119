from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class MetricSample:
    agent_id: str
    agent_name: str
    performance: float
    memory_usage: float
    captured_at: datetime
    cpu_usage: float = 0.0
    error_count: int = 0
