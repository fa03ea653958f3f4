from __future__ import annotations

from dataclasses import dataclass

"""WorkflowStep configuration model.

Steps are owned by an external configuration source (YAML file or admin
tooling). The pipeline only reads them.
"""

__all__ = [
    "WorkflowStep",
]


@dataclass(frozen=True)
class WorkflowStep:
    """One toggleable transform step.

    ``order`` is informational; execution order is fixed by the pipeline.
    A step runs when it is enabled or mandatory.
    """
    key: str
    name: str
    order: int
    enabled: bool = True
    mandatory: bool = False
    description: str = ""

    @property
    def runs(self) -> bool:
        return self.enabled or self.mandatory
