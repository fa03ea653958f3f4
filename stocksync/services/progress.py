from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Progress display with tqdm (TTY only).

- One tqdm instance per phase; disabled outside a TTY so CI logs stay free
  of ANSI control sequences.
- StepProgress follows the pipeline step callback (index).
- BatchProgress follows remote batch callbacks (preview fetch / sync update).
"""

__all__ = [
    "is_tty_enabled",
    "StepProgress",
    "BatchProgress",
]


def is_tty_enabled() -> bool:
    """True when stdout is a TTY and progress bars should be drawn."""
    return sys.stdout.isatty()


class _Bar:
    unit = "it"

    def __init__(self, description: str) -> None:
        self.description = description
        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None = None

    def _ensure(self, total: int) -> TqdmType[Any] | None:
        if not self.enabled:
            return None
        if self.pbar is None:
            self.pbar = tqdm(
                total=total,
                desc=self.description,
                unit=self.unit,
                leave=True,
                ncols=80,
                ascii=True,
            )
        return self.pbar

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> Any:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


class StepProgress(_Bar):
    """Pipeline progress; usable directly as the ``on_step`` callback.

    ``labels`` come from ``step_labels(workflow)``; index 1 is labels[0].
    """
    unit = "step"

    def __init__(self, labels: list[str], description: str = "Processing") -> None:
        super().__init__(description)
        self.labels = labels
        self.last_label: str | None = None

    def __call__(self, index: int) -> None:
        if 1 <= index <= len(self.labels):
            self.last_label = self.labels[index - 1]
        pbar = self._ensure(len(self.labels))
        if pbar is not None:
            pbar.set_description(f"{self.description} ({self.last_label})")
            pbar.n = index
            pbar.refresh()


class BatchProgress(_Bar):
    """Remote batch progress; usable as a reconcile or executor callback."""
    unit = "batch"

    def __init__(self, description: str) -> None:
        super().__init__(description)
        self.batches_done = 0

    def __call__(self, number: int, total: int, *stats: int) -> None:
        self.batches_done = number
        pbar = self._ensure(total)
        if pbar is not None:
            pbar.n = number
            if stats:
                pbar.set_postfix(stats=",".join(str(s) for s in stats))
            pbar.refresh()
