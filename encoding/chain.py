from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional


@dataclass(frozen=True)
class Step:
    position: int
    output_file_suffix: str
    command: str
    name: str = ""

    @property
    def label(self) -> str:
        return self.name or self.output_file_suffix


@dataclass(frozen=True)
class TaskChain:
    """Ordered, immutable view of an encoder's tasks."""

    encoder_name: str
    steps: tuple = ()

    def __iter__(self) -> Iterator[Step]:
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)

    def first(self) -> Optional[Step]:
        return self.steps[0] if self.steps else None

    def next_after(self, step: Step) -> Optional[Step]:
        idx = self.steps.index(step)
        if idx + 1 < len(self.steps):
            return self.steps[idx + 1]
        return None

    @staticmethod
    def output_path_for(source, step: Step) -> Path:
        """<source dir>/<source stem><suffix>; every step is named off the source file."""
        source = Path(source)
        return source.parent / f"{source.stem}{step.output_file_suffix}"
