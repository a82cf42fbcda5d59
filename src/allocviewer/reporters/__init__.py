from typing import Protocol


class BaseReporter(Protocol):
    def render(self, *, inline: bool = True) -> None:
        ...
