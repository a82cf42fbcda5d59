from typing import Any


def load_ipython_extension(ipython: Any) -> None:
    from .track import TrackAllocationsMagics

    ipython.register_magics(TrackAllocationsMagics)


__all__ = ["load_ipython_extension"]
