import gzip
import logging
from typing import Optional

from haplomc.exceptions import InvariantViolation


class TraceLog:
    """
    Tab-delimited trace of accepted proposals, chain states and exchange counts.

    With no path the trace is disabled and ``write_line`` does nothing. Paths
    ending in ``.gz`` are written gzip-compressed.
    """
    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._handle = None
        if path:
            try:
                if path.endswith(".gz"):
                    self._handle = gzip.open(path, "wt")
                else:
                    self._handle = open(path, "w")
            except OSError as e:
                raise InvariantViolation(f"could not open log file {path} for writing: {e}") from e
            logging.info(f"Logging to:\t{path}")

    @property
    def enabled(self) -> bool:
        return self._handle is not None

    def write_line(self, text: str):
        if self._handle is None:
            return
        self._handle.write(text if text.endswith("\n") else text + "\n")
        self._handle.flush()

    def write_chain(self, iteration: int, chain, mutated: bool):
        """One line per accepted chain update."""
        if self._handle is None:
            return
        self.write_line(
            f"{iteration}\t{chain.individual}\t{chain.likelihood}\t"
            f"{chain.chain_id}\t{chain.temperature}\t{int(mutated)}"
        )

    def close(self):
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
