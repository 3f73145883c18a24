"""Line-oriented console used for operator interaction."""

import sys
from typing import TextIO


class Console:
    """Prints progress lines and reads the operator's answers."""

    def __init__(self, stdin: TextIO | None = None, stdout: TextIO | None = None):
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout

    def print(self, line: str = "") -> None:
        self.stdout.write(f"{line}\n")
        self.stdout.flush()

    def prompt(self, message: str) -> str:
        """Print message and read one line; end of input reads as empty."""
        self.print(message)
        line = self.stdin.readline()
        return line.rstrip("\r\n")
