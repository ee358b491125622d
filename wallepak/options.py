"""Options shared by all archive operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from wallepak.structures import DpcError

_CHOICES = ("Exit", "Skip this file", "Overwrite this file")


class OperationAborted(DpcError):
    """Raised when the user chooses to stop instead of overwriting."""


@dataclass
class Options:
    """Flags controlling extraction and creation.

    ``chooser`` reads the user's answer when an output would be overwritten.
    """

    is_force: bool = False
    is_unsafe: bool = False
    is_quiet: bool = False
    is_lz: bool = False
    is_optimization: bool = False
    is_recursive: bool = False
    chooser: Callable[[str], str] = field(default=input, repr=False, compare=False)

    def _read_choice(self) -> int:
        while True:
            answer = self.chooser("Choice [0]: ").strip()
            if not answer:
                return 0
            if answer.isdigit() and int(answer) < len(_CHOICES):
                return int(answer)
            lowered = answer.lower()
            for number, label in enumerate(_CHOICES):
                if label.lower() == lowered:
                    return number
            print(f"Invalid choice: {answer}")

    def check_output(self, output_path) -> bool:
        """Decide whether to write to ``output_path``.

        Returns True to go ahead and False to skip; raises OperationAborted
        when the user chooses to exit.
        """
        path = Path(output_path)
        if not path.exists() or self.is_force:
            return True
        print(
            "Output already exists. You can avoid this interaction by choosing "
            "a new output path or run the program with the -f flag to overwrite "
            "existing outputs and avoid this prompt for all files. "
            f"What would you like to do for {path}"
        )
        for number, label in enumerate(_CHOICES):
            print(f"  {number}) {label}")
        choice = self._read_choice()
        if choice == 0:
            raise OperationAborted("Aborting")
        return choice == 2