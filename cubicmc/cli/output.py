"""Human and machine renderings of the CLI tasks and tables.
"""

from .lang import get_raw as _raw

import shutil
import sys
import re

from typing import List, Optional, Tuple


class OutputTable:
    """Rows of cells, a row of none is a separator.
    """

    def __init__(self) -> None:
        self.rows: List[Optional[Tuple[str, ...]]] = []

    def add(self, *cells) -> None:
        self.rows.append(tuple(map(str, cells)))

    def separator(self) -> None:
        self.rows.append(None)

    def print(self) -> None:
        raise NotImplementedError


class Output:
    """Abstract output of the CLI. A task is a single status line that can be updated
    until it is finished.
    """

    def table(self) -> OutputTable:
        raise NotImplementedError

    def task(self, state: Optional[str], key: Optional[str], **kwargs) -> None:
        raise NotImplementedError

    def finish(self) -> None:
        raise NotImplementedError

    def print(self, text: str) -> None:
        """Raw print of the given text, no new line is added.
        """
        raise NotImplementedError


class HumanOutput(Output):

    state_colors = {
        "OK": "\033[92m",
        "FAILED": "\033[31m",
        "WARN": "\033[33m",
        "INFO": "\033[34m",
        "HALT": "\033[33m",
    }

    def __init__(self, color: bool) -> None:
        self.color = color
        self.last_len: Optional[int] = None

    def term_width(self) -> int:
        return shutil.get_terminal_size().columns

    def table(self) -> OutputTable:
        return HumanTable(self)

    def task(self, state: Optional[str], key: Optional[str], **kwargs) -> None:

        width = self.term_width()

        if state is None:
            header = " " * 9
        elif self.color and state in self.state_colors:
            header = f"[{self.state_colors[state]}{state:^6s}\033[0m] "
        else:
            header = f"[{state:^6s}] "

        msg = "" if key is None else _raw(key, kwargs)
        if len(msg) + 9 > width:
            msg = f"{msg[:max(0, width - 12)]}..."

        # Blank the rest of a longer previous message of the same task.
        padding = 0 if self.last_len is None else max(0, self.last_len - len(msg))
        sys.stdout.write(f"\r{header}{msg}{' ' * padding}")
        sys.stdout.flush()

        self.last_len = len(msg)

    def finish(self) -> None:
        if self.last_len is not None:
            sys.stdout.write("\n")
            self.last_len = None

    def print(self, text: str) -> None:
        sys.stdout.write(text)


class HumanTable(OutputTable):
    """Boxed table, cells too wide for the terminal are cut.
    """

    def __init__(self, out: HumanOutput) -> None:
        super().__init__()
        self.out = out

    def print(self) -> None:

        rows = [row for row in self.rows if row is not None]
        if not rows:
            return

        widths = [0] * max(map(len, rows))
        for row in rows:
            for i, cell in enumerate(row):
                widths[i] = max(widths[i], len(cell))

        # Cut the widest column until the table fits.
        max_width = self.out.term_width() - 1
        while sum(widths) + 3 * len(widths) + 1 > max_width and max(widths) > 4:
            widths[widths.index(max(widths))] -= 1

        lines = ["─" * width for width in widths]
        sys.stdout.write("┌─{}─┐\n".format("─┬─".join(lines)))

        for row in self.rows:
            if row is None:
                sys.stdout.write("├─{}─┤\n".format("─┼─".join(lines)))
                continue
            cells = [row[i] if i < len(row) else "" for i in range(len(widths))]
            sys.stdout.write("│ {} │\n".format(" │ ".join(
                f"{cell[:width]:{width}s}" for cell, width in zip(cells, widths))))

        sys.stdout.write("└─{}─┘\n".format("─┴─".join(lines)))
        sys.stdout.flush()


class MachineOutput(Output):
    """One line per call, of the form 'name:arg,arg,key=value', commas and new lines of
    arguments are escaped.
    """

    escape_re = re.compile(r"[\n\r,]")
    escapes = {"\n": "\\n", "\r": "\\r", ",": "\\,"}

    def line(self, name: str, *args: str, **kwargs) -> None:
        values = [*args, *(f"{k}={v}" for k, v in kwargs.items())]
        escaped = (self.escape_re.sub(lambda m: self.escapes[m.group()], value) for value in values)
        print(f"{name}:{','.join(escaped)}")

    def table(self) -> OutputTable:
        return MachineTable(self)

    def task(self, state: Optional[str], key: Optional[str], **kwargs) -> None:
        self.line("task", str(state), str(key), **kwargs)

    def finish(self) -> None:
        pass

    def print(self, text: str) -> None:
        self.line("print", text)


class MachineTable(OutputTable):

    def __init__(self, out: MachineOutput) -> None:
        super().__init__()
        self.out = out

    def print(self) -> None:
        self.out.line("table", str(len(self.rows)))
        for row in self.rows:
            if row is None:
                self.out.line("sep")
            else:
                self.out.line("row", *row)
