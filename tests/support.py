from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from pimesh_installer.console import Console
from pimesh_installer.system import CommandFailed, CommandResult, CommandRunner


@dataclass
class Call:
    argv: list[str]
    elevate: bool
    input_text: str | None
    env: Mapping[str, str] | None


class FakeRunner(CommandRunner):
    """Records commands instead of running them.

    ``tee`` and ``mkdir -p`` are applied for real when the target lies under
    ``root`` so file reconciliation can be checked end to end.
    """

    def __init__(
        self,
        root: Path | None = None,
        responses: Mapping[tuple[str, ...], CommandResult] | None = None,
        commands: Iterable[str] = (),
    ) -> None:
        super().__init__()
        self.root = Path(root) if root is not None else None
        self.responses = dict(responses or {})
        self.available = set(commands)
        self.calls: list[Call] = []

    def _local(self, path: Path) -> bool:
        return self.root is not None and (path == self.root or self.root in path.parents)

    def run(
        self,
        command: Sequence[str],
        *,
        elevate: bool = False,
        input_text: str | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        stream: bool = False,
    ) -> CommandResult:
        argv = list(command)
        self.calls.append(Call(argv=argv, elevate=elevate, input_text=input_text, env=env))
        if argv[0] == "tee":
            path = Path(argv[-1])
            if self._local(path):
                with path.open("a" if "-a" in argv else "w", encoding="utf-8", errors="surrogateescape") as handle:
                    handle.write(input_text or "")
            result = CommandResult(returncode=0, stdout=input_text or "")
        elif argv[:2] == ["mkdir", "-p"]:
            for entry in argv[2:]:
                if self._local(Path(entry)):
                    Path(entry).mkdir(parents=True, exist_ok=True)
            result = CommandResult(returncode=0, stdout="")
        else:
            result = self.responses.get(tuple(argv), CommandResult(returncode=0, stdout=""))
        if check and result.returncode != 0:
            raise CommandFailed(argv, result.returncode, result.stdout)
        return result

    def has_command(self, name: str) -> bool:
        return name in self.available

    def commands(self) -> list[list[str]]:
        return [call.argv for call in self.calls]

    def find(self, argv: Sequence[str]) -> list[Call]:
        return [call for call in self.calls if call.argv == list(argv)]

    def writes_to(self, path: Path) -> list[Call]:
        return [call for call in self.calls if call.argv[0] == "tee" and call.argv[-1] == str(path)]


class RecordingConsole(Console):
    def __init__(self, debug: bool = False) -> None:
        logger = logging.getLogger("pimesh_installer.tests")
        logger.propagate = False
        if not logger.handlers:
            logger.addHandler(logging.NullHandler())
        super().__init__(debug=debug, logger=logger)
        self.lines: list[tuple[str, str]] = []

    def _emit(self, style: str, text: str) -> None:
        self.lines.append((style, text))

    def texts(self, style: str | None = None) -> list[str]:
        return [text for line_style, text in self.lines if style is None or line_style == style]

    def contains(self, fragment: str, style: str | None = None) -> bool:
        return any(fragment in text for text in self.texts(style))


class ScriptedPrompt:
    def __init__(self, answers: Iterable[str]) -> None:
        self.answers = list(answers)
        self.messages: list[str] = []

    def __call__(self, message: str) -> str:
        self.messages.append(message)
        if not self.answers:
            raise EOFError("no scripted answer left")
        return self.answers.pop(0)
