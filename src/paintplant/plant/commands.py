# plant/commands.py
"""
Line-oriented operator commands.

Two forms are accepted, keys case-insensitive, '#' starts a comment:

    COLOR_A_MEZCLAR = AzCeleste          COLOR AzCeleste
    ARRANQUE_DE_FABRICACION = ON         START_COMMAND ON
    V201_S = CLOSED                      VALVE V201_S CLOSED

Bad lines never raise; they become CommandError records.
"""
from __future__ import annotations

import logging
import unicodedata
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Literal, Optional, Tuple

from .controller import BatchController
from .errors import InvalidArgument

logger = logging.getLogger(__name__)

Action = Literal["RECIPE", "START", "VALVE"]

RECIPE_KEYS = ("COLOR_A_MEZCLAR", "COLOR", "RECIPE")
START_KEYS = ("ARRANQUE_DE_FABRICACION", "START_COMMAND", "START")


@dataclass
class Command:
    line_no: int
    action: Action
    target: str = ""
    value: str = ""


@dataclass
class CommandError:
    line_no: int
    text: str
    message: str

    def __str__(self) -> str:
        return f"line {self.line_no}: {self.message} ({self.text!r})"


@dataclass
class ParseResult:
    commands: List[Command] = field(default_factory=list)
    errors: List[CommandError] = field(default_factory=list)


@dataclass
class ApplyResult:
    applied: int = 0
    errors: List[CommandError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _norm_key(key: str) -> str:
    # ARRANQUE_DE_FABRICACIÓN -> ARRANQUE_DE_FABRICACION
    decomposed = unicodedata.normalize("NFKD", key.strip().upper())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def _norm_on_off(value: str) -> Optional[str]:
    v = value.strip().upper()
    return v if v in ("ON", "OFF") else None


def _norm_valve_status(value: str) -> Optional[str]:
    v = value.strip().upper()
    if v in ("OPEN", "OPENED"):
        return "OPEN"
    if v in ("CLOSED", "CLOSE"):
        return "CLOSED"
    return None


def _split(line: str) -> Tuple[str, List[str]]:
    if "=" in line:
        key, _, value = line.partition("=")
        return _norm_key(key), [value.strip()] if value.strip() else []
    parts = line.split()
    return _norm_key(parts[0]), parts[1:]


def parse_line(line_no: int, raw: str) -> Optional[Command]:
    """Parse one line. None for blank/comment lines, InvalidArgument for bad ones."""
    line = raw.split("#", 1)[0].strip()
    if not line:
        return None

    key, args = _split(line)

    if key in RECIPE_KEYS:
        if len(args) != 1:
            raise InvalidArgument(f"{key} expects one recipe name")
        return Command(line_no, "RECIPE", value=args[0])

    if key in START_KEYS:
        if len(args) != 1 or _norm_on_off(args[0]) is None:
            raise InvalidArgument(f"{key} expects ON or OFF")
        return Command(line_no, "START", value=_norm_on_off(args[0]) or "")

    if key == "VALVE":
        if len(args) != 2:
            raise InvalidArgument("VALVE expects a valve name and OPEN or CLOSED")
        name, status = args
    elif key.startswith("V") and len(args) == 1:
        # "<VALVE> = OPEN|CLOSED" or "<VALVE> OPEN|CLOSED"
        name, status = key, args[0]
    else:
        raise InvalidArgument(f"Unknown command: {key}")

    norm = _norm_valve_status(status)
    if norm is None:
        raise InvalidArgument(f"Valve {name} expects OPEN or CLOSED, got {status!r}")
    return Command(line_no, "VALVE", target=name.upper(), value=norm)


def parse_commands(text: str) -> ParseResult:
    result = ParseResult()
    for line_no, raw in enumerate(text.splitlines(), start=1):
        try:
            cmd = parse_line(line_no, raw)
        except InvalidArgument as e:
            result.errors.append(CommandError(line_no, raw.strip(), str(e)))
            continue
        if cmd is not None:
            result.commands.append(cmd)
    return result


def apply_command(controller: BatchController, cmd: Command) -> None:
    if cmd.action == "RECIPE":
        controller.select_recipe(cmd.value)
    elif cmd.action == "START":
        controller.set_start_command(cmd.value)  # type: ignore[arg-type]
    elif cmd.action == "VALVE":
        controller.set_valve(cmd.target, cmd.value)  # type: ignore[arg-type]
    else:
        raise InvalidArgument(f"Unknown command action: {cmd.action}")


def apply_commands(controller: BatchController, commands: Iterable[Command] | ParseResult) -> ApplyResult:
    """
    Apply commands in order. Parse errors carried in a ParseResult and
    rejected values (unknown recipe / valve) are reported, not raised.
    """
    result = ApplyResult()
    if isinstance(commands, ParseResult):
        result.errors.extend(commands.errors)
        for err in commands.errors:
            controller.record_event(f"Command rejected, {err}", logging.WARNING)
        commands = commands.commands

    for cmd in commands:
        try:
            apply_command(controller, cmd)
        except InvalidArgument as e:
            err = CommandError(cmd.line_no, f"{cmd.action} {cmd.target} {cmd.value}".replace("  ", " ").strip(), str(e))
            result.errors.append(err)
            controller.record_event(f"Command rejected, {err}", logging.WARNING)
            continue
        result.applied += 1
    return result


def load_command_file(controller: BatchController, path: str | Path) -> ApplyResult:
    text = Path(path).read_text(encoding="utf-8")
    logger.debug("applying command file %s", path)
    return apply_commands(controller, parse_commands(text))
