"""Command vocabulary, line framing and message classification for the controller link."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence, Tuple

from homeguard.errors import ConfigurationError
from homeguard.models.mode import Mode

COMMAND_TERMINATOR = "\n"
ENCODING = "utf-8"

# (on, off) pairs. Safe mode predates the CMD: prefix on the firmware.
COMMANDS: Mapping[Mode, Tuple[str, str]] = {
    Mode.AWAY: ("CMD:AWAY_ON", "CMD:AWAY_OFF"),
    Mode.SECURITY: ("CMD:SEC_ON", "CMD:SEC_OFF"),
    Mode.SAFE: ("1", "0"),
}


def command_for(mode: Mode, enabled: bool) -> str:
    on, off = COMMANDS[Mode.parse(mode)]
    return on if enabled else off


def encode_command(text: str) -> bytes:
    """Encode a command with exactly one trailing newline."""
    return (text.rstrip("\r\n") + COMMAND_TERMINATOR).encode(ENCODING)


def transition_reason(mode: Mode, enabled: bool) -> str:
    return f"{Mode.parse(mode).label} mode {'armed' if enabled else 'disarmed'}"


class LineDecoder:
    """Incremental newline framing for inbound byte chunks.

    Several lines inside one chunk are split apart and a line spread over
    several chunks is joined. Lines are trimmed; blank lines are dropped.
    """

    def __init__(self, encoding: str = ENCODING) -> None:
        self.encoding = encoding
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def feed(self, chunk: bytes) -> List[str]:
        self._buffer.extend(chunk)
        lines: List[str] = []
        while True:
            index = self._buffer.find(b"\n")
            if index < 0:
                break
            raw = bytes(self._buffer[:index])
            del self._buffer[: index + 1]
            text = self._decode(raw)
            if text:
                lines.append(text)
        return lines

    def flush(self) -> List[str]:
        raw = bytes(self._buffer)
        self._buffer.clear()
        text = self._decode(raw)
        return [text] if text else []

    def _decode(self, raw: bytes) -> str:
        return raw.decode(self.encoding, errors="replace").strip()


@dataclass(frozen=True, slots=True)
class ClassificationRule:
    needle: str
    category: str

    def matches(self, text: str) -> bool:
        return self.needle in text


DEFAULT_RULES: Tuple[ClassificationRule, ...] = (
    ClassificationRule("Away", Mode.AWAY.value),
    ClassificationRule("Security", Mode.SECURITY.value),
)


@dataclass(frozen=True, slots=True)
class MessageClassifier:
    """Ordered substring rules; the first matching rule wins."""

    fallback: str
    rules: Tuple[ClassificationRule, ...] = DEFAULT_RULES

    def classify(self, text: str) -> str:
        for rule in self.rules:
            if rule.matches(text):
                return rule.category
        return self.fallback


@dataclass(frozen=True, slots=True)
class VariantProfile:
    """Behavioural differences between the bluetooth, tcp and http builds."""

    name: str
    modes: Tuple[Mode, ...]
    fallback_type: str
    confirm_toggles: bool
    persist_history: bool
    sync_on_start: bool

    def classifier(self) -> MessageClassifier:
        return MessageClassifier(fallback=self.fallback_type)

    def supports(self, mode: Mode) -> bool:
        return mode in self.modes


PROFILES: Dict[str, VariantProfile] = {
    "bluetooth": VariantProfile(
        name="bluetooth",
        modes=(Mode.AWAY, Mode.SECURITY, Mode.SAFE),
        fallback_type=Mode.SAFE.value,
        confirm_toggles=False,
        persist_history=False,
        sync_on_start=False,
    ),
    "tcp": VariantProfile(
        name="tcp",
        modes=(Mode.AWAY, Mode.SECURITY),
        fallback_type=Mode.SECURITY.value,
        confirm_toggles=False,
        persist_history=False,
        sync_on_start=False,
    ),
    "http": VariantProfile(
        name="http",
        modes=(Mode.AWAY, Mode.SECURITY),
        fallback_type=Mode.SECURITY.value,
        confirm_toggles=True,
        persist_history=True,
        sync_on_start=True,
    ),
}


def get_profile(name: str) -> VariantProfile:
    try:
        return PROFILES[name.strip().lower()]
    except KeyError:
        choices = ", ".join(sorted(PROFILES))
        raise ConfigurationError(f"unknown variant {name!r}; expected one of: {choices}") from None


def profile_names() -> Sequence[str]:
    return tuple(PROFILES)


__all__ = [
    "COMMANDS",
    "COMMAND_TERMINATOR",
    "ClassificationRule",
    "DEFAULT_RULES",
    "LineDecoder",
    "MessageClassifier",
    "PROFILES",
    "VariantProfile",
    "command_for",
    "encode_command",
    "get_profile",
    "profile_names",
    "transition_reason",
]
