from __future__ import annotations

import re
from dataclasses import dataclass

# ---------- Value Objects ----------


@dataclass(frozen=True)
class TextChunk:
    text: str
    index: int
    start: int
    end: int


@dataclass(frozen=True)
class ChunkingParams:
    target_chars: int = 1000
    overlap_chars: int = 200
    # how far back from the hard window end we may look for a whitespace break
    boundary_slack: int = 100

    def __post_init__(self) -> None:
        if self.target_chars <= 0:
            raise ValueError("target_chars must be > 0")
        if not (0 <= self.overlap_chars < self.target_chars):
            raise ValueError("overlap_chars must be in [0, target_chars)")
        if self.boundary_slack < 0:
            raise ValueError("boundary_slack must be >= 0")


_WS_RUN = re.compile(r"[ \t\f\v]+")
_BLANK_LINES = re.compile(r"\n\s*\n+")


def normalize_text(text: str) -> str:
    """Collapse runs of spaces and blank lines; keep single line breaks."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _WS_RUN.sub(" ", text)
    text = _BLANK_LINES.sub("\n\n", text)
    return text.strip()


def _find_break(text: str, start: int, hard_end: int, slack: int) -> int:
    """Latest whitespace position in (hard_end - slack, hard_end], else hard_end."""
    if hard_end >= len(text):
        return len(text)
    lower = max(start + 1, hard_end - slack)
    for pos in range(hard_end, lower - 1, -1):
        if text[pos].isspace():
            return pos
    return hard_end


def split_with_overlap(text: str, params: ChunkingParams | None = None) -> list[TextChunk]:
    """Sliding-window chunker.

    Windows are ``target_chars`` wide and advance by ``target_chars - overlap_chars``;
    a window end is pulled back to the nearest whitespace when one lies within
    ``boundary_slack`` characters, so words are rarely split. Consecutive chunks
    share roughly ``overlap_chars`` characters.
    """
    p = params or ChunkingParams()
    text = normalize_text(text)
    if not text:
        return []

    chunks: list[TextChunk] = []
    start = 0
    step = p.target_chars - p.overlap_chars
    while start < len(text):
        end = _find_break(text, start, start + p.target_chars, p.boundary_slack)
        piece = text[start:end].strip()
        if piece:
            chunks.append(TextChunk(text=piece, index=len(chunks), start=start, end=end))
        if end >= len(text):
            break
        # next window starts overlap_chars before this one's end, always moving forward
        start = max(start + 1, min(start + step, end - p.overlap_chars))
        if not text[start - 1].isspace():
            # mid-word: move to the next break inside this window, if there is one
            ws = next((i for i in range(start, end) if text[i].isspace()), None)
            if ws is not None:
                start = ws
        while start < len(text) and text[start].isspace():
            start += 1
    return chunks


_TITLE_PATTERNS = [
    re.compile(r"^#\s+(.+)$", re.MULTILINE),  # Markdown H1
    re.compile(r"^Title[:\s]+(.+)$", re.MULTILINE | re.IGNORECASE),
    re.compile(r"^(.+)\n={3,}\s*$", re.MULTILINE),  # setext heading
]


def extract_title(name: str, text: str) -> str:
    """Title from a heading in the text, else the file name without extension."""
    for pat in _TITLE_PATTERNS:
        m = pat.search(text)
        if m:
            return m.group(1).strip()
    return re.sub(r"\.[^/.]+$", "", name)


_SENT_END = re.compile(r"(?<=[.!?])\s+")


def leading_sentences(text: str, max_chars: int = 200) -> str:
    """Extractive summary: as many leading sentences as fit in ``max_chars``."""
    flat = " ".join(text.split())
    if not flat:
        return ""
    out = ""
    for sentence in _SENT_END.split(flat):
        candidate = f"{out} {sentence}".strip()
        if len(candidate) > max_chars:
            break
        out = candidate
    if not out:
        cut = flat[:max_chars]
        out = cut.rsplit(" ", 1)[0] if " " in cut else cut
    return out
