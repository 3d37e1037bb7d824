import re
from typing import List, Optional

from .models import LyricLine, LyricsDocument

# [mm:ss], [mm:ss.xx] or [mm:ss.xxx]
LINE_PATTERN = re.compile(r"^\[(\d{1,3}):(\d{2})(?:\.(\d{1,3}))?\](.*)$")
TAG_PATTERN = re.compile(r"^\[(ti|ar|al|by|offset):(.*)\]$", re.IGNORECASE)


def parse_lrc(
    text: str,
    item_id: str,
    source: str,
    title: Optional[str] = None,
    artist: Optional[str] = None,
    album: Optional[str] = None,
    confidence: Optional[float] = None,
) -> LyricsDocument:
    """
    Parse LRC text. ti/ar/al tags override the given title/artist/album.
    Lines with an empty text part are dropped.
    """
    lines: List[LyricLine] = []
    tags = {}

    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue

        tag = TAG_PATTERN.match(line)
        if tag:
            tags[tag.group(1).lower()] = tag.group(2).strip()
            continue

        parsed = parse_line(line)
        if parsed:
            lines.append(parsed)

    return LyricsDocument(
        item_id=item_id,
        lines=lines,
        source=source,
        title=tags.get("ti") or title,
        artist=tags.get("ar") or artist,
        album=tags.get("al") or album,
        confidence=confidence,
    )


def parse_line(line: str) -> Optional[LyricLine]:
    match = LINE_PATTERN.match(line)
    if not match:
        return None

    minutes, seconds, fraction, text = match.groups()
    text = text.strip()
    if not text:
        return None

    # ".5" means 500ms, ".05" means 50ms
    millis = int(fraction.ljust(3, "0")) if fraction else 0
    return LyricLine(timestamp=int(minutes) * 60 + int(seconds) + millis / 1000.0, text=text)


def parse_plain_text(
    text: str,
    item_id: str,
    source: str,
    duration: float,
    title: Optional[str] = None,
    artist: Optional[str] = None,
    album: Optional[str] = None,
    confidence: Optional[float] = None,
) -> LyricsDocument:
    """Unsynced lyrics: spread the lines evenly over the song duration."""
    texts = [line.strip() for line in text.splitlines() if line.strip()]
    step = (duration / len(texts)) if texts and duration > 0 else 0.0
    lines = [LyricLine(timestamp=index * step, text=t) for index, t in enumerate(texts)]
    return LyricsDocument(
        item_id=item_id,
        lines=lines,
        source=source,
        title=title,
        artist=artist,
        album=album,
        confidence=confidence,
    )


def looks_synced(text: str) -> bool:
    return any(LINE_PATTERN.match(line.strip()) for line in text.splitlines())


def render_lrc(document: LyricsDocument) -> str:
    content = ""
    if document.title:
        content += f"[ti:{document.title}]\n"
    if document.artist:
        content += f"[ar:{document.artist}]\n"
    if document.album:
        content += f"[al:{document.album}]\n"
    content += "[by:tunefetch]\n\n"

    for line in document.lines:
        total_centis = int(round(line.timestamp * 100))
        minutes, rest = divmod(total_centis, 6000)
        seconds, centis = divmod(rest, 100)
        content += f"[{minutes:02d}:{seconds:02d}.{centis:02d}]{line.text}\n"
    return content
