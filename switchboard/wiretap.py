"""
Wiretap — a structured record of every message crossing the engine.

One JSONL line per message, separate from the debug log:

    {"ts": "...", "dir": "inbound|outbound", "role": "...",
     "model": "...", "conv": "...", "len": 123, "tokens": 31, "content": "..."}

Inbound is what the caller sent (user messages). Outbound is what the engine
produced (assistant replies, tool results, policy rejections).
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

CONTENT_KEEP_CHARS = 2000
CONTENT_EDGE_CHARS = 1000


def _clip(content: str) -> str:
    """Keep short content whole; keep head and tail of long content."""
    if len(content) <= CONTENT_KEEP_CHARS:
        return content
    dropped = len(content) - 2 * CONTENT_EDGE_CHARS
    return (
        content[:CONTENT_EDGE_CHARS]
        + f"\n\n[... {dropped} chars truncated ...]\n\n"
        + content[-CONTENT_EDGE_CHARS:]
    )


class WireLog:
    """Line-buffered JSONL writer. The file is opened on first write."""

    def __init__(self, log_path: str | Path):
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._file = None

    def _ensure_open(self):
        if self._file is None:
            self._file = open(self.log_path, "a", buffering=1, encoding="utf-8")

    def log(
        self,
        direction: str,
        role: str,
        content: str,
        model: str = "",
        conversation_id: str = "",
        token_count: int = 0,
        tool_name: str = "",
    ):
        self._ensure_open()
        entry = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "dir": direction,
            "role": role,
            "model": model,
            "conv": conversation_id[:16] if conversation_id else "",
            "len": len(content),
            "tokens": token_count,
        }
        if tool_name:
            entry["tool"] = tool_name
        entry["content"] = _clip(content)

        self._file.write(json.dumps(entry, ensure_ascii=False) + "\n")

    def close(self):
        if self._file:
            self._file.close()
            self._file = None


def read_wire(log_path: str | Path, last_n: int = 20, role: str | None = None) -> list[dict]:
    """Return the last `last_n` entries (optionally one role only). Bad lines are skipped."""
    path = Path(log_path)
    if not path.exists():
        return []
    entries = []
    with open(path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue
            if role and entry.get("role") != role:
                continue
            entries.append(entry)
    return entries[-last_n:] if last_n > 0 else entries


def format_entry(entry: dict, raw: bool = False) -> str:
    """Format a single wire entry for the terminal."""
    if raw:
        return json.dumps(entry, ensure_ascii=False)

    ts = entry.get("ts", "")
    try:
        time_str = datetime.fromisoformat(ts).strftime("%H:%M:%S")
    except (ValueError, TypeError):
        time_str = ts[:8] if ts else "??:??:??"

    arrow = "──▶" if entry.get("dir") == "inbound" else "◀──"
    header = f"  {time_str} {arrow} {entry.get('role', '?').upper()}"
    if entry.get("model"):
        header += f"  [{entry['model']}]"
    if entry.get("tool"):
        header += f"  ⚡{entry['tool']}"
    header += f"  ({entry.get('len', 0)} chars)"
    if entry.get("conv"):
        header += f"  conv:{entry['conv']}"

    lines = [header]
    content = str(entry.get("content", ""))
    if len(content) > 500:
        content = content[:500] + "..."
    for cline in content.split("\n")[:10]:
        lines.append(f"      {cline}")
    return "\n".join(lines)
