"""Conversation builder: a mutable prompt of ordered turns plus its options."""

from __future__ import annotations

import base64
import logging
import mimetypes
from pathlib import Path
from typing import TYPE_CHECKING, Any

from gemform.config import PromptOptions
from gemform.content import (
    InlineData,
    InlineDataPart,
    Role,
    TextPart,
    Turn,
    copy_turn,
)
from gemform.errors import CloneError

if TYPE_CHECKING:
    from gemform.content import Part

logger = logging.getLogger(__name__)


class Prompt:
    """An ordered conversation and the options it will be sent with.

    Appends coalesce: a part added with the same role as the last turn joins
    that turn, otherwise it opens a new one. Methods return ``self`` for
    chaining.

    Example:
        prompt = Prompt(PromptOptions(model="gemini-2.5-flash"))
        prompt.add_text("Describe this image.").add_file("cat.png")
    """

    def __init__(
        self,
        options: PromptOptions | None = None,
        contents: list[Turn] | None = None,
    ) -> None:
        self.options = options if options is not None else PromptOptions()
        self.contents: list[Turn] = contents if contents is not None else []

    def add_text(self, text: str, role: Role | str = Role.USER) -> Prompt:
        """Append a text part under *role* (user by default)."""
        if not isinstance(text, str):
            raise TypeError(f"text must be str, got {type(text).__name__}")
        return self._add_part(TextPart(text=text), Role(role))

    def add_inline_data(self, base64_data: str, mime_type: str) -> Prompt:
        """Append an already base64-encoded payload as a user part."""
        if not isinstance(mime_type, str) or not mime_type.strip():
            raise ValueError("mime_type must be a non-empty str")
        part = InlineDataPart(inline_data=InlineData(data=base64_data, mime_type=mime_type))
        return self._add_part(part, Role.USER)

    def add_bytes(self, data: bytes, mime_type: str) -> Prompt:
        """Base64-encode raw bytes and append them as inline data."""
        return self.add_inline_data(base64.b64encode(data).decode("ascii"), mime_type)

    def add_file(self, path: str | Path, *, mime_type: str | None = None) -> Prompt:
        """Read a local file and append it as inline data.

        Args:
            path: File to read.
            mime_type: MIME type override. Guessed from the extension when *None*.
        """
        p = Path(path)
        if not p.is_file():
            raise FileNotFoundError(f"File not found: {p}")
        mt = mime_type or mimetypes.guess_type(str(p))[0] or "application/octet-stream"
        return self.add_bytes(p.read_bytes(), mt)

    def append_turn(self, turn: Turn) -> Prompt:
        """Append a whole turn as-is, without coalescing."""
        self.contents.append(turn)
        return self

    def clone(self) -> Prompt:
        """Deep-copy the conversation; options are snapshotted.

        The transport and credential are shared by reference, every turn and
        part is copied.

        Raises:
            CloneError: If any turn or part cannot be copied.
        """
        try:
            contents = [copy_turn(turn) for turn in self.contents]
        except CloneError:
            raise
        except Exception as e:
            raise CloneError(
                f"Conversation could not be copied: {type(e).__name__}: {e}"
            ) from e
        return Prompt(self.options.snapshot(), contents)

    def to_wire(self) -> list[dict[str, Any]]:
        """Render ``contents`` as the request's ``contents`` array."""
        return [turn.to_wire() for turn in self.contents]

    def _add_part(self, part: Part, role: Role) -> Prompt:
        last = self.contents[-1] if self.contents else None
        if last is not None and last.role == role:
            last.parts.append(part)
        else:
            self.contents.append(Turn(role=role, parts=[part]))
        return self

    def __repr__(self) -> str:
        return f"Prompt(turns={len(self.contents)}, options={self.options})"
