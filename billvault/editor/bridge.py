"""
EditorBridge — the seam between the persistence core and a spreadsheet editor.

The core only ever asks the editor for its current serialized content and
bill type, and tells it to load serialized content. Serialized content is
percent-encoded text, encoded the way JavaScript's ``encodeURIComponent``
does it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
from urllib.parse import quote, unquote

from billvault.documents.models import DEFAULT_BILL_TYPE

# Characters encodeURIComponent leaves alone besides [A-Za-z0-9_.-~]
_URI_COMPONENT_SAFE = "!*'()"


def encode_content(text: str) -> str:
    return quote(text, safe=_URI_COMPONENT_SAFE)


def decode_content(serialized: str) -> str:
    return unquote(serialized)


class EditorBridge(ABC):
    @abstractmethod
    def get_serialized_content(self) -> str:
        ...

    @abstractmethod
    def get_active_bill_type(self) -> Optional[int]:
        """Current bill type, or None if the editor has no opinion."""

    @abstractmethod
    def load_content(self, serialized: str) -> None:
        ...

    def activate_footer(self, bill_type: int) -> None:
        """Switch the editor to another bill type. Editors without footers ignore it."""


class BufferEditor(EditorBridge):
    """
    Headless editor holding the sheet as plain text.

    Used by the CLI (content comes from a file) and by tests.
    """

    def __init__(self, text: str = "", bill_type: Optional[int] = DEFAULT_BILL_TYPE):
        self.text = text
        self.bill_type = bill_type
        self.loads = 0

    def get_serialized_content(self) -> str:
        return encode_content(self.text)

    def get_active_bill_type(self) -> Optional[int]:
        return self.bill_type

    def load_content(self, serialized: str) -> None:
        self.text = decode_content(serialized)
        self.loads += 1

    def activate_footer(self, bill_type: int) -> None:
        self.bill_type = bill_type

    def set_text(self, text: str) -> None:
        self.text = text


class FileEditor(BufferEditor):
    """
    Editor whose sheet lives in a text file that another program edits.

    The file is the source of truth: it is re-read on every capture and
    loads never write to it.
    """

    def __init__(self, path: Path, bill_type: Optional[int] = DEFAULT_BILL_TYPE):
        self.path = Path(path)
        super().__init__(text="", bill_type=bill_type)

    def get_serialized_content(self) -> str:
        self.text = self.path.read_text(encoding="utf-8") if self.path.exists() else ""
        return super().get_serialized_content()
