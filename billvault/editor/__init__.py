"""BillVault Editor — the bridge to the spreadsheet editor."""

from billvault.editor.bridge import (  # noqa: F401
    BufferEditor,
    EditorBridge,
    FileEditor,
    decode_content,
    encode_content,
)

__all__ = ["EditorBridge", "BufferEditor", "FileEditor", "encode_content", "decode_content"]
