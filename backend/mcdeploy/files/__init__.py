from .clipboard import Clipboard, ClipboardEntry
from .manager import FileItem, FileManager

__all__ = ["Clipboard", "ClipboardEntry", "FileItem", "FileManager"]
