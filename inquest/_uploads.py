"""
Upload file handling for inquest requests.

Provides:
- UploadFile: Descriptor of an uploaded file living on disk
- FormData: Parsed form fields and uploaded files, nested by array path
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from ._datastructures import PathKey, flatten, lookup_path, nest_pairs
from .faults import FilesystemFault


# ============================================================================
# UploadFile
# ============================================================================

@dataclass
class UploadFile:
    """
    Uploaded file descriptor.
    
    ``filename`` and ``content_type`` are what the client reported and are
    never trusted for storage decisions. The bytes live in ``tmp_path``
    until the file is moved, after which they live in ``destination``.
    """
    
    filename: str
    content_type: str = "application/octet-stream"
    tmp_path: Optional[Path] = None
    destination: Optional[Path] = None
    size: Optional[int] = None
    
    @property
    def is_moved(self) -> bool:
        """Whether the file was moved out of temporary storage."""
        return self.destination is not None
    
    @property
    def path(self) -> Optional[Path]:
        """Current storage location of the file content."""
        return self.destination if self.is_moved else self.tmp_path
    
    def read(self) -> bytes:
        """
        Read file content from its current location.
        
        Returns:
            File content, or ``b""`` when the file has no location
        """
        path = self.path
        if not path:
            return b""
        with open(path, "rb") as f:
            return f.read()
    
    def move_to(self, dest: Union[str, Path], overwrite: bool = False) -> Path:
        """
        Move uploaded file out of temporary storage.
        
        Args:
            dest: Destination path
            overwrite: Whether to overwrite existing file
        
        Returns:
            Destination path
        
        Raises:
            FileExistsError: If file exists and overwrite=False
            FilesystemFault: If the move itself fails
        """
        dest = Path(dest)
        
        if self.is_moved:
            raise FilesystemFault("move", str(dest), "file was already moved")
        if self.tmp_path is None:
            raise FilesystemFault("move", str(dest), "upload has no temporary file")
        if dest.exists() and not overwrite:
            raise FileExistsError(f"File already exists: {dest}")
        
        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            shutil.move(str(self.tmp_path), str(dest))
        except OSError as e:
            raise FilesystemFault("move", str(dest), str(e))
        
        self.destination = dest
        return dest
    
    def close(self) -> None:
        """Remove the temporary file if it was never moved."""
        if not self.is_moved and self.tmp_path and self.tmp_path.exists():
            try:
                os.unlink(self.tmp_path)
            except OSError:
                pass


def create_upload_file_from_path(
    filename: str,
    file_path: Path,
    content_type: str = "application/octet-stream",
) -> UploadFile:
    """
    Create an UploadFile for a file already written to temporary storage.
    
    Args:
        filename: Client-reported filename
        file_path: Path to the temporary file
        content_type: Client-reported MIME type
    """
    size = file_path.stat().st_size if file_path.exists() else None
    
    return UploadFile(
        filename=filename,
        content_type=content_type,
        tmp_path=file_path,
        size=size,
    )


# ============================================================================
# FormData
# ============================================================================

@dataclass
class FormData:
    """
    Parsed form data containing both fields and files.
    
    Both mappings are nested by array path, so ``user[name]=ann`` is
    stored as ``{"user": {"name": "ann"}}``.
    """
    
    fields: Dict[PathKey, Any] = field(default_factory=dict)
    files: Dict[PathKey, Any] = field(default_factory=dict)
    
    @classmethod
    def from_pairs(
        cls,
        fields: Iterable[Tuple[str, str]] = (),
        files: Iterable[Tuple[str, UploadFile]] = (),
    ) -> "FormData":
        """Build form data from flat ``(field-name, value)`` pairs."""
        return cls(fields=nest_pairs(fields), files=nest_pairs(files))
    
    def get_field(self, name: str, default: Optional[Any] = None) -> Optional[Any]:
        """Get field value (or nested mapping) by array path."""
        return lookup_path(self.fields, name, default)
    
    def get_file(self, name: str) -> Optional[UploadFile]:
        """Get an uploaded file by array path."""
        value = lookup_path(self.files, name)
        return value if isinstance(value, UploadFile) else None
    
    def flat_fields(self) -> List[Tuple[str, str]]:
        """All fields as flattened ``(path, value)`` pairs in insertion order."""
        return flatten(self.fields)
    
    def flat_files(self) -> List[Tuple[str, UploadFile]]:
        """All uploads as flattened ``(path, file)`` pairs in insertion order."""
        return flatten(self.files)
    
    def cleanup(self) -> None:
        """Remove temporary files of uploads that were not moved."""
        for _, upload_file in self.flat_files():
            upload_file.close()
