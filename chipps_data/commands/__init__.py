"""Upload commands"""
from ._shared import ContentVersionUploader, UploadFailure, connect, upload_file
from .file_upload import upload_single_file
from .files_upload import BatchUploadResult, upload_files

__all__ = [
    'ContentVersionUploader',
    'UploadFailure',
    'connect',
    'upload_file',
    'upload_single_file',
    'BatchUploadResult',
    'upload_files',
]
