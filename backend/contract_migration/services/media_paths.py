import logging
import re
from urllib.parse import quote

logger = logging.getLogger(__name__)

LEGACY_PATH_PREFIXES = (
    r'D:\Soit-Med\legacy\SOIT\UploadFiles\Files',
    r'D:\Soit-Med\legacy\SOIT\UploadFiles\Images',
    r'D:\Soit-Med\legacy\SOIT\Ar\MNT\FileUploaders\Reports',
    r'C:\Soit-Med\legacy\SOIT\UploadFiles\Files',
    r'C:\Soit-Med\legacy\SOIT\UploadFiles\Images',
    r'C:\Soit-Med\legacy\SOIT\Ar\MNT\FileUploaders\Reports',
)


def _extract_file_name(path: str) -> str:
    text = str(path or '').strip()
    if '\\' not in text and '/' not in text:
        return text
    lowered = text.lower()
    for prefix in LEGACY_PATH_PREFIXES:
        if lowered.startswith(prefix.lower()):
            text = text[len(prefix):].lstrip('\\/')
            break
    parts = [p for p in re.split(r'[\\/]+', text) if p]
    return parts[-1].strip() if parts else ''


def transform_legacy_path(path: str | None, base_url: str = '') -> str:
    """
    Map a legacy Windows upload path to the media API URL.
    D:\\Soit-Med\\legacy\\SOIT\\UploadFiles\\Files\\a b.pdf -> /api/LegacyMedia/files/a%20b.pdf
    Returns '' when no file name can be extracted.
    """
    if not str(path or '').strip():
        return ''
    file_name = _extract_file_name(str(path))
    if not file_name:
        logger.warning('could not extract file name from legacy path %r', path)
        return ''
    encoded = quote(file_name, safe='')
    base = str(base_url or '').strip().rstrip('/')
    if base:
        return f'{base}/api/Media/files/{encoded}'
    return f'/api/LegacyMedia/files/{encoded}'
