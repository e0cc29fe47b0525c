"""Download remote files straight into an atomic writer."""
import logging
from pathlib import Path
from typing import Union

import requests

from atomicfs.writer import open_atomic

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1MB


def download_file(
    url: str,
    output_path: Union[str, Path],
    overwrite: bool = False,
    perm: int = 0o644,
    timeout: float = 300,
) -> str:
    """
    Download a file from URL and publish it atomically at output_path.

    The body is streamed into a temp sibling of output_path and only renamed
    into place once the whole response has been received and synced. On any
    HTTP, connection or stream error the destination is left as it was.

    Args:
        url: URL to download from
        output_path: Path where the file should be saved (directory will be created if needed)
        overwrite: If True, replace an existing file. If False, skip if file exists.
        perm: Permission bits of the downloaded file
        timeout: Request timeout in seconds

    Returns:
        String path to the downloaded file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if output_path.exists() and not overwrite:
        logger.info(f"File already exists: {output_path}")
        return str(output_path)

    logger.info(f"Downloading {url} -> {output_path}")

    with requests.get(url, stream=True, timeout=timeout) as r:
        r.raise_for_status()
        with open_atomic(output_path, perm) as f:
            # An empty body still publishes an empty file.
            f.write(b"")
            for chunk in r.iter_content(chunk_size=CHUNK_SIZE):
                if chunk:
                    f.write(chunk)

    logger.info(f"Downloaded OK: {output_path}")
    return str(output_path)
