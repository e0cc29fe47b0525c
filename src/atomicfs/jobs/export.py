"""Publish JSON and Parquet outputs atomically."""
import json
import logging
from pathlib import Path, PurePosixPath
from typing import Any, Mapping, Optional, Union

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from atomicfs.writer import open_atomic, write_file
from atomicfs.writeset import open_write_set

logger = logging.getLogger(__name__)

MANIFEST_NAME = "_manifest.json"


def export_json(
    obj: Any,
    output_path: Union[str, Path],
    perm: int = 0o644,
    indent: Optional[int] = 2,
) -> str:
    """
    Serialize obj to JSON and atomically replace output_path with it.

    Args:
        obj: JSON-serializable object
        output_path: Destination file; its parent directory must exist
        perm: Permission bits of the final file
        indent: JSON indent level (None for compact)

    Returns:
        String path to the written file
    """
    output_path = Path(output_path)
    payload = json.dumps(obj, indent=indent).encode("utf-8")

    logger.info(f"Writing JSON to {output_path}")
    write_file(output_path, payload, perm)

    logger.info(f"JSON written OK: {output_path}")
    return str(output_path)


def export_parquet(
    df: pd.DataFrame,
    output_path: Union[str, Path],
    perm: int = 0o644,
    compression: str = "snappy",
) -> str:
    """
    Write a DataFrame as Parquet, publishing it atomically.

    The Parquet bytes are streamed from pyarrow into the atomic writer, so
    readers of output_path never observe a file without its footer.

    Args:
        df: DataFrame to export (the index is dropped)
        output_path: Destination file; its parent directory must exist
        perm: Permission bits of the final file
        compression: Parquet compression codec

    Returns:
        String path to the Parquet file
    """
    output_path = Path(output_path)
    table = pa.Table.from_pandas(df, preserve_index=False)

    logger.info(f"Exporting {table.num_rows} rows -> {output_path}")
    try:
        with open_atomic(output_path, perm) as f:
            pq.write_table(table, f, compression=compression)
    except Exception as e:
        logger.error(f"Failed to export {output_path}: {e}")
        raise

    logger.info(f"Exported OK: {output_path}")
    return str(output_path)


def export_dataset(
    frames: Mapping[str, pd.DataFrame],
    target_dir: Union[str, Path],
    tmp_dir: Optional[Union[str, Path]] = None,
    compression: str = "snappy",
) -> str:
    """
    Publish several DataFrames as one Parquet dataset directory.

    Every frame becomes ``<name>.parquet`` and a ``_manifest.json`` lists row
    counts and columns. All files appear at target_dir together; on any
    failure nothing is published.

    Args:
        frames: Mapping of relative file stem (may contain "/") to DataFrame
        target_dir: Dataset directory to create; must not exist yet
        tmp_dir: Staging parent (default: the parent of target_dir, so the
            final rename stays on one volume)
        compression: Parquet compression codec

    Returns:
        String path to the dataset directory
    """
    target_dir = Path(target_dir)
    if tmp_dir is None:
        tmp_dir = target_dir.parent

    manifest = {"files": {}, "total_rows": 0}

    with open_write_set(tmp_dir) as ws:
        logger.info(f"Staging {len(frames)} frames in {ws.location}")

        for name, df in frames.items():
            relative = PurePosixPath(f"{name}.parquet")
            if relative.parent != PurePosixPath("."):
                ws.makedirs(str(relative.parent))

            table = pa.Table.from_pandas(df, preserve_index=False)
            with ws.open_file(str(relative)) as f:
                pq.write_table(table, f, compression=compression)

            manifest["files"][str(relative)] = {
                "rows": table.num_rows,
                "columns": table.column_names,
            }
            manifest["total_rows"] += table.num_rows

        ws.write_file(MANIFEST_NAME, json.dumps(manifest, indent=2).encode("utf-8"))
        ws.commit(target_dir)

    logger.info(f"Dataset published OK: {target_dir} ({manifest['total_rows']} rows)")
    return str(target_dir)
