"""
Loading of CyTOF experiments: a sample-metadata table plus one FCS file per
sample, assembled into a single cells x markers ``AnnData``.
"""

import logging
import os
import re
from typing import Mapping, Optional, Union

import fcsparser
import numpy as np
import pandas as pd
import scanpy as sc
from anndata import AnnData

from .errors import InvalidConfigurationError
from .models.config import DataConfig

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

# ==============================================================================
# Metadata
# ==============================================================================


def load_sample_metadata(
    path: PathLike, data_config: Optional[DataConfig] = None
) -> pd.DataFrame:
    """
    Read the sample-metadata table.

    Parameters
    ----------
    path : PathLike
        CSV, TSV or Excel file with one row per sample.
    data_config : Optional[DataConfig]
        Names of the file, patient, short-name and condition columns.

    Returns
    -------
    pd.DataFrame
        Metadata table.
    """
    data_config = data_config or DataConfig()
    _, extension = os.path.splitext(str(path))
    extension = extension.lower()
    if extension == ".csv":
        metadata = pd.read_csv(path, comment="#")
    elif extension in (".tsv", ".txt"):
        metadata = pd.read_csv(path, sep="\t", comment="#")
    elif extension in (".xlsx", ".xls"):
        metadata = pd.read_excel(path)
    else:
        raise ValueError(
            f"Unsupported file format: {extension}. Please use .csv, .tsv "
            "or .xlsx"
        )

    required = [
        data_config.file_column,
        data_config.patient_column,
        data_config.short_name_column,
        data_config.condition_column,
    ]
    missing = [col for col in required if col not in metadata.columns]
    if missing:
        raise InvalidConfigurationError(
            f"Metadata table {path} lacks columns {missing}"
        )
    if metadata.empty:
        raise InvalidConfigurationError(f"Metadata table {path} is empty")
    logger.info("Loaded metadata for %d samples from %s", len(metadata), path)
    return metadata


# ==============================================================================
# FCS files
# ==============================================================================


def read_fcs_matrix(path: PathLike, channel_naming: str = "$PnS") -> pd.DataFrame:
    """
    Read the event matrix of one FCS file.

    Parameters
    ----------
    path : PathLike
        FCS file.
    channel_naming : str, default="$PnS"
        Keyword used to name the channels, ``"$PnS"`` or ``"$PnN"``.

    Returns
    -------
    pd.DataFrame
        Events x channels intensities.
    """
    _, data = fcsparser.parse(
        str(path), reformat_meta=True, channel_naming=channel_naming
    )
    data = pd.DataFrame(data)
    logger.debug(
        "Read %d events x %d channels from %s", *data.shape, path
    )
    return data


# ------------------------------------------------------------------------------


def select_markers(frame: pd.DataFrame, pattern: str) -> pd.DataFrame:
    """Keep the channels whose name matches the regular expression
    ``pattern``."""
    regex = re.compile(pattern)
    columns = [col for col in frame.columns if regex.search(str(col))]
    if not columns:
        raise InvalidConfigurationError(
            f"No channel matches the marker pattern {pattern!r}"
        )
    return frame[columns]


# ==============================================================================
# Assembly
# ==============================================================================


def assemble_cells(
    frames: Mapping[str, pd.DataFrame],
    metadata: pd.DataFrame,
    data_config: Optional[DataConfig] = None,
) -> AnnData:
    """
    Stack per-sample marker tables into one ``AnnData``.

    Parameters
    ----------
    frames : Mapping[str, pd.DataFrame]
        Marker intensities keyed by the metadata file reference.
    metadata : pd.DataFrame
        Sample-metadata table.
    data_config : Optional[DataConfig]
        Metadata column names and the marker pattern.

    Returns
    -------
    AnnData
        Cells x markers, with ``obs`` columns ``sample``, ``patient`` and
        ``condition``. Markers are those present in every sample.
    """
    data_config = data_config or DataConfig()
    if len(metadata) == 0:
        raise InvalidConfigurationError("No samples to assemble")

    tables = []
    obs = []
    for row in metadata.to_dict(orient="records"):
        file_ref = str(row[data_config.file_column])
        if file_ref not in frames:
            raise InvalidConfigurationError(
                f"No marker table for sample file {file_ref!r}"
            )
        markers = select_markers(frames[file_ref], data_config.marker_pattern)
        tables.append(markers)
        obs.append(
            pd.DataFrame(
                {
                    "sample": str(row[data_config.short_name_column]),
                    "patient": str(row[data_config.patient_column]),
                    "condition": str(row[data_config.condition_column]),
                },
                index=range(len(markers)),
            )
        )

    shared = [
        col
        for col in tables[0].columns
        if all(col in table.columns for table in tables[1:])
    ]
    if not shared:
        raise InvalidConfigurationError("Samples share no marker channels")
    dropped = {
        col for table in tables for col in table.columns if col not in shared
    }
    if dropped:
        logger.warning(
            "Dropping markers missing from some samples: %s", sorted(dropped)
        )

    values = np.concatenate(
        [table[shared].to_numpy(dtype=np.float32) for table in tables]
    )
    obs = pd.concat(obs, ignore_index=True)
    obs.index = obs.index.astype(str)
    for col in obs.columns:
        obs[col] = obs[col].astype("category")

    adata = AnnData(
        X=values,
        obs=obs,
        var=pd.DataFrame(index=[str(col) for col in shared]),
    )
    logger.info(
        "Assembled %d cells x %d markers from %d samples",
        adata.n_obs,
        adata.n_vars,
        len(tables),
    )
    return adata


# ------------------------------------------------------------------------------


def load_cytof_experiment(
    metadata_path: PathLike,
    data_dir: Optional[PathLike] = None,
    data_config: Optional[DataConfig] = None,
) -> AnnData:
    """
    Read the metadata table and every FCS file it lists.

    Parameters
    ----------
    metadata_path : PathLike
        Sample-metadata table.
    data_dir : Optional[PathLike]
        Directory the file references are relative to. Defaults to the
        directory of the metadata table.
    data_config : Optional[DataConfig]
        Column names, marker pattern and channel naming.

    Returns
    -------
    AnnData
        Raw (untransformed) cells x markers table.
    """
    data_config = data_config or DataConfig()
    metadata = load_sample_metadata(metadata_path, data_config)
    if data_dir is None:
        data_dir = os.path.dirname(os.path.abspath(str(metadata_path)))

    frames = {}
    for file_ref in metadata[data_config.file_column].astype(str):
        path = os.path.join(str(data_dir), file_ref)
        if not os.path.exists(path):
            raise FileNotFoundError(f"FCS file not found: {path}")
        frames[file_ref] = read_fcs_matrix(
            path, channel_naming=data_config.channel_naming
        )
    return assemble_cells(frames, metadata, data_config)


# ------------------------------------------------------------------------------


def subsample_cells(
    adata: AnnData, n_cells: Optional[int] = None, seed: int = 42
) -> AnnData:
    """
    Random subset of ``n_cells`` cells without replacement. Returns a copy of
    every cell when ``n_cells`` is None or not smaller than the table.
    """
    if n_cells is not None and n_cells <= 0:
        raise InvalidConfigurationError(
            f"Number of cells must be positive, got {n_cells}"
        )
    if n_cells is None or n_cells >= adata.n_obs:
        return adata.copy()
    logger.info("Subsampling %d of %d cells", n_cells, adata.n_obs)
    return sc.pp.subsample(
        adata, n_obs=n_cells, random_state=seed, copy=True
    )
