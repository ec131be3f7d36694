"""
Owls sibling-negotiation dataset.

Roulin, A. & Bersier, L.-F. (2007). Nestling barn owls beg more
intensely in the presence of their mother than in the presence of their
father. Animal Behaviour, 74, 1099-1106. Re-analysed in Zuur et al.
(2009), Mixed Effects Models and Extensions in Ecology with R, ch. 13.

One row per parent visit to a nest: 599 visits to 27 nests.

The table is not shipped with the package. load_owls() reads a
user-supplied CSV, or the copy published by Rdatasets (the glmmTMB
package's Owls data), cached after the first download.
"""

from __future__ import annotations

import os
from pathlib import Path

import numpy as np
import pandas as pd

from countglmm.core.datasource import DataSource
from countglmm.core.exceptions import DataUnavailable, ValidationError


OWLS_URL = "https://vincentarelbundock.github.io/Rdatasets/csv/glmmTMB/Owls.csv"
OWLS_FILENAME = "owls.csv"

# Environment variable overriding the cache directory
DATA_DIR_ENV = "COUNTGLMM_DATA_DIR"

REQUIRED_COLUMNS = (
    'Nest', 'FoodTreatment', 'SexParent', 'ArrivalTime',
    'SiblingNegotiation', 'BroodSize',
)

CATEGORICAL_COLUMNS = ('Nest', 'FoodTreatment', 'SexParent')

# R row-name columns as written by write.csv / Rdatasets
_ROWNAME_COLUMNS = ('rownames', 'Unnamed: 0', '')


def default_cache_dir() -> Path:
    """$COUNTGLMM_DATA_DIR when set, else ~/.cache/countglmm."""
    env = os.environ.get(DATA_DIR_ENV)
    if env:
        return Path(env).expanduser()
    return Path.home() / '.cache' / 'countglmm'


def load_owls(
    path: str | Path | None = None,
    *,
    url: str = OWLS_URL,
    cache_dir: str | Path | None = None,
    download: bool = True,
    verbose: bool = False,
) -> DataSource:
    """Load and validate the Owls table.

    Args:
        path: CSV file to read. When None, the cached copy is used and
            downloaded from url first if it is not there yet.
        url: Where to fetch the table from when it is not cached.
        cache_dir: Cache directory; defaults to default_cache_dir().
        download: If False, never touch the network.
        verbose: Print where the table is read from.

    Returns:
        DataSource over the validated table.

    Raises:
        DataUnavailable: File missing, download failed, CSV unreadable, or
            the table violates the observation-table invariants.
    """
    if path is not None:
        csv_path = Path(path)
        if not csv_path.is_file():
            raise DataUnavailable(
                f"Owls data file not found: {csv_path}",
                source=str(csv_path),
                reason='missing',
            )
    else:
        cache = Path(cache_dir) if cache_dir is not None else default_cache_dir()
        csv_path = cache / OWLS_FILENAME
        if not csv_path.is_file():
            if not download:
                raise DataUnavailable(
                    f"Owls data not cached at {csv_path} and download=False. "
                    f"Pass path= or allow the download from {url}",
                    source=str(csv_path),
                    reason='missing',
                )
            _download(url, csv_path, verbose=verbose)

    if verbose:
        print(f"Reading Owls data from {csv_path}")

    try:
        raw = DataSource.from_file(csv_path).frame()
    except (OSError, ValueError, ValidationError) as e:
        raise DataUnavailable(
            f"Could not read Owls data from {csv_path}: {e}",
            source=str(csv_path),
            reason='unreadable',
        ) from e

    frame = validate_owls(raw, source=str(csv_path))
    return DataSource.from_dataframe(frame, source_path=str(csv_path))


def from_frame(frame: pd.DataFrame) -> DataSource:
    """Validate an in-memory copy of the Owls table."""
    return DataSource.from_dataframe(validate_owls(frame))


def validate_owls(frame: pd.DataFrame, source: str | None = None) -> pd.DataFrame:
    """Check the observation-table invariants and normalise column types.

    Returns a copy with categorical Nest / FoodTreatment / SexParent,
    integer SiblingNegotiation and BroodSize, and NegPerChick and
    logBroodSize (re)computed.

    Raises:
        DataUnavailable: With reason='invalid' on any violation.
    """
    df = frame.copy()
    drop = [c for c in df.columns if str(c) in _ROWNAME_COLUMNS]
    if drop:
        df = df.drop(columns=drop)

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise DataUnavailable(
            f"Owls table is missing required columns {missing}; "
            f"found {[str(c) for c in df.columns]}",
            source=source,
            reason='invalid',
        )

    na_counts = df[list(REQUIRED_COLUMNS)].isna().sum()
    if na_counts.any():
        bad = {str(k): int(v) for k, v in na_counts.items() if v > 0}
        raise DataUnavailable(
            f"Owls table has missing values: {bad}",
            source=source,
            reason='invalid',
        )

    try:
        counts = df['SiblingNegotiation'].to_numpy(dtype=np.float64)
        brood = df['BroodSize'].to_numpy(dtype=np.float64)
        arrival = df['ArrivalTime'].to_numpy(dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise DataUnavailable(
            f"Owls table has non-numeric values in a numeric column: {e}",
            source=source,
            reason='invalid',
        ) from e

    if not np.all(np.isfinite(arrival)):
        raise DataUnavailable(
            "ArrivalTime contains non-finite values",
            source=source,
            reason='invalid',
        )

    if np.any(counts < 0) or np.any(counts != np.round(counts)):
        bad_idx = np.where((counts < 0) | (counts != np.round(counts)))[0]
        raise DataUnavailable(
            f"SiblingNegotiation must be non-negative integers; "
            f"{len(bad_idx)} invalid values (first at row {bad_idx[0]})",
            source=source,
            reason='invalid',
        )

    if np.any(brood <= 0) or np.any(brood != np.round(brood)):
        bad_idx = np.where((brood <= 0) | (brood != np.round(brood)))[0]
        raise DataUnavailable(
            f"BroodSize must be positive integers (it enters the model as "
            f"log(BroodSize)); {len(bad_idx)} invalid values, e.g. "
            f"{brood[bad_idx[0]]} at row {bad_idx[0]}",
            source=source,
            reason='invalid',
        )

    for col in CATEGORICAL_COLUMNS:
        df[col] = df[col].astype(str).astype('category')

    n_nests = df['Nest'].nunique()
    if n_nests < 2:
        raise DataUnavailable(
            f"Owls table needs at least 2 nests, got {n_nests}",
            source=source,
            reason='invalid',
        )

    df['SiblingNegotiation'] = counts.astype(np.int64)
    df['BroodSize'] = brood.astype(np.int64)
    df['ArrivalTime'] = arrival
    df['NegPerChick'] = counts / brood
    df['logBroodSize'] = np.log(brood)
    return df.reset_index(drop=True)


def _download(url: str, destination: Path, verbose: bool = False) -> None:
    """Fetch the CSV once and write it to the cache."""
    if verbose:
        print(f"Downloading Owls data from {url}")
    try:
        frame = pd.read_csv(url)
    except (OSError, ValueError) as e:
        raise DataUnavailable(
            f"Could not download Owls data from {url}: {e}",
            source=url,
            reason='unreadable',
        ) from e

    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        frame.to_csv(destination, index=False)
    except OSError as e:
        raise DataUnavailable(
            f"Could not write Owls data cache {destination}: {e}",
            source=str(destination),
            reason='unreadable',
        ) from e
