"""
Popular-songs dataset adapter.

Loads the song feature table (CSV) with pandas and serves two roles:

    - Feature Store: title -> AudioFeatureVector (first match wins)
    - Candidate Source: bounded sample of songs for recommendation

Expected columns: track_name, artists, tempo, energy, danceability, valence,
and either spotify_uri or track_id.
"""

import asyncio
from typing import Dict, List, Optional

import pandas as pd

from .candidates import CandidateSong
from .config import AUDIO_FEATURES, DATASET_PATH
from .features import AudioFeatureVector, clean_title
from .utils import normalize_track_uri

REQUIRED_COLUMNS = ["track_name"] + AUDIO_FEATURES


def get_dataset(file_path: str) -> pd.DataFrame:
    print(f"📥 Loading song dataset from {file_path}")
    return pd.read_csv(file_path)


def pre_process_data(df: pd.DataFrame) -> pd.DataFrame:
    """Drop unusable rows and add lookup/URI columns."""
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Dataset is missing columns: {', '.join(missing)}")
    if "spotify_uri" not in df.columns and "track_id" not in df.columns:
        raise ValueError("Dataset needs a spotify_uri or track_id column")

    df = df.dropna(subset=REQUIRED_COLUMNS).copy()

    if "spotify_uri" in df.columns:
        uris = df["spotify_uri"]
    else:
        uris = df["track_id"]
    df["spotify_uri"] = uris.astype(str).map(normalize_track_uri)
    df["clean_title"] = df["track_name"].astype(str).map(clean_title)
    if "artists" not in df.columns:
        df["artists"] = "Unknown"
    df["artists"] = df["artists"].fillna("Unknown").astype(str)

    df = df.drop_duplicates(subset=["spotify_uri"])
    return df.reset_index(drop=True)


class PopularSongsDataset:
    """
    In-memory song feature table.

    Lookups are exact on the cleaned title first, then the first row whose
    cleaned title contains the query.
    """

    def __init__(self, df: pd.DataFrame):
        self.df = pre_process_data(df)

        # First occurrence wins
        self._exact: Dict[str, int] = {}
        for idx, title in enumerate(self.df["clean_title"]):
            self._exact.setdefault(title, idx)

    @classmethod
    def from_csv(cls, file_path: str = DATASET_PATH) -> "PopularSongsDataset":
        return cls(get_dataset(file_path))

    def __len__(self) -> int:
        return len(self.df)

    def lookup(self, title: str) -> Optional[AudioFeatureVector]:
        query = clean_title(title)
        if not query:
            return None

        idx = self._exact.get(query)
        if idx is None:
            matches = self.df.index[
                self.df["clean_title"].str.contains(query, regex=False)
            ]
            if len(matches) == 0:
                print(f"⚠️ Song not found in dataset: {title}")
                return None
            idx = int(matches[0])

        return AudioFeatureVector.from_mapping(self.df.iloc[idx])

    # =========================================================================
    # FEATURE STORE / CANDIDATE SOURCE
    # =========================================================================

    async def get_features(self, title: str) -> Optional[AudioFeatureVector]:
        # The pandas scan blocks; run it off the loop so lookup timeouts apply
        return await asyncio.to_thread(self.lookup, title)

    async def sample_candidates(self, limit: int) -> List[CandidateSong]:
        rows = self.df.head(limit)
        return [
            CandidateSong(
                uri=row["spotify_uri"],
                title=str(row["track_name"]),
                artist=row["artists"],
                candidate_id=str(row.get("track_id", row["spotify_uri"])),
                raw_features={f: row[f] for f in AUDIO_FEATURES},
            )
            for _, row in rows.iterrows()
        ]
