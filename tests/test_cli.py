import json

import pandas as pd
import pytest

from vibequeue.cli import create_parser, main

from .helpers import SESSION, played, queued, uri

DATASET_ROWS = [
    ("X", 120.0, 0.80, 0.70, 0.60),
    ("Y", 122.0, 0.82, 0.68, 0.58),
    ("Z", 121.0, 0.81, 0.69, 0.59),
    ("C", 121.0, 0.81, 0.69, 0.70),
    ("D", 131.0, 0.91, 0.79, 0.69),
]


@pytest.fixture
def dataset_path(tmp_path):
    df = pd.DataFrame(
        [(uri(t), t, "Artist", *values) for t, *values in DATASET_ROWS],
        columns=["spotify_uri", "track_name", "artists", "tempo", "energy", "danceability", "valence"],
    )
    path = tmp_path / "songs.csv"
    df.to_csv(path, index=False)
    return str(path)


def write_snapshot(tmp_path, entries):
    path = tmp_path / "queue.json"
    path.write_text(json.dumps([e.to_dict() for e in entries]))
    return str(path)


def test_parser_defaults():
    args = create_parser().parse_args(["recommend", "queue.json", SESSION])
    assert args.num == 5
    assert args.format == "json"


def test_rerank_writes_snapshot(tmp_path, dataset_path, capsys):
    queue = write_snapshot(tmp_path, [queued("X", 0), queued("Y", 1), queued("Z", 2)])
    out = tmp_path / "out.json"

    code = main(["--dataset", dataset_path, "rerank", queue, SESSION, "-o", str(out)])

    assert code == 0
    result = json.loads(capsys.readouterr().out)
    assert result["status"] == "ranked"
    saved = sorted((e for e in json.loads(out.read_text())), key=lambda e: e["pos"])
    assert saved[0]["title"] == "Z"


def test_recommend_simple_format(tmp_path, dataset_path, capsys):
    queue = write_snapshot(tmp_path, [played("X", 10), played("Y", 5)])

    code = main(["--dataset", dataset_path, "recommend", queue, SESSION, "-n", "1", "--format", "simple"])

    assert code == 0
    out = capsys.readouterr().out
    assert " 1. Z" in out
    assert " 2. " not in out


def test_errors_exit_nonzero(tmp_path, capsys):
    code = main(["--dataset", str(tmp_path / "missing.csv"), "rerank", str(tmp_path / "nope.json"), SESSION])
    assert code == 1
    assert "❌ Error" in capsys.readouterr().err
