import geopandas as gpd
import pytest
from shapely.geometry import LineString, Point, box

from areaeffect.classify.border import classify_by_border
from areaeffect.classify.orchestrator import classify
from areaeffect.errors import InvalidArgumentError
from areaeffect.results.sample import sample


def _result():
    # 6 core points, 3 halo points at scale 1 (buffer distance ~4.9).
    core = [Point(x, y) for x in (2, 5, 8) for y in (3, 7)]
    halo = [Point(11, 5), Point(12, 5), Point(13, 5)]
    points = gpd.GeoDataFrame(geometry=core + halo)
    return classify(points, box(0, 0, 10, 10), scale=1.0)


def test_balanced_downsampling_by_default() -> None:
    out = sample(_result(), seed=1)

    classes = out.table["aoe_class"].value_counts()
    assert classes["core"] == 3 and classes["halo"] == 3
    info = out.sample_info.iloc[0]
    assert info["n_core_available"] == 6 and info["n_halo_available"] == 3
    assert info["n_core_sampled"] == 3 and info["n_halo_sampled"] == 3


def test_explicit_n_and_ratio() -> None:
    out = sample(_result(), n=4, ratio={"core": 0.75, "halo": 0.25}, seed=0)
    assert out.table["aoe_class"].tolist().count("core") == 3
    assert out.table["aoe_class"].tolist().count("halo") == 1


def test_without_replacement_caps_at_available() -> None:
    out = sample(_result(), n=10, seed=0)
    info = out.sample_info.iloc[0]
    assert info["n_core_sampled"] == 5
    assert info["n_halo_sampled"] == 3
    assert len(out) == 8


def test_with_replacement_can_repeat_rows() -> None:
    out = sample(_result(), n=10, replace=True, seed=0)
    assert (out.table["aoe_class"] == "halo").sum() == 5
    assert len(out) == 10


def test_seed_makes_sampling_reproducible() -> None:
    first = sample(_result(), n=4, seed=42).table["point_id"].tolist()
    second = sample(_result(), n=4, seed=42).table["point_id"].tolist()
    assert first == second


def test_sample_per_support() -> None:
    supports = gpd.GeoDataFrame({"id": ["A", "B"]}, geometry=[box(0, 0, 10, 10), box(50, 0, 60, 10)])
    points = gpd.GeoDataFrame(geometry=[Point(5, 5), Point(11, 5), Point(55, 5), Point(61, 5), Point(54, 5)])
    result = classify(points, supports, scale=1.0, support_id_col="id")

    out = sample(result, by="support", seed=3)
    info = out.sample_info.set_index("support_id")
    assert info.loc["A", "n_core_sampled"] == 1 and info.loc["A", "n_halo_sampled"] == 1
    assert info.loc["B", "n_core_available"] == 2
    assert info.loc["B", "n_core_sampled"] == 1


def test_border_sampling_by_side() -> None:
    points = gpd.GeoDataFrame(geometry=[Point(50, 5), Point(40, 5), Point(50, -5)])
    result = classify_by_border(points, LineString([(0, 0), (100, 0)]), width=10)

    out = sample(result, seed=0)
    assert sorted(out.table["side"]) == ["side_1", "side_2"]
    assert "n_side_1_available" in out.sample_info.columns

    by_class = sample(result, by="class", ratio={"core": 1.0, "halo": 0.0}, seed=0)
    assert set(by_class.table["aoe_class"]) == {"core"}


def test_sample_validation() -> None:
    result = _result()
    with pytest.raises(InvalidArgumentError, match="ratio"):
        sample(result, ratio={"core": 0.5})
    with pytest.raises(InvalidArgumentError, match="sum to 1"):
        sample(result, ratio={"core": 0.5, "halo": 0.6})
    with pytest.raises(InvalidArgumentError, match="positive integer"):
        sample(result, n=0)
    with pytest.raises(InvalidArgumentError, match="by"):
        sample(result, by="side")
