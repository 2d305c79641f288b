import math

import pytest
from shapely.geometry import Point, box

from areaeffect.errors import InvalidArgumentError
from areaeffect.expansion.solver import (
    EQUAL_AREA_SCALE,
    AreaTarget,
    ScaleTarget,
    buffer_distance_for_scale,
    expand,
    normalize_method,
)


def test_equal_area_default_doubles_the_area() -> None:
    square = box(0, 0, 10, 10)
    out = expand(square, ScaleTarget(EQUAL_AREA_SCALE))

    halo = out.aoe_final.area - square.area
    assert abs(halo / square.area - 1.0) < 0.01
    assert out.converged


def test_scale_one_gives_three_times_halo() -> None:
    square = box(0, 0, 10, 10)
    for method in ("buffer", "scale_affine"):
        out = expand(square, ScaleTarget(1.0), method)
        halo = out.aoe_final.area - square.area
        assert abs(halo / square.area - 3.0) < 0.03


def test_buffer_aoe_contains_original() -> None:
    shape = box(0, 0, 10, 2).union(box(0, 0, 2, 10))  # L-shape, concave
    out = expand(shape, ScaleTarget(0.3))

    assert out.aoe_final.buffer(1e-9).covers(shape)
    assert out.buffer_distance is not None and out.buffer_distance > 0


def test_scale_affine_uses_reference_point() -> None:
    square = box(0, 0, 10, 10)
    out = expand(square, ScaleTarget(1.0), "scale_affine", reference=Point(0, 0))

    assert out.aoe_raw.bounds == (0.0, 0.0, 20.0, 20.0)
    assert out.buffer_distance is None


def test_area_grows_with_scale() -> None:
    square = box(0, 0, 10, 10)
    areas = [expand(square, ScaleTarget(s)).aoe_final.area for s in (0.1, 0.5, 1.0, 2.0)]
    assert areas == sorted(areas)


def test_buffer_distance_matches_closed_form_for_a_disc() -> None:
    disc = Point(0, 0).buffer(10.0, quad_segs=64)
    out = buffer_distance_for_scale(disc, 1.0)
    # Disc of radius r scaled by 2 in linear size: d = r
    assert abs(out.value - 10.0) / 10.0 < 0.01


def test_area_mode_hits_masked_halo_target() -> None:
    support = box(40, 40, 60, 60)
    mask = box(0, 0, 55, 100)

    out = expand(support, AreaTarget(1.0), mask=mask)

    halo = out.aoe_final.difference(support).area
    assert abs(halo - support.area) / support.area < 0.01
    assert out.aoe_final.area <= out.aoe_raw.area + 1e-9
    assert out.scale_search is not None


def test_targets_reject_non_positive_values() -> None:
    with pytest.raises(InvalidArgumentError, match="`scale` must be a single positive number"):
        ScaleTarget(0)
    with pytest.raises(InvalidArgumentError, match="`scale`"):
        ScaleTarget(True)
    with pytest.raises(InvalidArgumentError, match="`area` must be a single positive number"):
        AreaTarget(-1.0)
    with pytest.raises(InvalidArgumentError, match="`area`"):
        AreaTarget(math.inf)


def test_stamp_is_an_alias() -> None:
    assert normalize_method("stamp") == "scale_affine"
    with pytest.raises(InvalidArgumentError, match="method"):
        normalize_method("warp")
