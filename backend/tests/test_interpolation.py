"""Tests for route interpolation: cumulative distances, point/bearing lookup and geometry cache."""
import pytest

from shuttle.geometry.interpolation import (
    cached_geometry_count,
    close_loop,
    cumulative_distances,
    get_route_interpolator,
)

# North 0.01 deg, then east 0.01 deg, near the equator
L_SHAPE = [(0.0, 0.0), (0.0, 0.01), (0.01, 0.01)]


def test_cumulative_distances_start_at_zero_and_increase():
    cumul = cumulative_distances(L_SHAPE)
    assert cumul[0] == 0.0
    assert len(cumul) == len(L_SHAPE)
    assert cumul[1] > 0
    assert cumul[2] > cumul[1]
    # Both legs are ~1.11 km
    assert 1100 < cumul[1] < 1125


def test_fewer_than_two_points_returns_none():
    """Lines with fewer than two points cannot be interpolated."""
    assert get_route_interpolator(None) is None
    assert get_route_interpolator([]) is None
    assert get_route_interpolator([(0.0, 0.0)]) is None


def test_point_at_endpoints():
    interp = get_route_interpolator(L_SHAPE)
    assert interp.point_at(0) == L_SHAPE[0]
    mid = interp.cumulative_distances[1]
    lon, lat = interp.point_at(mid)
    assert lon == pytest.approx(0.0)
    assert lat == pytest.approx(0.01)


def test_point_at_midway_along_segment():
    interp = get_route_interpolator(L_SHAPE)
    half = interp.cumulative_distances[1] / 2
    lon, lat = interp.point_at(half)
    assert lon == pytest.approx(0.0)
    assert lat == pytest.approx(0.005)


def test_closed_route_wraps():
    """Distances past the end wrap around a closed route."""
    interp = get_route_interpolator(L_SHAPE)
    total = interp.total_length_m
    # Full lap lands back on the first vertex
    assert interp.point_at(total) == L_SHAPE[0]
    for d in (100.0, 1500.0, 2000.0):
        a = interp.point_at(d)
        b = interp.point_at(d + total)
        assert a[0] == pytest.approx(b[0], abs=1e-9)
        assert a[1] == pytest.approx(b[1], abs=1e-9)


def test_closed_route_negative_distance():
    interp = get_route_interpolator(L_SHAPE)
    total = interp.total_length_m
    a = interp.point_at(-100.0)
    b = interp.point_at(total - 100.0)
    assert a[0] == pytest.approx(b[0], abs=1e-9)
    assert a[1] == pytest.approx(b[1], abs=1e-9)


def test_open_route_clamps():
    """Open routes clamp to their endpoints instead of wrapping."""
    interp = get_route_interpolator(L_SHAPE, closed=False)
    assert interp.point_at(-50.0) == L_SHAPE[0]
    assert interp.point_at(interp.total_length_m + 50.0) == L_SHAPE[-1]


def test_bearing_follows_segments():
    interp = get_route_interpolator(L_SHAPE)
    first_leg = interp.cumulative_distances[1]
    assert interp.bearing_at(10.0) == pytest.approx(0.0, abs=0.5)
    assert interp.bearing_at(first_leg + 10.0) == pytest.approx(90.0, abs=0.5)
    # At the start of the loop, the bearing of the first segment
    assert interp.bearing_at(0.0) == pytest.approx(0.0, abs=0.5)


def test_nearest_vertex_distance():
    interp = get_route_interpolator(L_SHAPE)
    assert interp.nearest_vertex_distance(0.0001, 0.0) == 0.0
    assert interp.nearest_vertex_distance(0.0, 0.0099) == interp.cumulative_distances[1]
    assert interp.nearest_vertex_distance(0.02, 0.01) == interp.cumulative_distances[2]


def test_cache_reuses_distances_for_same_geometry():
    """Identical geometry reuses cached cumulative distances."""
    a = get_route_interpolator(L_SHAPE)
    b = get_route_interpolator([tuple(c) for c in L_SHAPE])
    assert cached_geometry_count() == 1
    assert a.cumulative_distances is b.cumulative_distances


def test_cache_distinguishes_geometries():
    get_route_interpolator(L_SHAPE)
    get_route_interpolator(L_SHAPE + [(0.02, 0.02)])
    assert cached_geometry_count() == 2


def test_zero_length_route_stays_at_start():
    interp = get_route_interpolator([(1.0, 1.0), (1.0, 1.0)])
    assert interp.total_length_m == 0.0
    assert interp.point_at(123.0) == (1.0, 1.0)


def test_close_loop_appends_first_vertex_once():
    """An open line gains its first vertex at the end; a closed one is left alone."""
    closed = close_loop(L_SHAPE)
    assert closed == L_SHAPE + [L_SHAPE[0]]
    assert close_loop(closed) == closed
    assert close_loop([(0.0, 0.0)]) == [(0.0, 0.0)]
