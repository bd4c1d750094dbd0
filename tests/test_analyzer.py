import pytest

from wplace_fill.analyzer import TemplateAnalyzer, border_pixels
from wplace_fill.core_types import Coords
from wplace_fill.errors import ConfigurationError
from wplace_fill.template import Template

from conftest import make_template


def test_owned_filter_black_only():
    template = make_template([[1, 7]])
    analysis = TemplateAnalyzer().analyze(template, [1])
    records = [r for recs in analysis.per_chunk_records.values() for r in recs]
    assert len(records) == 2
    eligible = [r for r in records if r.owned_color]
    assert len(eligible) == 1
    assert eligible[0].color_id == 1
    assert analysis.owned_total == 1
    assert analysis.pixel_total == 2


def test_records_use_logical_coordinates():
    template = make_template([[5, 5], [5, 5]], coords=(2, 1, 6, 7))
    analysis = TemplateAnalyzer().analyze(template, [])
    keys = sorted(r.key for recs in analysis.per_chunk_records.values() for r in recs)
    assert keys == [(2, 1, 6, 7), (2, 1, 7, 7), (2, 2, 6, 0), (2, 2, 7, 0)]
    assert (2 * 8 + 6, 2 * 8 + 0) in analysis.all_pixel_keys


def test_border_of_filled_square():
    keys = {(x, y) for x in range(3) for y in range(3)}
    border = border_pixels(keys)
    assert (1, 1) not in border
    assert border == keys - {(1, 1)}


def test_isolated_pixel_is_border():
    assert border_pixels([(10, 10)]) == {(10, 10)}
    assert border_pixels([]) == set()


def test_diagonal_neighbour_counts():
    keys = {(x, y) for x in range(3) for y in range(3)} - {(2, 2)}
    assert (1, 1) in border_pixels(keys)


def test_border_across_chunk_edge():
    # 3x3 block straddling the x chunk boundary; centre sits in the second chunk.
    template = make_template([[1, 1, 1]] * 3, coords=(0, 0, 7, 0))
    analysis = TemplateAnalyzer().analyze(template, [])
    interior = [
        r
        for recs in analysis.per_chunk_records.values()
        for r in recs
        if not analysis.is_border(r)
    ]
    assert [(r.chunk_x, r.logical_x, r.logical_y) for r in interior] == [(1, 0, 1)]


def test_cache_stability():
    template = make_template([[1, 7], [5, 5]])
    analyzer = TemplateAnalyzer()
    first = analyzer.analyze(template, [1, 5, 7])
    second = analyzer.analyze(template, [7, 5, 1])
    assert second is first
    assert analyzer.misses == 1
    assert analyzer.hits == 1

    third = analyzer.analyze(template, [1])
    assert third is not first
    assert analyzer.misses == 2

    analyzer.reset()
    assert analyzer.cached is None
    analyzer.analyze(template, [1])
    assert analyzer.misses == 3
    assert analyzer.hit_rate == pytest.approx(1 / 4)


def test_empty_template_is_configuration_error():
    with pytest.raises(ConfigurationError):
        TemplateAnalyzer().analyze(Template(coords=Coords(0, 0, 0, 0)), [1])
