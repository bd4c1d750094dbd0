import numpy as np

from wplace_fill.analyzer import TemplateAnalyzer
from wplace_fill.collect import collect_pixels, group_by_chunk, order_pixels
from wplace_fill.errors import TransientNetworkError

from conftest import FakeCanvasClient, make_template, rgba

SQUARE = [[1] * 4 for _ in range(4)]


def _analysis(rows, coords=(0, 0, 0, 0), owned=()):
    return TemplateAnalyzer().analyze(make_template(rows, coords=coords), list(owned))


def test_empty_canvas_needs_every_pixel():
    analysis = _analysis(SQUARE)
    client = FakeCanvasClient()
    result = collect_pixels(analysis, client, set(), count=100)
    assert result.remaining == 16
    assert result.border == 12 and result.interior == 4
    assert result.batch_size == 16
    assert client.fetches == [(0, 0)]


def test_border_first_then_scan_order():
    analysis = _analysis(SQUARE)
    result = collect_pixels(analysis, FakeCanvasClient(), set(), count=100)
    pixels = [p for b in result.batches for p in b.pixels]
    interior = {(1, 1), (2, 1), (1, 2), (2, 2)}
    first_interior = next(i for i, (x, y, _c) in enumerate(pixels) if (x, y) in interior)
    assert first_interior == 12
    assert [(x, y) for x, y, _c in pixels[:4]] == [(0, 0), (1, 0), (2, 0), (3, 0)]
    assert [(x, y) for x, y, _c in pixels[12:]] == [(1, 1), (2, 1), (1, 2), (2, 2)]


def test_random_mode_keeps_priority():
    analysis = _analysis(SQUARE)
    rng = np.random.default_rng(11)
    for _ in range(5):
        result = collect_pixels(
            analysis, FakeCanvasClient(), set(), count=100, mode="random", rng=rng
        )
        pixels = [(x, y) for b in result.batches for x, y, _c in b.pixels]
        border_pos = [i for i, p in enumerate(pixels) if p not in {(1, 1), (2, 1), (1, 2), (2, 2)}]
        assert max(border_pos) == 11
        assert sorted(pixels) == sorted((x, y) for x in range(4) for y in range(4))


def test_quota_bound_and_remaining():
    analysis = _analysis([[1] * 10])
    result = collect_pixels(analysis, FakeCanvasClient(), set(), count=2)
    assert result.batch_size == 2
    assert result.remaining == 10
    assert collect_pixels(analysis, FakeCanvasClient(), set(), count=0).batches == []


def test_matching_and_submitted_pixels_are_skipped():
    analysis = _analysis([[1, 7, 5]])
    client = FakeCanvasClient()
    img = client.blank((0, 0))
    img[0, 0] = rgba(1)
    img[0, 2] = rgba(7)  # wrong colour under a white template pixel
    result = collect_pixels(analysis, client, {(0, 0, 1, 0)}, count=10)
    assert result.remaining == 1
    assert result.batches[0].pixels == ((2, 0, 5),)


def test_unowned_colours_never_collected():
    analysis = _analysis([[1, 40]], owned=[1])
    result = collect_pixels(analysis, FakeCanvasClient(), set(), count=10)
    assert result.remaining == 1
    assert result.batches[0].colors == [1]


def test_fetch_failure_treated_as_unplaced():
    analysis = _analysis([[1, 1]])
    client = FakeCanvasClient()
    client.chunks[(0, 0)] = TransientNetworkError("boom")
    errors = []
    result = collect_pixels(
        analysis, client, set(), count=10, on_fetch_error=lambda c, e: errors.append(c)
    )
    assert result.remaining == 2
    assert errors == [(0, 0)]
    assert analysis.chunk_state_cache[(0, 0)] is None


def test_wrong_chunk_size_treated_as_unplaced():
    analysis = _analysis([[1]])
    client = FakeCanvasClient()
    client.chunks[(0, 0)] = np.zeros((3, 3, 4), dtype=np.uint8)
    assert collect_pixels(analysis, client, set(), count=1).remaining == 1


def test_batches_grouped_per_chunk():
    analysis = _analysis([[1, 1, 1]], coords=(0, 0, 6, 0))
    result = collect_pixels(analysis, FakeCanvasClient(), set(), count=10)
    assert [b.chunk for b in result.batches] == [(0, 0), (1, 0)]
    assert result.batches[0].coords == [6, 0, 7, 0]
    assert result.batches[0].keys() == [(0, 0, 6, 0), (0, 0, 7, 0)]


def test_group_by_chunk_keeps_first_appearance_order():
    analysis = _analysis([[1, 1, 1]], coords=(0, 0, 7, 0))
    records = [r for recs in analysis.per_chunk_records.values() for r in recs]
    ordered = order_pixels(records, "scan", 8, np.random.default_rng(0))
    batches = group_by_chunk(list(reversed(ordered)), 2)
    assert [b.chunk for b in batches] == [(1, 0)]
    assert len(batches[0]) == 2
