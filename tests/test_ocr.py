import asyncio

import pytest
from docling_core.types.doc import BoundingBox, CoordOrigin

from chapter_reader.pipeline import BBox, DoclingOcrEngine


def test_docling_bbox_coercion_variants():
    engine = DoclingOcrEngine.__new__(DoclingOcrEngine)

    bbox_tuple = (0, 0, 10, 20)
    assert engine._coerce_bbox(bbox_tuple) == BBox(0, 0, 10, 20)

    bbox_like = type("BBoxLike", (), {"left": 1, "top": 2, "width": 3, "height": 4})()
    assert engine._coerce_bbox(bbox_like) == BBox(1, 2, 3, 4)

    assert engine._coerce_bbox(None) is None
    assert engine._coerce_bbox(object()) is None


def test_docling_bbox_bottom_left_is_flipped():
    engine = DoclingOcrEngine.__new__(DoclingOcrEngine)
    bbox = BoundingBox(l=10, t=90, r=40, b=70, coord_origin=CoordOrigin.BOTTOMLEFT)

    converted = engine._coerce_bbox(bbox, page_height=100)

    assert converted == BBox(10, 10, 30, 20)


def test_detect_text_requires_input():
    engine = DoclingOcrEngine.__new__(DoclingOcrEngine)
    with pytest.raises(ValueError):
        asyncio.run(engine.detect_text())
