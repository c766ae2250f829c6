from __future__ import annotations

import asyncio
import logging
from io import BytesIO
from typing import List, Optional, Protocol

from docling.datamodel.base_models import DocumentStream, InputFormat
from docling.datamodel.pipeline_options import PdfPipelineOptions, RapidOcrOptions
from docling.document_converter import DocumentConverter, PdfFormatOption
from docling_core.types.doc import BoundingBox as DlBBox
from docling_core.types.doc.document import TextItem

from .models import BBox, OcrBlock

logger = logging.getLogger(__name__)


class OcrEngine(Protocol):
    async def detect_text(
        self,
        *,
        content: Optional[bytes] = None,
        uri: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> List[OcrBlock]:
        """Run full-document text detection on image bytes or a remote URI."""
        ...


class DoclingOcrEngine:
    """
    Docling-based OCR for single page images.

    Uses Docling's `DocumentConverter` with the image input format and RapidOCR,
    then maps each text item of the resulting document to an OcrBlock with a
    top-left origin bounding box. Conversion is blocking, so it runs in a worker
    thread to keep the event loop free.
    """

    def __init__(self, force_full_page_ocr: bool = True, lang: Optional[List[str]] = None):
        pipeline_options = PdfPipelineOptions()
        pipeline_options.do_ocr = True
        pipeline_options.do_table_structure = False
        ocr_options = RapidOcrOptions(force_full_page_ocr=force_full_page_ocr)
        if lang:
            ocr_options.lang = lang
        pipeline_options.ocr_options = ocr_options

        self.converter = DocumentConverter(
            allowed_formats=[InputFormat.IMAGE],
            format_options={
                InputFormat.IMAGE: PdfFormatOption(pipeline_options=pipeline_options),
            },
        )

    async def detect_text(
        self,
        *,
        content: Optional[bytes] = None,
        uri: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> List[OcrBlock]:
        if content is None and not uri:
            raise ValueError("Either image content or a URI is required")
        if content is not None:
            source = DocumentStream(name=filename or "image.png", stream=BytesIO(content))
        else:
            source = uri
        return await asyncio.to_thread(self._convert, source)

    def _convert(self, source) -> List[OcrBlock]:
        try:
            result = self.converter.convert(source)
            doc = result.document
        except Exception as exc:
            raise RuntimeError(f"OCR failed: {exc}") from exc
        return self._map_document(doc)

    def _map_document(self, doc) -> List[OcrBlock]:
        page_heights = {}
        for page_no, page in doc.pages.items():
            size = page.size
            page_heights[page_no] = getattr(size, "height", None) if size else None

        blocks: List[OcrBlock] = []
        for item, _level in doc.iterate_items():
            if not isinstance(item, TextItem):
                continue
            text = (item.text or "").strip()
            if not text:
                continue
            prov = item.prov[0] if item.prov else None
            bbox = None
            if prov is not None and prov.bbox is not None:
                coerced = self._coerce_bbox(prov.bbox, page_height=page_heights.get(prov.page_no))
                bbox = coerced.to_dict() if coerced else None
            blocks.append(OcrBlock(text=text, bbox=bbox))
        logger.debug("OCR produced %d block(s)", len(blocks))
        return blocks

    def _coerce_bbox(self, bbox_obj, page_height: float | None = None) -> Optional[BBox]:
        if bbox_obj is None:
            return None

        if isinstance(bbox_obj, DlBBox):
            bb = bbox_obj
            # convert to top-left if caller provides page height and origin is bottom-left
            if page_height is not None and bb.coord_origin.name == "BOTTOMLEFT":
                bb = bb.to_top_left_origin(page_height=page_height)
            return BBox(x=bb.l, y=bb.t, w=bb.width, h=bb.height)

        if isinstance(bbox_obj, (list, tuple)) and len(bbox_obj) == 4:
            x0, y0, x1, y1 = bbox_obj
            return BBox(x=x0, y=y0, w=x1 - x0, h=y1 - y0)
        if all(hasattr(bbox_obj, attr) for attr in ("left", "top", "width", "height")):
            return BBox(x=bbox_obj.left, y=bbox_obj.top, w=bbox_obj.width, h=bbox_obj.height)
        return None
