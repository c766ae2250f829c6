from __future__ import annotations

from copy import deepcopy
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    delete,
    func,
    select,
    update,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .models import (
    ChapterRecord,
    ExtractionRecord,
    ExtractionStatus,
    ImageRecord,
    ImageStatus,
    OcrBlock,
    PipelineStatus,
    WorkRecord,
)

Base = declarative_base()


class WorkModel(Base):
    __tablename__ = "works"
    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class ChapterModel(Base):
    __tablename__ = "chapters"
    id = Column(Integer, primary_key=True, autoincrement=True)
    work_id = Column(Integer, index=True, nullable=False)
    number = Column(String)
    source_url = Column(Text, nullable=False)
    pipeline_status = Column(Enum(PipelineStatus), nullable=False, default=PipelineStatus.IDLE)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class ImageModel(Base):
    __tablename__ = "images"
    __table_args__ = (UniqueConstraint("chapter_id", "position", name="uq_images_chapter_position"),)
    id = Column(Integer, primary_key=True, autoincrement=True)
    chapter_id = Column(Integer, index=True, nullable=False)
    position = Column(Integer, nullable=False)
    url = Column(Text)
    filename = Column(String)
    status = Column(Enum(ImageStatus), nullable=False, default=ImageStatus.PENDING)
    ocr_data = Column(JSON)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class ExtractionModel(Base):
    __tablename__ = "extractions"
    id = Column(Integer, primary_key=True, autoincrement=True)
    image_id = Column(Integer, index=True, nullable=False)
    bbox = Column(JSON)
    text = Column(Text)
    confidence = Column(Float)
    language = Column(String(16))
    status = Column(Enum(ExtractionStatus), nullable=False, default=ExtractionStatus.PENDING)
    translated_text = Column(Text)
    translated_lang = Column(String(16))
    translate_status = Column(Enum(ExtractionStatus), nullable=False, default=ExtractionStatus.PENDING)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class PipelineRepository:
    """
    Abstract persistence boundary for works, chapters, images and extractions.
    Implementations can target SQLite/Postgres or any other backing store. All
    methods are synchronous to keep the interface minimal.
    """

    # Work operations
    def create_work(self, title: str, slug: str) -> WorkRecord:
        raise NotImplementedError

    def get_work(self, work_id: int) -> Optional[WorkRecord]:
        raise NotImplementedError

    def get_work_by_slug(self, slug: str) -> Optional[WorkRecord]:
        raise NotImplementedError

    def list_works(self) -> List[WorkRecord]:
        raise NotImplementedError

    def delete_work(self, work_id: int) -> None:
        raise NotImplementedError

    # Chapter operations
    def create_chapter(self, work_id: int, source_url: str, number: Optional[str] = None) -> ChapterRecord:
        raise NotImplementedError

    def get_chapter(self, chapter_id: int) -> Optional[ChapterRecord]:
        raise NotImplementedError

    def list_chapters_for_work(self, work_id: int) -> List[ChapterRecord]:
        raise NotImplementedError

    def update_chapter_status(self, chapter_id: int, status: PipelineStatus) -> None:
        raise NotImplementedError

    def set_chapter_read(self, chapter_id: int, is_read: bool) -> None:
        raise NotImplementedError

    def delete_chapter(self, chapter_id: int) -> None:
        raise NotImplementedError

    # Image operations
    def create_images(self, chapter_id: int, urls: Iterable[str]) -> List[ImageRecord]:
        raise NotImplementedError

    def get_image(self, image_id: int) -> Optional[ImageRecord]:
        raise NotImplementedError

    def list_images_for_chapter(self, chapter_id: int, status: Optional[ImageStatus] = None) -> List[ImageRecord]:
        raise NotImplementedError

    def count_images(self, chapter_id: int, status: Optional[ImageStatus] = None) -> int:
        raise NotImplementedError

    def update_image(
        self,
        image_id: int,
        status: Optional[ImageStatus] = None,
        filename: Optional[str] = None,
        ocr_data: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        raise NotImplementedError

    def delete_image(self, image_id: int) -> None:
        raise NotImplementedError

    # Extraction operations
    def create_extractions(
        self,
        image_id: int,
        blocks: Iterable[OcrBlock],
        status: ExtractionStatus = ExtractionStatus.DONE,
    ) -> List[ExtractionRecord]:
        raise NotImplementedError

    def get_extractions(self, extraction_ids: Iterable[int]) -> List[ExtractionRecord]:
        """Return the requested rows in the order of `extraction_ids`, skipping unknown ids."""
        raise NotImplementedError

    def list_extractions_for_images(self, image_ids: Iterable[int]) -> List[ExtractionRecord]:
        raise NotImplementedError

    def update_extraction_translation(
        self,
        extraction_id: int,
        translated_text: Optional[str] = None,
        translated_lang: Optional[str] = None,
        translate_status: Optional[ExtractionStatus] = None,
    ) -> None:
        raise NotImplementedError


class InMemoryPipelineRepository(PipelineRepository):
    """
    Simple in-memory store for local runs and tests. It mirrors the DB shape
    and keeps copies of dataclasses to avoid cross-mutation between calls.
    """

    def __init__(self):
        self.works: Dict[int, WorkRecord] = {}
        self.chapters: Dict[int, ChapterRecord] = {}
        self.images: Dict[int, ImageRecord] = {}
        self.extractions: Dict[int, ExtractionRecord] = {}
        self._next_ids: Dict[str, int] = {}

    def _clone(self, obj):
        return deepcopy(obj)

    def _next_id(self, table: str) -> int:
        value = self._next_ids.get(table, 0) + 1
        self._next_ids[table] = value
        return value

    def create_work(self, title: str, slug: str) -> WorkRecord:
        if any(w.slug == slug for w in self.works.values()):
            raise ValueError(f"Work slug already exists: {slug}")
        work = WorkRecord(id=self._next_id("works"), title=title, slug=slug)
        self.works[work.id] = work
        return self._clone(work)

    def get_work(self, work_id: int) -> Optional[WorkRecord]:
        work = self.works.get(work_id)
        return self._clone(work) if work else None

    def get_work_by_slug(self, slug: str) -> Optional[WorkRecord]:
        for work in self.works.values():
            if work.slug == slug:
                return self._clone(work)
        return None

    def list_works(self) -> List[WorkRecord]:
        works = sorted(self.works.values(), key=lambda w: (w.created_at, w.id), reverse=True)
        return [self._clone(w) for w in works]

    def delete_work(self, work_id: int) -> None:
        for chapter_id in [c.id for c in self.chapters.values() if c.work_id == work_id]:
            self.delete_chapter(chapter_id)
        self.works.pop(work_id, None)

    def create_chapter(self, work_id: int, source_url: str, number: Optional[str] = None) -> ChapterRecord:
        chapter = ChapterRecord(id=self._next_id("chapters"), work_id=work_id, source_url=source_url, number=number)
        self.chapters[chapter.id] = chapter
        return self._clone(chapter)

    def get_chapter(self, chapter_id: int) -> Optional[ChapterRecord]:
        chapter = self.chapters.get(chapter_id)
        return self._clone(chapter) if chapter else None

    def list_chapters_for_work(self, work_id: int) -> List[ChapterRecord]:
        return [self._clone(c) for c in self.chapters.values() if c.work_id == work_id]

    def update_chapter_status(self, chapter_id: int, status: PipelineStatus) -> None:
        chapter = self.chapters.get(chapter_id)
        if not chapter:
            return
        chapter.pipeline_status = status
        chapter.updated_at = datetime.utcnow()

    def set_chapter_read(self, chapter_id: int, is_read: bool) -> None:
        chapter = self.chapters.get(chapter_id)
        if not chapter:
            return
        chapter.is_read = is_read
        chapter.updated_at = datetime.utcnow()

    def delete_chapter(self, chapter_id: int) -> None:
        for image_id in [i.id for i in self.images.values() if i.chapter_id == chapter_id]:
            self.delete_image(image_id)
        self.chapters.pop(chapter_id, None)

    def create_images(self, chapter_id: int, urls: Iterable[str]) -> List[ImageRecord]:
        created = []
        for position, url in enumerate(urls, start=1):
            image = ImageRecord(id=self._next_id("images"), chapter_id=chapter_id, position=position, url=url)
            self.images[image.id] = image
            created.append(self._clone(image))
        return created

    def get_image(self, image_id: int) -> Optional[ImageRecord]:
        image = self.images.get(image_id)
        return self._clone(image) if image else None

    def list_images_for_chapter(self, chapter_id: int, status: Optional[ImageStatus] = None) -> List[ImageRecord]:
        images = [
            i for i in self.images.values() if i.chapter_id == chapter_id and (status is None or i.status == status)
        ]
        images.sort(key=lambda i: (i.position, i.id))
        return [self._clone(i) for i in images]

    def count_images(self, chapter_id: int, status: Optional[ImageStatus] = None) -> int:
        return sum(
            1 for i in self.images.values() if i.chapter_id == chapter_id and (status is None or i.status == status)
        )

    def update_image(
        self,
        image_id: int,
        status: Optional[ImageStatus] = None,
        filename: Optional[str] = None,
        ocr_data: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        image = self.images.get(image_id)
        if not image:
            return
        if status is not None:
            image.status = status
        if filename is not None:
            image.filename = filename
        if ocr_data is not None:
            image.ocr_data = self._clone(ocr_data)
        image.updated_at = datetime.utcnow()

    def delete_image(self, image_id: int) -> None:
        for extraction_id in [e.id for e in self.extractions.values() if e.image_id == image_id]:
            self.extractions.pop(extraction_id, None)
        self.images.pop(image_id, None)

    def create_extractions(
        self,
        image_id: int,
        blocks: Iterable[OcrBlock],
        status: ExtractionStatus = ExtractionStatus.DONE,
    ) -> List[ExtractionRecord]:
        created = []
        for block in blocks:
            extraction = ExtractionRecord(
                id=self._next_id("extractions"),
                image_id=image_id,
                text=block.text,
                bbox=self._clone(block.bbox),
                confidence=block.confidence,
                language=block.language,
                status=status,
            )
            self.extractions[extraction.id] = extraction
            created.append(self._clone(extraction))
        return created

    def get_extractions(self, extraction_ids: Iterable[int]) -> List[ExtractionRecord]:
        return [self._clone(self.extractions[i]) for i in extraction_ids if i in self.extractions]

    def list_extractions_for_images(self, image_ids: Iterable[int]) -> List[ExtractionRecord]:
        wanted = set(image_ids)
        rows = [e for e in self.extractions.values() if e.image_id in wanted]
        rows.sort(key=lambda e: e.id)
        return [self._clone(e) for e in rows]

    def update_extraction_translation(
        self,
        extraction_id: int,
        translated_text: Optional[str] = None,
        translated_lang: Optional[str] = None,
        translate_status: Optional[ExtractionStatus] = None,
    ) -> None:
        extraction = self.extractions.get(extraction_id)
        if not extraction:
            return
        if translated_text is not None:
            extraction.translated_text = translated_text
        if translated_lang is not None:
            extraction.translated_lang = translated_lang
        if translate_status is not None:
            extraction.translate_status = translate_status
        extraction.updated_at = datetime.utcnow()


class SqlAlchemyPipelineRepository(PipelineRepository):
    """
    SQL-backed repository using SQLAlchemy. Works with SQLite/Postgres URLs.
    Cascading deletes are performed explicitly so SQLite without foreign key
    enforcement behaves the same as Postgres.
    """

    def __init__(self, database_url: str):
        self.engine = create_engine(database_url, future=True)
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)

    def _session(self) -> Session:
        return self.SessionLocal()

    # region converters
    @staticmethod
    def _to_work(model: WorkModel) -> WorkRecord:
        return WorkRecord(
            id=model.id,
            title=model.title,
            slug=model.slug,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    @staticmethod
    def _to_chapter(model: ChapterModel) -> ChapterRecord:
        return ChapterRecord(
            id=model.id,
            work_id=model.work_id,
            source_url=model.source_url,
            number=model.number,
            pipeline_status=model.pipeline_status or PipelineStatus.IDLE,
            is_read=bool(model.is_read),
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    @staticmethod
    def _to_image(model: ImageModel) -> ImageRecord:
        return ImageRecord(
            id=model.id,
            chapter_id=model.chapter_id,
            position=int(model.position or 0),
            url=model.url or "",
            filename=model.filename or "",
            status=model.status or ImageStatus.PENDING,
            ocr_data=model.ocr_data,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    @staticmethod
    def _to_extraction(model: ExtractionModel) -> ExtractionRecord:
        return ExtractionRecord(
            id=model.id,
            image_id=model.image_id,
            text=model.text or "",
            bbox=model.bbox,
            confidence=model.confidence,
            language=model.language,
            status=model.status or ExtractionStatus.PENDING,
            translated_text=model.translated_text,
            translated_lang=model.translated_lang,
            translate_status=model.translate_status or ExtractionStatus.PENDING,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    # endregion

    # region Work operations
    def create_work(self, title: str, slug: str) -> WorkRecord:
        now = datetime.utcnow()
        with self._session() as session:
            model = WorkModel(title=title, slug=slug, created_at=now, updated_at=now)
            session.add(model)
            session.commit()
            return self._to_work(model)

    def get_work(self, work_id: int) -> Optional[WorkRecord]:
        with self._session() as session:
            model = session.get(WorkModel, work_id)
            return self._to_work(model) if model else None

    def get_work_by_slug(self, slug: str) -> Optional[WorkRecord]:
        with self._session() as session:
            model = session.execute(select(WorkModel).where(WorkModel.slug == slug)).scalar_one_or_none()
            return self._to_work(model) if model else None

    def list_works(self) -> List[WorkRecord]:
        with self._session() as session:
            stmt = select(WorkModel).order_by(WorkModel.created_at.desc(), WorkModel.id.desc())
            return [self._to_work(m) for m in session.execute(stmt).scalars().all()]

    def delete_work(self, work_id: int) -> None:
        with self._session() as session:
            chapter_ids = session.execute(select(ChapterModel.id).where(ChapterModel.work_id == work_id)).scalars().all()
            self._delete_chapters(session, list(chapter_ids))
            session.execute(delete(WorkModel).where(WorkModel.id == work_id))
            session.commit()

    # endregion

    # region Chapter operations
    def create_chapter(self, work_id: int, source_url: str, number: Optional[str] = None) -> ChapterRecord:
        now = datetime.utcnow()
        with self._session() as session:
            model = ChapterModel(
                work_id=work_id,
                source_url=source_url,
                number=number,
                pipeline_status=PipelineStatus.IDLE,
                is_read=False,
                created_at=now,
                updated_at=now,
            )
            session.add(model)
            session.commit()
            return self._to_chapter(model)

    def get_chapter(self, chapter_id: int) -> Optional[ChapterRecord]:
        with self._session() as session:
            model = session.get(ChapterModel, chapter_id)
            return self._to_chapter(model) if model else None

    def list_chapters_for_work(self, work_id: int) -> List[ChapterRecord]:
        with self._session() as session:
            stmt = select(ChapterModel).where(ChapterModel.work_id == work_id).order_by(ChapterModel.id)
            return [self._to_chapter(m) for m in session.execute(stmt).scalars().all()]

    def update_chapter_status(self, chapter_id: int, status: PipelineStatus) -> None:
        with self._session() as session:
            stmt = (
                update(ChapterModel)
                .where(ChapterModel.id == chapter_id)
                .values(pipeline_status=status, updated_at=datetime.utcnow())
            )
            session.execute(stmt)
            session.commit()

    def set_chapter_read(self, chapter_id: int, is_read: bool) -> None:
        with self._session() as session:
            stmt = (
                update(ChapterModel)
                .where(ChapterModel.id == chapter_id)
                .values(is_read=is_read, updated_at=datetime.utcnow())
            )
            session.execute(stmt)
            session.commit()

    def delete_chapter(self, chapter_id: int) -> None:
        with self._session() as session:
            self._delete_chapters(session, [chapter_id])
            session.commit()

    def _delete_chapters(self, session: Session, chapter_ids: List[int]) -> None:
        if not chapter_ids:
            return
        image_ids = session.execute(select(ImageModel.id).where(ImageModel.chapter_id.in_(chapter_ids))).scalars().all()
        if image_ids:
            session.execute(delete(ExtractionModel).where(ExtractionModel.image_id.in_(list(image_ids))))
            session.execute(delete(ImageModel).where(ImageModel.id.in_(list(image_ids))))
        session.execute(delete(ChapterModel).where(ChapterModel.id.in_(chapter_ids)))

    # endregion

    # region Image operations
    def create_images(self, chapter_id: int, urls: Iterable[str]) -> List[ImageRecord]:
        now = datetime.utcnow()
        with self._session() as session:
            models = [
                ImageModel(
                    chapter_id=chapter_id,
                    position=position,
                    url=url,
                    filename="",
                    status=ImageStatus.PENDING,
                    created_at=now,
                    updated_at=now,
                )
                for position, url in enumerate(urls, start=1)
            ]
            session.add_all(models)
            session.commit()
            return [self._to_image(m) for m in models]

    def get_image(self, image_id: int) -> Optional[ImageRecord]:
        with self._session() as session:
            model = session.get(ImageModel, image_id)
            return self._to_image(model) if model else None

    def list_images_for_chapter(self, chapter_id: int, status: Optional[ImageStatus] = None) -> List[ImageRecord]:
        with self._session() as session:
            stmt = select(ImageModel).where(ImageModel.chapter_id == chapter_id)
            if status is not None:
                stmt = stmt.where(ImageModel.status == status)
            stmt = stmt.order_by(ImageModel.position, ImageModel.id)
            return [self._to_image(m) for m in session.execute(stmt).scalars().all()]

    def count_images(self, chapter_id: int, status: Optional[ImageStatus] = None) -> int:
        with self._session() as session:
            stmt = select(func.count(ImageModel.id)).where(ImageModel.chapter_id == chapter_id)
            if status is not None:
                stmt = stmt.where(ImageModel.status == status)
            return int(session.execute(stmt).scalar_one())

    def update_image(
        self,
        image_id: int,
        status: Optional[ImageStatus] = None,
        filename: Optional[str] = None,
        ocr_data: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        with self._session() as session:
            values: Dict[str, Any] = {}
            if status is not None:
                values["status"] = status
            if filename is not None:
                values["filename"] = filename
            if ocr_data is not None:
                values["ocr_data"] = ocr_data
            if values:
                values["updated_at"] = datetime.utcnow()
                session.execute(update(ImageModel).where(ImageModel.id == image_id).values(**values))
                session.commit()

    def delete_image(self, image_id: int) -> None:
        with self._session() as session:
            session.execute(delete(ExtractionModel).where(ExtractionModel.image_id == image_id))
            session.execute(delete(ImageModel).where(ImageModel.id == image_id))
            session.commit()

    # endregion

    # region Extraction operations
    def create_extractions(
        self,
        image_id: int,
        blocks: Iterable[OcrBlock],
        status: ExtractionStatus = ExtractionStatus.DONE,
    ) -> List[ExtractionRecord]:
        now = datetime.utcnow()
        with self._session() as session:
            models = [
                ExtractionModel(
                    image_id=image_id,
                    bbox=block.bbox,
                    text=block.text,
                    confidence=block.confidence,
                    language=block.language,
                    status=status,
                    translate_status=ExtractionStatus.PENDING,
                    created_at=now,
                    updated_at=now,
                )
                for block in blocks
            ]
            session.add_all(models)
            session.commit()
            return [self._to_extraction(m) for m in models]

    def get_extractions(self, extraction_ids: Iterable[int]) -> List[ExtractionRecord]:
        ids = list(extraction_ids)
        if not ids:
            return []
        with self._session() as session:
            stmt = select(ExtractionModel).where(ExtractionModel.id.in_(ids))
            by_id = {m.id: self._to_extraction(m) for m in session.execute(stmt).scalars().all()}
        return [by_id[i] for i in ids if i in by_id]

    def list_extractions_for_images(self, image_ids: Iterable[int]) -> List[ExtractionRecord]:
        ids = list(image_ids)
        if not ids:
            return []
        with self._session() as session:
            stmt = select(ExtractionModel).where(ExtractionModel.image_id.in_(ids)).order_by(ExtractionModel.id)
            return [self._to_extraction(m) for m in session.execute(stmt).scalars().all()]

    def update_extraction_translation(
        self,
        extraction_id: int,
        translated_text: Optional[str] = None,
        translated_lang: Optional[str] = None,
        translate_status: Optional[ExtractionStatus] = None,
    ) -> None:
        with self._session() as session:
            values: Dict[str, Any] = {}
            if translated_text is not None:
                values["translated_text"] = translated_text
            if translated_lang is not None:
                values["translated_lang"] = translated_lang
            if translate_status is not None:
                values["translate_status"] = translate_status
            if values:
                values["updated_at"] = datetime.utcnow()
                session.execute(update(ExtractionModel).where(ExtractionModel.id == extraction_id).values(**values))
                session.commit()

    # endregion
