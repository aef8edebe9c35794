"""
Item store backed by the item bank tables.

SqlItemStore implements the store contract the assembly engine consumes
(search / insert_many / record_usage). Every call opens and closes its own
session, so calls may run from worker threads concurrently.
"""

import logging
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from tqdm import tqdm

from assembly.errors import ItemStoreError
from assembly.schemas import parse_item
from database.database import get_session_factory
from database.models import BankItem, ItemUsage

log = logging.getLogger(__name__)

SEARCH_LIMIT = 200
_OPTIONAL_FIELDS = (
    "choices", "correct_answer", "explanation", "model_answer",
    "accepted_answers", "rubric_points", "embedding_vector",
    "concept", "operation", "answer_type",
)


def item_from_row(row: BankItem):
    data = {
        "id": row.id,
        "text": row.text,
        "item_type": row.item_type,
        "topic": row.topic,
        "cognitive_level": row.cognitive_level,
        "difficulty": row.difficulty,
        "quality_score": row.quality_score,
        "approved": row.approved,
        "created_by": row.created_by,
        "usage_history": [{"test_id": u.test_id, "used_at": u.used_at} for u in row.usages],
    }
    for name in _OPTIONAL_FIELDS:
        value = getattr(row, name)
        if value is not None:
            data[name] = value
    return parse_item(data)


def row_from_item(item) -> BankItem:
    row = BankItem(
        text=item.text,
        item_type=item.item_type,
        topic=item.topic,
        cognitive_level=item.cognitive_level.value,
        difficulty=item.difficulty.value,
        quality_score=item.quality_score,
        approved=item.approved,
        created_by=item.created_by,
        embedding_vector=item.embedding_vector,
        concept=item.concept,
        operation=item.operation,
        answer_type=item.answer_type,
    )
    if item.id:
        row.id = item.id
    for name in ("choices", "correct_answer", "explanation", "model_answer", "accepted_answers", "rubric_points"):
        if hasattr(item, name):
            setattr(row, name, getattr(item, name))
    return row


class SqlItemStore:
    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory or get_session_factory()

    def search(
        self,
        topic: str,
        level: str,
        difficulty: str,
        item_type: str,
        approved_only: bool = True,
        limit: int = SEARCH_LIMIT,
    ) -> list:
        """Matching, non-deleted items, least-used first."""
        try:
            with self.session_factory() as db:
                query = (
                    db.query(BankItem)
                    .filter(BankItem.topic == topic)
                    .filter(BankItem.cognitive_level == level)
                    .filter(BankItem.difficulty == difficulty)
                    .filter(BankItem.item_type == item_type)
                    .filter(BankItem.deleted.is_(False))
                )
                if approved_only:
                    query = query.filter(BankItem.approved.is_(True))
                rows = query.order_by(BankItem.usage_count.asc(), BankItem.created_at.asc()).limit(limit).all()

                items = []
                for row in rows:
                    try:
                        items.append(item_from_row(row))
                    except ValidationError as e:
                        log.warning(f"Skipping unreadable bank item {row.id}: {e.errors()[0].get('msg', '')}")
                return items
        except SQLAlchemyError as e:
            raise ItemStoreError(f"search failed for {topic}/{level}/{difficulty}/{item_type}: {e}") from e

    def insert_many(self, items: list) -> list:
        """Insert items; returns them with their stored ids."""
        if not items:
            return []
        rows = [row_from_item(item) for item in items]
        try:
            with self.session_factory() as db:
                db.add_all(rows)
                db.commit()
                ids = [row.id for row in rows]
        except SQLAlchemyError as e:
            raise ItemStoreError(f"insert of {len(items)} item(s) failed: {e}") from e
        return [item.model_copy(update={"id": item_id}) for item, item_id in zip(items, ids)]

    def record_usage(self, item_ids: List[str], test_id: str) -> None:
        """Append a usage row per item and bump usage_count."""
        if not item_ids:
            return
        with self.session_factory() as db:
            try:
                db.add_all([ItemUsage(item_id=item_id, test_id=test_id) for item_id in item_ids])
                db.query(BankItem).filter(BankItem.id.in_(item_ids)).update(
                    {BankItem.usage_count: BankItem.usage_count + 1},
                    synchronize_session=False,
                )
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise ItemStoreError(f"usage update for test {test_id} failed: {e}") from e

    def backfill_embeddings(self, embedder, batch_size: int = 100, show_progress: bool = True) -> int:
        """Compute vectors for items stored without one. Returns how many were filled."""
        with self.session_factory() as db:
            rows = (
                db.query(BankItem)
                .filter(BankItem.embedding_vector.is_(None))
                .filter(BankItem.deleted.is_(False))
                .all()
            )
            if not rows:
                return 0
            batches = [rows[i:i + batch_size] for i in range(0, len(rows), batch_size)]
            iterator = tqdm(batches, desc="Embedding items") if show_progress and len(batches) > 1 else batches
            filled = 0
            for batch in iterator:
                vectors = embedder.embed_many([r.text for r in batch])
                for row, vector in zip(batch, vectors):
                    if vector and any(vector):
                        row.embedding_vector = list(vector)
                        filled += 1
                db.commit()
            log.info(f"Backfilled embeddings for {filled}/{len(rows)} item(s)")
            return filled
