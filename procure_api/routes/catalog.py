"""
Master data for request items: item types, item categories, contract types,
acquisition types, the item catalog and the list of excluded items.

The four coded tables share one router factory; reads are open to every
authenticated user, writes are ADMIN only.
"""

from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from procure_api.database import get_db
from procure_api.exceptions import ConflictError, NotFoundError, ValidationError
from procure_api.middleware.auth import get_current_actor
from procure_api.middleware.authorization import require_roles
from procure_api.models.catalog import (
    AcquisitionTypeMaster,
    ContractType,
    Item,
    ItemCategory,
    ItemExclusion,
    ItemType,
)
from procure_api.models.request import RequestItem
from procure_api.schemas.catalog import (
    CodedEntryCreate,
    CodedEntryResponse,
    CodedEntryUpdate,
    ExclusionCreate,
    ExclusionResponse,
    ExclusionUpdate,
    ItemCreate,
    ItemResponse,
    ItemSearchResponse,
    ItemUpdate,
)
from procure_api.schemas.common import (
    MessageResponse,
    PaginatedResponse,
    build_pagination,
    parse_optional_uuid,
    parse_uuid,
)
from procure_api.services.access_policy import Actor

logger = structlog.get_logger()

SEARCH_MIN_LENGTH = 4
SEARCH_LIMIT = 10
EXCLUSION_SEARCH_LIMIT = 5


def _coded_to_response(entry) -> CodedEntryResponse:
    return CodedEntryResponse(
        id=str(entry.id),
        code=entry.code,
        name=entry.name,
        description=entry.description,
        is_active=entry.is_active,
        created_at=entry.created_at.isoformat() if entry.created_at else "",
    )


def build_coded_router(model, entity: str, references: tuple = ()) -> APIRouter:
    """CRUD router for a coded master table.

    ``references`` lists columns pointing at ``model``; deleting a row still
    referenced by any of them is a conflict.
    """
    router = APIRouter()

    async def _get(db: AsyncSession, entry_id):
        entry = await db.get(model, parse_uuid(entry_id, entity))
        if not entry:
            raise NotFoundError(entity, entry_id)
        return entry

    async def _ensure_unique_code(db: AsyncSession, code: str, exclude_id=None) -> None:
        q = select(model.id).where(model.code == code)
        if exclude_id is not None:
            q = q.where(model.id != exclude_id)
        if (await db.execute(q)).first():
            raise ConflictError(f"{entity} code '{code}' already exists")

    @router.get("", response_model=List[CodedEntryResponse])
    async def list_entries(
        active_only: bool = Query(False),
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db),
    ):
        q = select(model)
        if active_only:
            q = q.where(model.is_active == True)  # noqa: E712
        result = await db.execute(q.order_by(model.name))
        return [_coded_to_response(e) for e in result.scalars().all()]

    @router.get("/{entry_id}", response_model=CodedEntryResponse)
    async def get_entry(
        entry_id: str,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db),
    ):
        return _coded_to_response(await _get(db, entry_id))

    @router.post("", response_model=CodedEntryResponse, status_code=status.HTTP_201_CREATED)
    async def create_entry(
        body: CodedEntryCreate,
        actor: Actor = Depends(get_current_actor),
        _auth: None = Depends(require_roles("ADMIN")),
        db: AsyncSession = Depends(get_db),
    ):
        code = body.code.strip().upper()
        await _ensure_unique_code(db, code)
        entry = model(
            code=code,
            name=body.name.strip(),
            description=body.description,
            is_active=body.is_active,
        )
        db.add(entry)
        await db.flush()
        await db.commit()
        await db.refresh(entry)
        logger.info("master_data_created", entity=entity, code=code)
        return _coded_to_response(entry)

    @router.put("/{entry_id}", response_model=CodedEntryResponse)
    async def update_entry(
        entry_id: str,
        body: CodedEntryUpdate,
        actor: Actor = Depends(get_current_actor),
        _auth: None = Depends(require_roles("ADMIN")),
        db: AsyncSession = Depends(get_db),
    ):
        entry = await _get(db, entry_id)
        changes = body.model_dump(exclude_unset=True)
        if "code" in changes:
            changes["code"] = changes["code"].strip().upper()
            await _ensure_unique_code(db, changes["code"], exclude_id=entry.id)
        for field, val in changes.items():
            setattr(entry, field, val)
        await db.commit()
        await db.refresh(entry)
        return _coded_to_response(entry)

    @router.delete("/{entry_id}", response_model=MessageResponse)
    async def delete_entry(
        entry_id: str,
        actor: Actor = Depends(get_current_actor),
        _auth: None = Depends(require_roles("ADMIN")),
        db: AsyncSession = Depends(get_db),
    ):
        entry = await _get(db, entry_id)
        for column in references:
            in_use = (await db.execute(
                select(func.count()).where(column == entry.id)
            )).scalar() or 0
            if in_use:
                raise ConflictError(f"{entity} is in use and cannot be deleted")
        await db.delete(entry)
        await db.commit()
        logger.info("master_data_deleted", entity=entity, code=entry.code)
        return MessageResponse(message=f"{entity} deleted")

    return router


item_types_router = build_coded_router(
    ItemType, "ItemType", references=(Item.type_id, RequestItem.item_type_id)
)
item_categories_router = build_coded_router(
    ItemCategory, "ItemCategory", references=(Item.category_id, RequestItem.item_category_id)
)
contract_types_router = build_coded_router(
    ContractType, "ContractType", references=(RequestItem.contract_type_id,)
)
acquisition_types_router = build_coded_router(
    AcquisitionTypeMaster, "AcquisitionType", references=(RequestItem.acquisition_type_id,)
)


# ---------- Item catalog ----------

items_router = APIRouter()


def _item_to_response(item: Item) -> ItemResponse:
    return ItemResponse(
        id=str(item.id),
        code=item.code,
        name=item.name,
        description=item.description,
        specifications=item.specifications,
        category_id=str(item.category_id) if item.category_id else None,
        type_id=str(item.type_id) if item.type_id else None,
        is_active=item.is_active,
        created_at=item.created_at.isoformat() if item.created_at else "",
    )


async def _check_active(db: AsyncSession, model, entry_id, field: str) -> None:
    if entry_id is None:
        raise ValidationError(f"{field} is required", {"field": field})
    entry = await db.get(model, entry_id)
    if entry is None or not entry.is_active:
        raise ValidationError(f"{model.__name__} not found or inactive", {"field": field})


async def _ensure_unique_item_code(db: AsyncSession, code: str, exclude_id=None) -> None:
    q = select(Item.id).where(Item.code == code)
    if exclude_id is not None:
        q = q.where(Item.id != exclude_id)
    if (await db.execute(q)).first():
        raise ConflictError(f"Item code '{code}' already exists")


@items_router.get("", response_model=PaginatedResponse[ItemResponse])
async def list_items(
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(50, ge=1, le=200),
    category_id: str = Query(None),
    type_id: str = Query(None),
    active_only: bool = Query(False),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    q = select(Item)
    if category_id:
        q = q.where(Item.category_id == parse_uuid(category_id, "ItemCategory"))
    if type_id:
        q = q.where(Item.type_id == parse_uuid(type_id, "ItemType"))
    if active_only:
        q = q.where(Item.is_active == True)  # noqa: E712

    total = (await db.execute(select(func.count()).select_from(q.subquery()))).scalar() or 0
    result = await db.execute(q.order_by(Item.name).offset((page - 1) * limit).limit(limit))
    items = [_item_to_response(i) for i in result.scalars().all()]
    return PaginatedResponse(data=items, pagination=build_pagination(page, limit, total))


@items_router.get("/search", response_model=ItemSearchResponse)
async def search_items(
    q: str = Query(""),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Autocomplete over active catalog items by name, code or description.

    Exclusions whose code or name match the term come back alongside.
    """
    term = q.strip()
    if len(term) < SEARCH_MIN_LENGTH:
        return ItemSearchResponse(items=[], exclusions=[])
    pattern = f"%{term.lower()}%"
    result = await db.execute(
        select(Item)
        .where(
            Item.is_active == True,  # noqa: E712
            or_(
                func.lower(Item.name).like(pattern),
                func.lower(Item.code).like(pattern),
                func.lower(Item.description).like(pattern),
            ),
        )
        .order_by(Item.name)
        .limit(SEARCH_LIMIT)
    )
    items = [_item_to_response(i) for i in result.scalars().all()]

    exclusion_result = await db.execute(
        select(ItemExclusion)
        .where(
            ItemExclusion.is_active == True,  # noqa: E712
            or_(
                func.lower(ItemExclusion.name).like(pattern),
                func.lower(ItemExclusion.code).like(pattern),
            ),
        )
        .order_by(ItemExclusion.code)
        .limit(EXCLUSION_SEARCH_LIMIT)
    )
    exclusions = [_exclusion_to_response(e) for e in exclusion_result.scalars().all()]
    return ItemSearchResponse(items=items, exclusions=exclusions)


@items_router.get("/{item_id}", response_model=ItemResponse)
async def get_item(
    item_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    item = await db.get(Item, parse_uuid(item_id, "Item"))
    if not item:
        raise NotFoundError("Item", item_id)
    return _item_to_response(item)


@items_router.post("", response_model=ItemResponse, status_code=status.HTTP_201_CREATED)
async def create_item(
    body: ItemCreate,
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles("ADMIN")),
    db: AsyncSession = Depends(get_db),
):
    code = body.code.strip().upper()
    await _ensure_unique_item_code(db, code)
    category_id = parse_optional_uuid(body.category_id, "ItemCategory")
    type_id = parse_optional_uuid(body.type_id, "ItemType")
    await _check_active(db, ItemCategory, category_id, "category_id")
    await _check_active(db, ItemType, type_id, "type_id")

    item = Item(
        code=code,
        name=body.name.strip(),
        description=body.description,
        specifications=body.specifications,
        category_id=category_id,
        type_id=type_id,
        is_active=body.is_active,
    )
    db.add(item)
    await db.flush()
    await db.commit()
    await db.refresh(item)
    logger.info("catalog_item_created", item_id=str(item.id), code=code)
    return _item_to_response(item)


@items_router.put("/{item_id}", response_model=ItemResponse)
async def update_item(
    item_id: str,
    body: ItemUpdate,
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles("ADMIN")),
    db: AsyncSession = Depends(get_db),
):
    item = await db.get(Item, parse_uuid(item_id, "Item"))
    if not item:
        raise NotFoundError("Item", item_id)

    changes = body.model_dump(exclude_unset=True)
    if "code" in changes:
        changes["code"] = changes["code"].strip().upper()
        await _ensure_unique_item_code(db, changes["code"], exclude_id=item.id)
    if "category_id" in changes:
        changes["category_id"] = parse_optional_uuid(changes["category_id"], "ItemCategory")
        await _check_active(db, ItemCategory, changes["category_id"], "category_id")
    if "type_id" in changes:
        changes["type_id"] = parse_optional_uuid(changes["type_id"], "ItemType")
        await _check_active(db, ItemType, changes["type_id"], "type_id")

    for field, val in changes.items():
        setattr(item, field, val)
    await db.commit()
    await db.refresh(item)
    return _item_to_response(item)


@items_router.delete("/{item_id}", response_model=MessageResponse)
async def delete_item(
    item_id: str,
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles("ADMIN")),
    db: AsyncSession = Depends(get_db),
):
    item = await db.get(Item, parse_uuid(item_id, "Item"))
    if not item:
        raise NotFoundError("Item", item_id)
    # Request lines keep their own item_name; the link is nulled by the FK.
    await db.delete(item)
    await db.commit()
    logger.info("catalog_item_deleted", item_id=str(item.id))
    return MessageResponse(message="Item deleted")


# ---------- Item exclusions ----------

exclusions_router = APIRouter()


def _exclusion_to_response(e: ItemExclusion) -> ExclusionResponse:
    return ExclusionResponse(
        id=str(e.id),
        code=e.code,
        name=e.name,
        justification=e.justification,
        is_active=e.is_active,
        created_at=e.created_at.isoformat() if e.created_at else "",
    )


async def _get_exclusion(db: AsyncSession, exclusion_id) -> ItemExclusion:
    exclusion = await db.get(ItemExclusion, parse_uuid(exclusion_id, "ItemExclusion"))
    if not exclusion:
        raise NotFoundError("ItemExclusion", exclusion_id)
    return exclusion


async def _ensure_unique_exclusion_code(db: AsyncSession, code: str, exclude_id=None) -> None:
    q = select(ItemExclusion.id).where(ItemExclusion.code == code)
    if exclude_id is not None:
        q = q.where(ItemExclusion.id != exclude_id)
    if (await db.execute(q)).first():
        raise ConflictError(f"Exclusion code '{code}' already exists")


@exclusions_router.get("", response_model=PaginatedResponse[ExclusionResponse])
async def list_exclusions(
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(10, ge=1, le=200),
    search: str = Query(None),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    q = select(ItemExclusion)
    if search and search.strip():
        pattern = f"%{search.strip().lower()}%"
        q = q.where(
            or_(
                func.lower(ItemExclusion.code).like(pattern),
                func.lower(ItemExclusion.name).like(pattern),
                func.lower(ItemExclusion.justification).like(pattern),
            )
        )

    total = (await db.execute(select(func.count()).select_from(q.subquery()))).scalar() or 0
    result = await db.execute(
        q.order_by(ItemExclusion.code).offset((page - 1) * limit).limit(limit)
    )
    data = [_exclusion_to_response(e) for e in result.scalars().all()]
    return PaginatedResponse(data=data, pagination=build_pagination(page, limit, total))


@exclusions_router.get("/{exclusion_id}", response_model=ExclusionResponse)
async def get_exclusion(
    exclusion_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return _exclusion_to_response(await _get_exclusion(db, exclusion_id))


@exclusions_router.post("", response_model=ExclusionResponse, status_code=status.HTTP_201_CREATED)
async def create_exclusion(
    body: ExclusionCreate,
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles("ADMIN")),
    db: AsyncSession = Depends(get_db),
):
    code = body.code.strip().upper()
    await _ensure_unique_exclusion_code(db, code)
    exclusion = ItemExclusion(
        code=code,
        name=body.name.strip(),
        justification=body.justification.strip(),
        is_active=body.is_active,
    )
    db.add(exclusion)
    await db.flush()
    await db.commit()
    await db.refresh(exclusion)
    logger.info("item_exclusion_created", exclusion_id=str(exclusion.id), code=code)
    return _exclusion_to_response(exclusion)


@exclusions_router.put("/{exclusion_id}", response_model=ExclusionResponse)
async def update_exclusion(
    exclusion_id: str,
    body: ExclusionUpdate,
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles("ADMIN")),
    db: AsyncSession = Depends(get_db),
):
    exclusion = await _get_exclusion(db, exclusion_id)
    changes = body.model_dump(exclude_unset=True)
    if "code" in changes:
        changes["code"] = changes["code"].strip().upper()
        await _ensure_unique_exclusion_code(db, changes["code"], exclude_id=exclusion.id)
    for field, val in changes.items():
        setattr(exclusion, field, val)
    await db.commit()
    await db.refresh(exclusion)
    return _exclusion_to_response(exclusion)


@exclusions_router.delete("/{exclusion_id}", response_model=MessageResponse)
async def delete_exclusion(
    exclusion_id: str,
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles("ADMIN")),
    db: AsyncSession = Depends(get_db),
):
    exclusion = await _get_exclusion(db, exclusion_id)
    await db.delete(exclusion)
    await db.commit()
    logger.info("item_exclusion_deleted", exclusion_id=str(exclusion.id))
    return MessageResponse(message="Exclusion removed")
