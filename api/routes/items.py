"""
api/routes/items.py -- Example protected CRUD routes.

Routes:
  GET    /whoami            -- the caller if signed in, else anonymous
  GET    /me                -- the authenticated caller
  GET    /items             -- list the caller's items
  POST   /items             -- create an item (201)
  GET    /items/{item_id}   -- item detail
  PUT    /items/{item_id}   -- rename / re-describe
  DELETE /items/{item_id}   -- delete

Every route except /whoami requires a session. Items belonging to another
user are reported as 404, not 403, so ids cannot be enumerated. A duplicate name
for the same owner is 409.

The store-backed routes are plain def, so FastAPI runs their SQLAlchemy calls
in its threadpool.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import IntegrityError

from api.models import ItemCreate, ItemResponse, ItemUpdate
from auth.dependencies import get_request_context, require_user
from auth.models import Identity, RequestContext
from core.responses import ApiError, SuccessResponse
from items.models import Item
from items.store import ItemStore

router = APIRouter()

_NOT_FOUND = "Item not found"
_DUPLICATE = "An item with that name already exists"


def _store(request: Request) -> ItemStore:
    return request.app.state.item_store


@router.get("/whoami")
async def whoami(context: RequestContext = Depends(get_request_context)):
    identity = context.identity
    return SuccessResponse(
        message="Authenticated user" if context.is_authenticated else "Anonymous user",
        data={
            "authenticated": context.is_authenticated,
            "user": {"id": identity.id, "email": identity.email, "name": identity.name} if identity else None,
        },
    ).to_response()


@router.get("/me")
async def me(user: Identity = Depends(require_user)):
    return SuccessResponse(
        message="Authenticated user",
        data={"id": user.id, "email": user.email, "name": user.name},
    ).to_response()


@router.get("/items")
def list_items(request: Request, user: Identity = Depends(require_user)):
    items = _store(request).list_items(user.id)
    return SuccessResponse(
        message="Items retrieved",
        data=[ItemResponse.from_item(item).to_data() for item in items],
    ).to_response()


@router.post("/items", status_code=201)
def create_item(request: Request, body: ItemCreate, user: Identity = Depends(require_user)):
    store = _store(request)
    try:
        item_id = store.create_item(Item(owner_id=user.id, name=body.name, description=body.description))
    except IntegrityError as exc:
        raise ApiError(_DUPLICATE, 409) from exc
    item = store.get_item(user.id, item_id)
    return SuccessResponse(
        message="Item created",
        status_code=201,
        data=ItemResponse.from_item(item).to_data(),
    ).to_response()


@router.get("/items/{item_id}")
def get_item(request: Request, item_id: int, user: Identity = Depends(require_user)):
    item = _store(request).get_item(user.id, item_id)
    if item is None:
        raise ApiError(_NOT_FOUND, 404)
    return SuccessResponse(message="Item retrieved", data=ItemResponse.from_item(item).to_data()).to_response()


@router.put("/items/{item_id}")
def update_item(
    request: Request,
    item_id: int,
    body: ItemUpdate,
    user: Identity = Depends(require_user),
):
    store = _store(request)
    try:
        updated = store.update_item(user.id, item_id, **body.model_dump(exclude_none=True))
    except IntegrityError as exc:
        raise ApiError(_DUPLICATE, 409) from exc
    if not updated:
        raise ApiError(_NOT_FOUND, 404)
    item = store.get_item(user.id, item_id)
    return SuccessResponse(message="Item updated", data=ItemResponse.from_item(item).to_data()).to_response()


@router.delete("/items/{item_id}")
def delete_item(request: Request, item_id: int, user: Identity = Depends(require_user)):
    if not _store(request).delete_item(user.id, item_id):
        raise ApiError(_NOT_FOUND, 404)
    return SuccessResponse(message="Item deleted").to_response()
