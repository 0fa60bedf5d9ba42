from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from prepboard.access import BoardRole, authorize
from prepboard.boards import service as boards
from prepboard.deps import get_blob_store, get_broadcaster, get_current_user, get_db, valid_id
from prepboard.errors import Forbidden
from prepboard.membership import service as membership
from prepboard.models import User
from prepboard.realtime.broadcaster import RoomBroadcaster
from prepboard.schemas import BoardCreateIn, BoardOut, BoardUpdateIn, InviteOut, MemberOut, RoleUpdateIn
from prepboard.storage.blobs import LocalBlobStore

router = APIRouter(prefix="/boards", tags=["boards"])


@router.get("", response_model=list[BoardOut])
async def list_boards(
  includeArchived: bool = False,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[BoardOut]:
  rows = await boards.list_boards(db, user_id=user.id, include_archived=includeArchived)
  return [await boards.board_view(db, b, viewer_id=user.id) for b in rows]


@router.post("", response_model=BoardOut)
async def create_board(payload: BoardCreateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> BoardOut:
  b = await boards.create_board(db, owner=user, payload=payload)
  return await boards.board_view(db, b, viewer_id=user.id)


@router.post("/join/{invite_code}", response_model=BoardOut)
async def join_board(
  invite_code: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
) -> BoardOut:
  b = await membership.join_by_invite(db, code=invite_code, user_id=user.id)
  out = await boards.board_view(db, b, viewer_id=user.id)
  joined = next(m for m in out.members if m.userId == user.id)
  await bc.broadcast(b.id, "memberJoined", joined.model_dump())
  return out


@router.get("/{board_id}", response_model=BoardOut)
async def get_board(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> BoardOut:
  b = await boards.get_board(db, valid_id(board_id, "board id"))
  await authorize(db, user_id=user.id, board_id=b.id, required=BoardRole.viewer)
  return await boards.board_view(db, b, viewer_id=user.id)


@router.put("/{board_id}", response_model=BoardOut)
async def update_board(
  board_id: str,
  payload: BoardUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
) -> BoardOut:
  b = await boards.get_board(db, valid_id(board_id, "board id"))
  await authorize(db, user_id=user.id, board_id=b.id, required=BoardRole.admin)
  b = await boards.update_board(db, b, actor_id=user.id, payload=payload)
  out = await boards.board_view(db, b, viewer_id=user.id)
  await bc.broadcast(b.id, "boardUpdated", out.model_dump(exclude={"myRole"}))
  return out


@router.delete("/{board_id}")
async def delete_board(
  board_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
  blobs: LocalBlobStore = Depends(get_blob_store),
) -> dict:
  b = await boards.get_board(db, valid_id(board_id, "board id"))
  await authorize(db, user_id=user.id, board_id=b.id, required=BoardRole.viewer)
  if b.owner_id != user.id:
    raise Forbidden("Only the board owner can delete the board")
  await boards.delete_board(db, b, actor_id=user.id, blobs=blobs)
  await bc.broadcast(b.id, "boardDeleted", {"boardId": b.id})
  bc.close_room(b.id)
  return {"ok": True}


async def _set_archived(board_id: str, archived: bool, user: User, db: AsyncSession, bc: RoomBroadcaster) -> BoardOut:
  b = await boards.get_board(db, valid_id(board_id, "board id"))
  await authorize(db, user_id=user.id, board_id=b.id, required=BoardRole.admin)
  b = await boards.set_archived(db, b, actor_id=user.id, archived=archived)
  await bc.broadcast(b.id, "boardArchived", {"isArchived": b.is_archived, "archivedAt": b.archived_at})
  return await boards.board_view(db, b, viewer_id=user.id)


@router.post("/{board_id}/archive", response_model=BoardOut)
async def archive_board(
  board_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
) -> BoardOut:
  return await _set_archived(board_id, True, user, db, bc)


@router.post("/{board_id}/unarchive", response_model=BoardOut)
async def unarchive_board(
  board_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
) -> BoardOut:
  return await _set_archived(board_id, False, user, db, bc)


@router.delete("/{board_id}/leave")
async def leave_board(
  board_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
  blobs: LocalBlobStore = Depends(get_blob_store),
) -> dict:
  result = await membership.leave(db, board_id=valid_id(board_id, "board id"), user_id=user.id, blobs=blobs)
  if result.board_deleted:
    await bc.broadcast(result.board_id, "boardDeleted", {"boardId": result.board_id})
    bc.close_room(result.board_id)
  else:
    bc.evict_user(result.board_id, user.id)
    await bc.broadcast(result.board_id, "memberLeft", {"userId": user.id, "newOwnerId": result.new_owner_id})
  return {"ok": True, "boardDeleted": result.board_deleted, "newOwnerId": result.new_owner_id}


@router.post("/{board_id}/invite", response_model=InviteOut)
async def rotate_invite(
  board_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
) -> InviteOut:
  b = await boards.get_board(db, valid_id(board_id, "board id"))
  await authorize(db, user_id=user.id, board_id=b.id, required=BoardRole.admin)
  code = await membership.create_invite(db, b, actor_id=user.id)
  await bc.broadcast(b.id, "boardUpdated", {"inviteCode": code})
  return InviteOut(inviteCode=code)


@router.get("/{board_id}/members", response_model=list[MemberOut])
async def list_members(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[MemberOut]:
  b = await boards.get_board(db, valid_id(board_id, "board id"))
  await authorize(db, user_id=user.id, board_id=b.id, required=BoardRole.viewer)
  return await boards.list_members(db, b.id)


@router.put("/{board_id}/members/{user_id}", response_model=MemberOut)
async def set_member_role(
  board_id: str,
  user_id: str,
  payload: RoleUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  bc: RoomBroadcaster = Depends(get_broadcaster),
) -> MemberOut:
  bid = valid_id(board_id, "board id")
  m = await membership.set_role(
    db,
    board_id=bid,
    actor_id=user.id,
    target_user_id=valid_id(user_id, "user id"),
    role=BoardRole(payload.role),
  )
  await bc.broadcast(bid, "memberRoleChanged", {"userId": m.user_id, "role": m.role})
  members = await boards.list_members(db, bid)
  return next(x for x in members if x.userId == m.user_id)
