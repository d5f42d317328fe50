"""Conversation history endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query

from moxie.conversation.store import ConversationStore
from moxie.dependencies import get_conversation_store

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


@router.get("")
async def list_conversations(
    limit: int = Query(50, ge=1, le=500),
    store: ConversationStore = Depends(get_conversation_store),
):
    return {"conversations": await store.list_conversations(limit)}


@router.get("/search")
async def search_conversations(
    q: str = Query(..., min_length=1),
    limit: int = Query(20, ge=1, le=200),
    store: ConversationStore = Depends(get_conversation_store),
):
    """Case-insensitive substring search over stored messages."""
    return {"results": await store.search_history(q, limit)}


@router.get("/{conversation_id}")
async def get_conversation(conversation_id: str, store: ConversationStore = Depends(get_conversation_store)):
    conversation = await store.load(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail=f"Conversation not found: {conversation_id}")
    return conversation.to_dict()


@router.delete("/{conversation_id}")
async def delete_conversation(conversation_id: str, store: ConversationStore = Depends(get_conversation_store)):
    if not await store.forget(conversation_id):
        raise HTTPException(status_code=404, detail=f"Conversation not found: {conversation_id}")
    return {"deleted": conversation_id}
