"""Chat endpoint."""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException

from moxie.dependencies import get_chat_service
from moxie.models.requests import ChatRequest, ChatResponse, ToolCallInfo
from moxie.providers.base import ProviderError, UnknownProviderError
from moxie.services.chat_service import ChatService, MaxToolIterationsExceeded

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["chat"])


@router.post("/chat", response_model=ChatResponse)
async def chat(body: ChatRequest, chat_service: ChatService = Depends(get_chat_service)):
    """
    Send one user message and get the assistant reply.

    Tool calls requested by the model are executed before the reply is
    returned; ``tool_calls`` lists them in order.
    """
    try:
        result = await chat_service.chat(
            body.message,
            conversation_id=body.conversation_id,
            system_prompt=body.system_prompt,
            persona=body.persona,
            provider=body.provider,
            model=body.model,
            timeout=body.timeout_s,
        )
    except UnknownProviderError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except asyncio.TimeoutError:
        raise HTTPException(status_code=504, detail=f"Chat timed out after {body.timeout_s}s")
    except ProviderError as e:
        logger.error(f"Provider error: {e}")
        raise HTTPException(status_code=502, detail={"type": e.kind, "message": e.message})
    except MaxToolIterationsExceeded as e:
        raise HTTPException(status_code=500, detail=str(e))

    return ChatResponse(
        message=result.message,
        conversation_id=result.conversation_id,
        tool_calls=[ToolCallInfo(name=c.name, success=c.success) for c in result.tool_calls],
    )
