"""Passthrough routes for the classifier oracle."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from item_ledger.api.dependencies import get_oracle_client, get_user_scope
from item_ledger.models.schemas import OraclePromptRequest, OraclePromptResponse, OracleStatus
from item_ledger.services.oracle import OllamaClient

router = APIRouter(prefix="/oracle", tags=["oracle"])


@router.get("/status", response_model=OracleStatus)
async def oracle_status(oracle: OllamaClient = Depends(get_oracle_client)):
    return await oracle.status()


@router.post("/prompt", response_model=OraclePromptResponse)
async def send_prompt(
    payload: OraclePromptRequest,
    user_scope: str = Depends(get_user_scope),
    oracle: OllamaClient = Depends(get_oracle_client),
):
    model = payload.model or oracle.model
    response = await oracle.send(payload.prompt, model=model)
    return OraclePromptResponse(prompt=payload.prompt, model=model, response=response)
