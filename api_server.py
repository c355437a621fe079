from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.core.container import global_container
from app.core.settings import settings
from errors import KMS_NOT_FOUND, TX_NOT_FOUND, DeploymentOrSigningFailed, LookupFailed, NftError
from nft.chains import Chain, parse_chain
from nft.models import parse_request
from observability import build_log_context, log_event

API_CTX = build_log_context(tool="api_server")

app = FastAPI(title=f"{settings.PROJECT_NAME} API", version=settings.VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status: int, code: str, message: str, data: Optional[Dict[str, Any]] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"statusCode": status, "errorCode": code, "message": message, "data": data or {}},
    )


def _status_for(e: NftError) -> int:
    if isinstance(e, DeploymentOrSigningFailed):
        return 500
    if isinstance(e, LookupFailed) and e.code in (TX_NOT_FOUND, KMS_NOT_FOUND):
        return 404
    return 400


@app.exception_handler(NftError)
async def nft_error_handler(request: Request, exc: NftError):
    status = _status_for(exc)
    log_event(
        "api_request_failed",
        ctx=API_CTX,
        data={"path": request.url.path, "status": status, "code": exc.code},
        level="error" if status >= 500 else "warning",
    )
    return _error(status, exc.code, exc.message, exc.data)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    errors = exc.errors(include_url=False, include_context=False, include_input=False)
    return _error(400, "validation.failed", "Request validation failed.", {"errors": errors})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return _error(400, "validation.failed", "Request validation failed.", {"errors": jsonable_encoder(exc.errors())})


def _chain(value: str) -> Chain:
    try:
        return parse_chain(value)
    except ValueError as e:
        raise NftError("validation.failed", str(e), {"chain": value}) from e


@app.get("/api/health")
async def health_check():
    return {"status": "ok", "testnet": settings.NFT_TESTNET, "version": settings.VERSION}


@app.post("/v3/nft/transaction")
async def transfer(payload: Dict[str, Any] = Body(...)):
    return await global_container.nft_service.transfer_erc721(parse_request("transfer", payload))


@app.post("/v3/nft/mint")
async def mint(payload: Dict[str, Any] = Body(...)):
    return await global_container.nft_service.mint_erc721(parse_request("mint", payload))


@app.post("/v3/nft/mint/batch")
async def mint_multiple(payload: Dict[str, Any] = Body(...)):
    return await global_container.nft_service.mint_multiple_erc721(parse_request("mint_multiple", payload))


@app.post("/v3/nft/burn")
async def burn(payload: Dict[str, Any] = Body(...)):
    return await global_container.nft_service.burn_erc721(parse_request("burn", payload))


@app.post("/v3/nft/deploy")
async def deploy(payload: Dict[str, Any] = Body(...)):
    return await global_container.nft_service.deploy_erc721(parse_request("deploy", payload))


@app.put("/v3/nft/royalty")
async def update_royalty(payload: Dict[str, Any] = Body(...)):
    return await global_container.nft_service.update_cashback_for_author(parse_request("update_cashback", payload))


@app.get("/v3/nft/metadata/{chain}/{contract}/{token}")
async def get_metadata(chain: str, contract: str, token: str, account: Optional[str] = None):
    return await global_container.nft_service.get_metadata_erc721(_chain(chain), token, contract, account)


@app.get("/v3/nft/royalty/{chain}/{contract}/{token}")
async def get_royalty(chain: str, contract: str, token: str):
    return await global_container.nft_service.get_royalty_erc721(_chain(chain), token, contract)


@app.get("/v3/nft/balance/{chain}/{contract}/{address}")
async def get_tokens_of_owner(chain: str, contract: str, address: str):
    return await global_container.nft_service.get_tokens_of_owner(_chain(chain), address, contract)


@app.get("/v3/nft/address/{chain}/{tx_id}")
async def get_contract_address(chain: str, tx_id: str):
    return await global_container.nft_service.get_contract_address(_chain(chain), tx_id)


@app.get("/v3/nft/transaction/{chain}/{tx_id}")
async def get_transaction(chain: str, tx_id: str):
    return await global_container.nft_service.get_transaction(_chain(chain), tx_id)


@app.get("/v3/kms/pending/{chain}")
async def kms_pending(chain: str):
    return await global_container.kms_store.list_pending(_chain(chain).value)


@app.get("/v3/kms/{id}")
async def kms_get(id: str):
    return await global_container.kms_store.get(id)


@app.put("/v3/kms/{id}/{tx_id}", status_code=204)
async def kms_complete(id: str, tx_id: str):
    await global_container.kms_store.complete(id, tx_id)


@app.delete("/v3/kms/{id}", status_code=204)
async def kms_cancel(id: str):
    await global_container.kms_store.cancel(id)


if __name__ == "__main__":
    import uvicorn
    log_event("api_server_started", ctx=API_CTX, data={"port": settings.API_PORT, "host": settings.API_HOST})
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)
