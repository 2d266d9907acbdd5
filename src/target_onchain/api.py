"""
target_onchain API — FastAPI application serving storefront frames.

Frame endpoints (always answer with a frame document):
  POST /api/frame/{id}/action       — verify viewer, recommend a product
  POST /api/frame/{id}/explain      — show why the product was recommended
  GET  /api/frame/{id}/html         — initial frame (?dev=true adds an input)
  POST /api/frame/composer          — composer action → authoring form
  GET  /api/frame/composer/metadata — composer action metadata

Directory and authoring:
  GET  /api/slice/stores            — storefront directory (?creator, ?search)
  GET/POST /api/frames, GET/PUT/DELETE /api/frames/{id}
  PUT  /api/shops/{shop}/products   — replace a shop's catalog
  GET  /health
"""

import logging
import random
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field, field_validator

from target_onchain.attestations import AttestationClient
from target_onchain.config import Settings, get_settings
from target_onchain.core import MatchingCriteria, Product
from target_onchain.frame_message import FrameMessageValidator
from target_onchain.handler import FrameInteractionHandler, FrameStore
from target_onchain.recommendation import RecommendationPolicy
from target_onchain.rendering import default_error_frame
from target_onchain.security import (
    apply_security, limiter, require_admin_key, setup_structured_logging,
)
from target_onchain.stores import StoreDirectory
from target_onchain.verification import VerificationRegistry

__all__ = ["create_app"]

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------

class FrameCreateRequest(BaseModel):
    """Frame authoring form."""
    title: str = Field(..., min_length=1, max_length=200)
    image: str = Field(..., min_length=1, max_length=2000)
    shop: str = Field(..., min_length=1, max_length=255)
    button: str = Field("Show", min_length=1, max_length=32)
    matching_criteria: Optional[MatchingCriteria] = None
    creator: Optional[str] = Field(None, max_length=64)

    @field_validator("title", "image", "shop", "button")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v


class FrameUpdateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    image: str = Field(..., min_length=1, max_length=2000)
    shop: Optional[str] = Field(None, min_length=1, max_length=255)
    button: Optional[str] = Field(None, min_length=1, max_length=32)
    matching_criteria: Optional[MatchingCriteria] = None

    @field_validator("title", "image")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v


class FrameOut(BaseModel):
    id: int
    shop: str
    title: str
    image: str = ""
    button: str = "Show"
    matching_criteria: Optional[str] = None
    creator: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ProductIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=300)
    description: str = ""
    image: str = ""
    handle: str = ""
    variant_id: Optional[str] = None
    variant_formatted_price: str = ""


class ProductOut(ProductIn):
    id: Optional[int] = None
    shop: str


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = VERSION
    database: str = "not_configured"


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def _wire(app: FastAPI, store: FrameStore, http: Optional[httpx.AsyncClient],
          rng: Optional[random.Random]) -> None:
    """Build the interaction pipeline on top of ``store``."""
    settings: Settings = app.state.settings
    client = AttestationClient(settings, http)
    validator = FrameMessageValidator(settings, http)
    app.state.store = store
    app.state.attestation_client = client
    app.state.validator = validator
    app.state.handler = FrameInteractionHandler(
        settings,
        validator,
        VerificationRegistry.from_settings(settings, client),
        RecommendationPolicy(settings.base_url, rng),
        store,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the database and HTTP client unless they were injected."""
    settings: Settings = app.state.settings
    http = None
    db = None
    if getattr(app.state, "handler", None) is None:
        from target_onchain.database import Database

        db = Database(settings.database_url)
        await db.connect()
        http = httpx.AsyncClient(timeout=settings.http_timeout)
        _wire(app, db, http, None)
        logger.info("Service started", extra={"base_url": settings.base_url})
    yield
    if http is not None:
        await http.aclose()
    if db is not None:
        await db.close()


def get_handler(request: Request) -> FrameInteractionHandler:
    handler = getattr(request.app.state, "handler", None)
    if handler is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return handler


def get_store(request: Request):
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return store


async def _json_body(request: Request) -> Optional[dict]:
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


# ---------------------------------------------------------------------------
# App factory and routes
# ---------------------------------------------------------------------------

def create_app(settings: Optional[Settings] = None, *, store: Optional[FrameStore] = None,
               http: Optional[httpx.AsyncClient] = None,
               rng: Optional[random.Random] = None) -> FastAPI:
    """Create the application.

    Passing ``store`` (and usually ``http``) wires everything immediately,
    which is how tests run without a database or network.
    """
    settings = settings or get_settings()
    setup_structured_logging(settings.log_level)

    app = FastAPI(
        title="Target Onchain",
        description="Storefront frames with onchain attestation-based recommendations",
        version=VERSION,
        lifespan=lifespan,
        docs_url=None if settings.production else "/docs",
        redoc_url=None if settings.production else "/redoc",
    )
    app.state.settings = settings
    app.state.handler = None
    app.state.store = None
    app.state.directory = StoreDirectory(settings.stores_path)
    if store is not None:
        _wire(app, store, http, rng)

    apply_security(app, settings)
    _add_frame_routes(app)
    _add_authoring_routes(app)
    return app


def _add_frame_routes(app: FastAPI) -> None:

    @app.post("/api/frame/{frame_id}/action", response_class=HTMLResponse)
    @limiter.limit("60/minute")
    async def frame_action(frame_id: str, request: Request,
                           handler: FrameInteractionHandler = Depends(get_handler)):
        body = await _json_body(request)
        if body is None:
            logger.info("Frame request body is not a JSON object", extra={"id_part": frame_id})
            return HTMLResponse(default_error_frame(handler.base_url))
        result = await handler.handle(frame_id, body)
        return HTMLResponse(result.html)

    @app.post("/api/frame/{frame_id}/explain", response_class=HTMLResponse)
    async def frame_explain(frame_id: str, request: Request,
                            handler: FrameInteractionHandler = Depends(get_handler)):
        body = await _json_body(request) or {}
        result = await handler.explain(frame_id, body)
        return HTMLResponse(result.html)

    @app.get("/api/frame/{frame_id}/html", response_class=HTMLResponse)
    async def frame_html(frame_id: str, dev: bool = False,
                         handler: FrameInteractionHandler = Depends(get_handler)):
        result = await handler.initial_frame(frame_id, dev=dev)
        return HTMLResponse(result.html)

    @app.post("/api/frame/composer")
    async def composer_action(request: Request,
                              handler: FrameInteractionHandler = Depends(get_handler)):
        base_url = request.app.state.settings.base_url
        validation = await handler.validator.validate(await _json_body(request) or {})
        if not validation.is_valid or validation.message is None:
            logger.info("Message not valid")
            return HTMLResponse(default_error_frame(base_url))
        return JSONResponse({
            "type": "form",
            "title": "Create Store Frame",
            "url": f"{base_url}/frame/composer?creator={validation.message.address}",
        })

    @app.get("/api/frame/composer/metadata")
    async def composer_metadata(request: Request):
        base_url = request.app.state.settings.base_url
        return {
            "type": "composer",
            "name": "Slice Referrals",
            "icon": "meter",
            "description": "Earn with referrals",
            "aboutUrl": base_url,
            "imageUrl": f"{base_url}/favicon-100x100.png",
            "action": {"type": "post"},
        }


def _add_authoring_routes(app: FastAPI) -> None:

    @app.get("/api/slice/stores")
    async def list_stores(request: Request, creator: Optional[str] = None,
                          search: Optional[str] = None):
        directory: StoreDirectory = request.app.state.directory
        try:
            return directory.search(creator=creator or None, search=search or None)
        except (OSError, ValueError) as e:
            logger.error("Store directory unavailable: %s", e)
            raise HTTPException(status_code=503, detail="Store directory unavailable")

    @app.get("/api/frames", response_model=list[FrameOut])
    async def list_frames(creator: Optional[str] = None,
                          limit: int = Query(100, ge=1, le=500),
                          offset: int = Query(0, ge=0),
                          store=Depends(get_store)):
        frames = await store.list_frames(creator=creator, limit=limit, offset=offset)
        return [f.to_dict() for f in frames]

    @app.post("/api/frames", response_model=FrameOut, status_code=201,
              dependencies=[Depends(require_admin_key)])
    async def create_frame(body: FrameCreateRequest, store=Depends(get_store)):
        frame = await store.create_frame(
            shop=body.shop, title=body.title, image=body.image, button=body.button,
            matching_criteria=body.matching_criteria.value if body.matching_criteria else None,
            creator=body.creator.lower() if body.creator else None,
        )
        logger.info("Frame created", extra={"frame_id": frame.id, "shop": frame.shop})
        return frame.to_dict()

    @app.get("/api/frames/{frame_id}", response_model=FrameOut)
    async def get_frame(frame_id: int, store=Depends(get_store)):
        frame = await store.get_frame(frame_id)
        if frame is None:
            raise HTTPException(status_code=404, detail="Frame not found")
        return frame.to_dict()

    @app.put("/api/frames/{frame_id}", response_model=FrameOut,
             dependencies=[Depends(require_admin_key)])
    async def update_frame(frame_id: int, body: FrameUpdateRequest, store=Depends(get_store)):
        # An explicit null clears matching_criteria; shop and button are NOT NULL
        fields = {k: v for k, v in body.model_dump(exclude_unset=True).items()
                  if v is not None or k == "matching_criteria"}
        if body.matching_criteria is not None:
            fields["matching_criteria"] = body.matching_criteria.value
        frame = await store.update_frame(frame_id, **fields)
        if frame is None:
            raise HTTPException(status_code=404, detail="Frame not found")
        return frame.to_dict()

    @app.delete("/api/frames/{frame_id}", dependencies=[Depends(require_admin_key)])
    async def delete_frame(frame_id: int, store=Depends(get_store)):
        if not await store.delete_frame(frame_id):
            raise HTTPException(status_code=404, detail="Frame not found")
        return {"deleted": True, "id": frame_id}

    @app.put("/api/shops/{shop}/products", response_model=list[ProductOut],
             dependencies=[Depends(require_admin_key)])
    async def replace_products(shop: str, body: list[ProductIn], store=Depends(get_store)):
        products = [Product(shop=shop, **p.model_dump()) for p in body]
        saved = await store.replace_products(shop, products)
        logger.info("Catalog replaced", extra={"shop": shop, "count": len(saved)})
        return [p.to_dict() for p in saved]

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request):
        store = getattr(request.app.state, "store", None)
        if store is None or not hasattr(store, "ping"):
            return HealthResponse()
        try:
            ok = await store.ping()
        except Exception as e:
            return HealthResponse(status="degraded", database=f"error: {type(e).__name__}")
        return HealthResponse(database="connected" if ok else "error",
                              status="ok" if ok else "degraded")
