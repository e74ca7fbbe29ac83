import contextlib
import functools
import logging
from typing import Any, Awaitable, Callable

from databases import Database
import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape
from rich.logging import RichHandler
from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import (
    HTMLResponse,
    JSONResponse,
    RedirectResponse,
    Response,
    StreamingResponse,
)
from starlette.routing import Route

from app import config
from app.html.restaurants import RestaurantsPage
from dinner.cache import LRUCache
from dinner.catalog import Catalog
from dinner.errors import ConflictError, DinnerError, NotFoundError, ValidationError
from dinner.listing import ListingFilters, radius_for
from dinner.membership import MembershipManager
from dinner.models import Coordinate, RestaurantDetail
from dinner.places import PlacesClient
from dinner.repository import MembershipRepository, RestaurantRepository, create_tables
from dinner.schemas import JoinDinner, LeaveDinner, parse_action
from dinner.services import get_all_details, join_dinner, leave_dinner


logger = logging.getLogger(__name__)


CONFIG = config.Config()


PHOTO_CACHE_CONTROL = "public, max-age=86400"


def aHTMLResponse(route: Callable[..., Awaitable[str | tuple[str, int]]]):
    @functools.wraps(route)
    async def wrapper(*args: Any, **kwargs: Any) -> HTMLResponse:
        resp = await route(*args, **kwargs)
        if not isinstance(resp, tuple):
            html, code = resp, 200
        else:
            html, code = resp
        return HTMLResponse(html, status_code=code)

    return wrapper


@contextlib.asynccontextmanager
async def lifespan(app: Starlette):
    cfg: config.Config = app.state.config
    logging.basicConfig(
        level=cfg.log_level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler()],
    )

    # Missing credentials stop the app here, before any request is served.
    try:
        places = PlacesClient(cfg.google_places_api_key, http_client=app.state.http_client)
    except DinnerError:
        logger.critical("Cannot start without a place provider key.")
        raise

    db = Database(cfg.db_url)
    await db.connect()
    await create_tables(db)

    restaurants = RestaurantRepository(db)
    app.state.places = places
    app.state.catalog = Catalog(
        places=places,
        repository=restaurants,
        cache=LRUCache(max_size=cfg.cache_max_size, ttl_seconds=cfg.cache_ttl),
        ttl=cfg.cache_ttl,
    )
    app.state.membership = MembershipManager(
        repository=MembershipRepository(db),
        restaurants=restaurants,
    )
    try:
        yield
    finally:
        await places.close()
        await db.disconnect()


def user_id_from(request: Request) -> str:
    """Caller identity as handed over by whatever sits in front of us."""
    user_id = request.headers.get("x-user-id") or request.cookies.get("user_id")
    if not user_id or not user_id.strip():
        raise HTTPException(status_code=401, detail="Sign in to see restaurants.")
    return user_id


def wants_json(request: Request) -> bool:
    return "application/json" in request.headers.get("accept", "")


async def details_for(
    request: Request, user_id: str, filters: ListingFilters
) -> list[RestaurantDetail]:
    cfg: config.Config = request.app.state.config
    return await get_all_details(
        user_id=user_id,
        origin=Coordinate(lat=cfg.origin_lat, lng=cfg.origin_lng),
        radius=radius_for(filters, cfg.default_radius),
        catalog=request.app.state.catalog,
        membership=request.app.state.membership,
    )


@aHTMLResponse
async def homepage(request: Request) -> str:
    user_id = user_id_from(request)
    filters = ListingFilters.from_query(request.query_params)
    details = await details_for(request, user_id, filters)
    return RestaurantsPage(
        details,
        filters=filters,
        environment=request.app.state.templates,
    ).render()


async def restaurants(request: Request) -> JSONResponse:
    user_id = user_id_from(request)
    filters = ListingFilters.from_query(request.query_params)
    details = await details_for(request, user_id, filters)
    return JSONResponse([d.to_dict() for d in details])


async def join_with_retry(action: JoinDinner, membership: MembershipManager) -> None:
    try:
        await join_dinner(action.user_id, action.restaurant_id, membership=membership)
    except ConflictError:
        logger.warning("Conflict joining %s for %s, retrying", action.restaurant_id, action.user_id)
        await join_dinner(action.user_id, action.restaurant_id, membership=membership)


async def dinner_action(request: Request) -> Response:
    """Join or leave, posted from the restaurant cards."""
    user_id = user_id_from(request)
    async with request.form() as form:
        data: dict[str, Any] = {k: v for k, v in form.items() if isinstance(v, str)}
    data["user_id"] = user_id

    membership: MembershipManager = request.app.state.membership
    try:
        match parse_action(data):
            case JoinDinner() as action:
                await join_with_retry(action, membership)
            case LeaveDinner() as action:
                try:
                    await leave_dinner(action.user_id, membership=membership)
                except NotFoundError:
                    logger.info("%s had already left", action.user_id)
    except ValidationError as e:
        return JSONResponse({"status": "error", "errors": e.fields}, status_code=400)
    except ConflictError as e:
        return JSONResponse(
            {"status": "error", "errors": {"restaurant_id": [e.message]}},
            status_code=409,
        )

    if wants_json(request):
        return JSONResponse({"status": "success"})
    return RedirectResponse("/", status_code=303)


async def photo(request: Request) -> StreamingResponse:
    """Stream a provider photo so the provider key stays on the server."""
    photo_ref = request.query_params.get("photoRef")
    if not photo_ref:
        raise ValidationError({"photoRef": ["photoRef is required."]})

    places: PlacesClient = request.app.state.places
    upstream: httpx.Response = await places.fetch_photo(photo_ref)
    return StreamingResponse(
        upstream.aiter_bytes(),
        status_code=upstream.status_code,
        media_type=upstream.headers.get("content-type"),
        headers={"Cache-Control": PHOTO_CACHE_CONTROL},
        background=BackgroundTask(upstream.aclose),
    )


async def dinner_error(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, DinnerError)
    logger.warning("%r on %s", exc, request.url.path)
    return JSONResponse(exc.to_dict(), status_code=exc.http_status)


def create_app(
    cfg: config.Config | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> Starlette:
    cfg = CONFIG if cfg is None else cfg
    app = Starlette(
        debug=True if cfg.env == config.Env.local else False,
        routes=[
            Route("/", homepage),
            Route("/api/restaurants", restaurants),
            Route("/restaurants", dinner_action, methods=["POST"]),
            Route("/resources/maps/photo", photo),
        ],
        exception_handlers={DinnerError: dinner_error},
        lifespan=lifespan,
    )
    app.state.config = cfg
    app.state.http_client = http_client
    app.state.templates = Environment(
        loader=FileSystemLoader(cfg.html_dir),
        autoescape=select_autoescape(),
    )
    return app


app = create_app()
