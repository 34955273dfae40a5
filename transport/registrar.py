"""
REST route registration for entities.

For an entity named `x` the registrar exposes, below the API prefix:
- GET    /x/fields          field metadata
- GET    /x/{key}           one entity (flags via ?options=a,b)
- GET    /x                 list (filters, op, offset, limit, _order, returnCount)
- PUT    /x                 partial update (body carries id or natural key)
- POST   /x                 create
- DELETE /x/{key}           delete (or soft delete)
- POST   /x/{key}/{method}  custom operations (guarded by `x:method` unless the
                            entity maps the method to another action)

Each route runs the same pipeline: resolve the user, authorize the route's
action, run the handler, serialize the result. LibraryErrors become their
structured error body and status; anything else is logged and returned as a
500 INTERNAL_ERROR.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from fastapi import Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.status import HTTP_500_INTERNAL_SERVER_ERROR

from auth import Action, Authorizer, PermissionAuthorizer, User, authorize, request_state_user
from auth import READ, CREATE, UPDATE, DELETE
from config import ServerConfig
from errors import InvalidValue, LibraryError, StoreError
from query import QueryOptions, QueryResult, parse_flags, parse_op

logger = logging.getLogger(__name__)


class HttpCall:
    """What a handler sees of one request."""

    def __init__(self, request: Request, user: Optional[User], config: ServerConfig):
        self.request = request
        self.user = user
        self.config = config
        self._query: Optional[dict] = None

    def param(self, name: str, default: Any = None) -> Any:
        """A path parameter, falling back to the query string."""
        if name in self.request.path_params:
            return self.request.path_params[name]
        return self.query.get(name, default)

    @property
    def query(self) -> dict:
        """Query parameters; repeated parameters become lists."""
        if self._query is None:
            query: dict[str, Any] = {}
            for key, value in self.request.query_params.multi_items():
                if key in query:
                    existing = query[key]
                    query[key] = existing + [value] if isinstance(existing, list) else [existing, value]
                else:
                    query[key] = value
            self._query = query
        return self._query

    def op(self) -> str:
        raw = self.query.get("op")
        if isinstance(raw, list):
            raise InvalidValue("op may only be given once", field="op")
        return parse_op(raw)

    def options(self, default_order: Optional[str] = None) -> QueryOptions:
        options = QueryOptions.from_params(
            self.query, self.config.default_limit, self.config.max_limit
        )
        if options.order is None and default_order:
            options.order = default_order
        return options

    def flags(self, allowed, name: str = "options") -> dict[str, bool]:
        raw = self.query.get(name)
        if isinstance(raw, list):
            raw = ",".join(raw)
        return parse_flags(raw, allowed)

    async def body(self) -> Any:
        raw = await self.request.body()
        if not raw:
            return {}
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidValue(f"Invalid JSON body: {e}", field="body") from None


@dataclass
class Handler:
    """One route: method, path below the API prefix, handler and guarding action."""
    method: str
    path: str
    handle: Callable[[HttpCall], Awaitable[Any]]
    action: Optional[Action] = None


def to_jsonable(result: Any) -> Any:
    """Serialize handler results; flag fields appear only when they were loaded."""
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json", exclude_unset=True)
    if isinstance(result, QueryResult):
        return result.to_dict(to_jsonable)
    if isinstance(result, list):
        return [to_jsonable(r) for r in result]
    return jsonable_encoder(result)


class RouteRegistrar:
    """Registers entity routes on a FastAPI app (or APIRouter)."""

    def __init__(
        self,
        router,
        config: Optional[ServerConfig] = None,
        authorizer: Optional[Authorizer] = None,
        user_provider: Callable[[Request], Optional[User]] = request_state_user,
    ):
        self.router = router
        self.config = config or ServerConfig()
        self.authorizer = authorizer or PermissionAuthorizer()
        self.user_provider = user_provider
        self.handlers: list[Handler] = []

    def add_handler(self, handler: Handler) -> None:
        path = f"{self.config.api_prefix}{handler.path}"

        async def endpoint(request: Request):
            return await self.dispatch(handler, request)

        self.router.add_api_route(
            path,
            endpoint,
            methods=[handler.method],
            name=f"{handler.method.lower()} {handler.path}",
        )
        self.handlers.append(handler)
        logger.debug(f"Registered {handler.method} {path}")

    async def dispatch(self, handler: Handler, request: Request) -> Response:
        try:
            user = self.user_provider(request)
            if handler.action is not None:
                authorize(user, handler.action, self.authorizer)
            result = await handler.handle(HttpCall(request, user, self.config))
        except LibraryError as e:
            if isinstance(e, StoreError):
                logger.error(f"Store error on {request.method} {request.url.path}: {e.message}")
            return JSONResponse(status_code=e.http_status_code, content=e.to_dict())
        except Exception as e:
            logger.error(f"Unhandled error on {request.method} {request.url.path}: {e}", exc_info=True)
            return JSONResponse(
                status_code=HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": True, "code": "INTERNAL_ERROR", "message": str(e)},
            )

        if result is None:
            return Response(status_code=200)
        return JSONResponse(content=to_jsonable(result))

    def register_entity(self, entity, extra_methods: Optional[list[str]] = None) -> None:
        """
        Expose the standard routes of an entity plus its custom operations.
        `extra_methods` restricts the custom operations to the names given.
        """
        name = entity.name
        base, key_path = f"/{name}", f"/{name}/{{key}}"

        entity.init_routes(self)

        async def get_fields(call: HttpCall):
            return entity.fields()

        async def get_one(call: HttpCall):
            return await entity.get(call.param("key"), call.flags(entity.flags))

        async def list_all(call: HttpCall):
            return await entity.read(call.query, call.op(), call.options())

        async def update(call: HttpCall):
            return await entity.update(await call.body())

        async def create(call: HttpCall):
            return await entity.create(await call.body())

        async def remove(call: HttpCall):
            await entity.remove(call.param("key"))

        # /fields before /{key}
        self.add_handler(Handler("GET", f"{base}/fields", get_fields, Action(name, READ)))
        self.add_handler(Handler("GET", key_path, get_one, Action(name, READ)))
        self.add_handler(Handler("GET", base, list_all, Action(name, READ)))
        self.add_handler(Handler("PUT", base, update, Action(name, UPDATE)))
        self.add_handler(Handler("POST", base, create, Action(name, CREATE)))
        self.add_handler(Handler("DELETE", key_path, remove, Action(name, DELETE)))

        methods = entity.extra_methods
        names = list(methods) if extra_methods is None else extra_methods
        for method_name in names:
            if method_name not in methods:
                raise ValueError(f"{name} has no custom operation '{method_name}'")
            self.add_handler(Handler(
                "POST",
                f"{key_path}/{method_name}",
                self._custom_operation(getattr(entity, methods[method_name])),
                entity.method_actions.get(method_name, Action(name, method_name)),
            ))

        logger.info(f"Registered entity {name} at {self.config.api_prefix}{base}")

    @staticmethod
    def _custom_operation(method):
        async def run(call: HttpCall):
            return await method(call.param("key"), await call.body())
        return run
